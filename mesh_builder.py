"""
Mesh builder: body parameters (+ optional keypoints) -> posed humanoid hierarchy.

Runs proportion estimation, humanoid assembly and pose hints in sequence. Only
structurally malformed parameters abort the build; missing keypoints or short
coefficient vectors are handled by the downstream defaults.
"""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from humanoid import SceneNode, assemble_humanoid, iter_nodes
from pipeline_config import PipelineConfig
from pose_hints import apply_pose_hints
from proportions import ProportionEstimate, ProportionRecord, estimate_proportions

logger = logging.getLogger(__name__)

NUM_BETAS = 10
NUM_THETAS = 72


class InvalidParameters(ValueError):
    """Betas/thetas are missing or are not finite numeric sequences."""


@dataclass
class HumanoidMesh:
    root: SceneNode
    estimate: ProportionEstimate

    @property
    def proportions(self) -> ProportionRecord:
        return self.estimate.record

    @property
    def unresolved(self) -> Tuple[str, ...]:
        return self.estimate.unresolved

    @property
    def warnings(self) -> Tuple[str, ...]:
        return self.estimate.warnings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proportions": self.proportions.as_dict(),
            "baseline": self.estimate.baseline.as_dict(),
            "scale": self.estimate.scale,
            "used_keypoints": self.estimate.used_keypoints,
            "unresolved": list(self.unresolved),
            "warnings": list(self.warnings),
            "hierarchy": hierarchy_summary(self.root),
        }


def _field(params: Any, name: str) -> Any:
    if isinstance(params, Mapping):
        return params.get(name)
    return getattr(params, name, None)


def validate_coefficients(values: Any, name: str) -> List[float]:
    """Return ``values`` as a list of floats or raise InvalidParameters."""
    if values is None:
        raise InvalidParameters(f"{name} is required")
    if isinstance(values, (str, bytes, Mapping)) or not isinstance(values, (Sequence, np.ndarray)):
        raise InvalidParameters(f"{name} must be a numeric sequence, got {type(values).__name__}")
    result: List[float] = []
    for idx, value in enumerate(values):
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise InvalidParameters(f"{name}[{idx}] is not a number: {value!r}")
        value = float(value)
        if not math.isfinite(value):
            raise InvalidParameters(f"{name}[{idx}] is not finite")
        result.append(value)
    return result


def _keypoint_payload(raw: Any, log: logging.Logger) -> Optional[Sequence[Any]]:
    if raw is None:
        return None
    if isinstance(raw, (str, bytes, Mapping)) or not isinstance(raw, (Sequence, np.ndarray)):
        log.warning("ignoring keypoints payload of type %s", type(raw).__name__)
        return None
    return list(raw)


def build_mesh(
    params: Any,
    config: Optional[PipelineConfig] = None,
    logger: logging.Logger = logger,
) -> HumanoidMesh:
    """Build the posed humanoid for ``params`` (mapping or object with betas/thetas/keypoints)."""
    config = config or PipelineConfig()
    betas = validate_coefficients(_field(params, "betas"), "betas")
    thetas = validate_coefficients(_field(params, "thetas"), "thetas")
    if len(betas) < NUM_BETAS or len(thetas) < NUM_THETAS:
        logger.debug(
            "short coefficient vectors (betas=%d, thetas=%d); missing entries read as 0",
            len(betas),
            len(thetas),
        )
    keypoints = _keypoint_payload(_field(params, "keypoints"), logger)

    estimate = estimate_proportions(betas, keypoints, config=config.proportions, logger=logger)
    root = assemble_humanoid(estimate.record)
    apply_pose_hints(root, thetas, limits=config.pose_limits, logger=logger)

    logger.info(
        "built humanoid: height=%.3f m, %d nodes, %d unresolved measurements",
        estimate.record.height,
        sum(1 for _ in iter_nodes(root)),
        len(estimate.unresolved),
    )
    return HumanoidMesh(root=root, estimate=estimate)


def hierarchy_summary(root: SceneNode) -> Dict[str, Any]:
    """JSON-ready nested description of the scene graph."""
    entry: Dict[str, Any] = {
        "name": root.name,
        "position": [float(v) for v in root.position],
        "rotation": [float(v) for v in root.rotation],
        "scale": [float(v) for v in root.scale],
    }
    if root.primitive is not None:
        entry["primitive"] = {
            "kind": root.primitive.kind,
            "size": {k: float(v) for k, v in root.primitive.size.items()},
            "color": list(root.primitive.color),
        }
    if root.tag is not None:
        entry["side"] = root.tag.side.value
        entry["kind"] = root.tag.kind.value
    if root.joint is not None:
        entry["joint"] = root.joint
    if root.children:
        entry["children"] = [hierarchy_summary(child) for child in root.children]
    return entry
