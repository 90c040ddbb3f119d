"""
Body proportions for the procedural maquette.

A baseline record is always derived from the shape coefficients (betas). When
confident keypoints are available, segment lengths are measured from them,
converted to world units by matching the detected body height to the baseline
height, and clamped into a band around the baseline so a single bad detection
cannot produce an implausible figure. Anything that cannot be measured falls
back to the baseline and is reported as a diagnostic, never as an exception.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from pipeline_config import ProportionConfig
from pose_utils import KeypointMap, build_keypoint_map

logger = logging.getLogger(__name__)

HEIGHT_RANGE = (1.45, 1.95)
LIMB_RADIUS_RANGE = (0.03, 0.07)
EPS = 1e-9

# Diagnostic names, in report order.
MEASUREMENTS: Tuple[str, ...] = (
    "overall height",
    "shoulder width",
    "hip width",
    "upper arm length",
    "forearm length",
    "thigh length",
    "shin length",
    "head size",
    "torso length",
)

# measurement name -> ((left endpoints), (right endpoints))
BILATERAL_SEGMENTS: Dict[str, Tuple[Tuple[str, str], Tuple[str, str]]] = {
    "upper arm length": (("left_shoulder", "left_elbow"), ("right_shoulder", "right_elbow")),
    "forearm length": (("left_elbow", "left_wrist"), ("right_elbow", "right_wrist")),
    "thigh length": (("left_hip", "left_knee"), ("right_hip", "right_knee")),
    "shin length": (("left_knee", "left_ankle"), ("right_knee", "right_ankle")),
}


@dataclass(frozen=True)
class ProportionRecord:
    height: float
    shoulder_width: float
    hip_width: float
    limb_radius: float
    head_radius: float
    torso_length: float
    torso_radius: float
    upper_arm_length: float
    forearm_length: float
    thigh_length: float
    shin_length: float

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class ProportionEstimate:
    record: ProportionRecord
    baseline: ProportionRecord
    unresolved: Tuple[str, ...]
    warnings: Tuple[str, ...]
    scale: float
    normalized_height: Optional[float]
    used_keypoints: bool


def _clamp(value: float, lo: float, hi: float) -> float:
    return float(min(max(value, lo), hi))


def _coefficient(values: Sequence[float], index: int) -> float:
    if index < len(values):
        return float(values[index])
    return 0.0


def proportions_from_betas(betas: Sequence[float]) -> ProportionRecord:
    """Baseline proportions from the first few shape coefficients."""
    height = _clamp(1.7 + _coefficient(betas, 0) * 0.12, *HEIGHT_RANGE)
    shoulder_width = _clamp(0.38 + _coefficient(betas, 1) * 0.05, 0.28, 0.48)
    hip_width = _clamp(0.28 + _coefficient(betas, 2) * 0.05, 0.20, 0.42)
    limb_radius = _clamp(0.04 + _coefficient(betas, 3) * 0.015, *LIMB_RADIUS_RANGE)
    return ProportionRecord(
        height=height,
        shoulder_width=shoulder_width,
        hip_width=hip_width,
        limb_radius=limb_radius,
        head_radius=0.075 * height,
        torso_length=0.35 * height,
        torso_radius=0.35 * shoulder_width,
        upper_arm_length=0.18 * height,
        forearm_length=0.18 * height,
        thigh_length=0.25 * height,
        shin_length=0.25 * height,
    )


def clamp_band(baseline: ProportionRecord, field_name: str, config: ProportionConfig) -> Tuple[float, float]:
    """Allowed (lo, hi) range for a measured field around its baseline value."""
    span = config.hip_span if field_name == "hip_width" else config.default_span
    base = getattr(baseline, field_name)
    return base * (1.0 - span), base * (1.0 + span)


# -----------------------------------------------------------------------------
# Geometry on the keypoint map


def _distance(a: np.ndarray, b: np.ndarray) -> Optional[float]:
    dist = float(np.linalg.norm(b - a))
    if not math.isfinite(dist) or dist < EPS:
        return None
    return dist


def _midpoint(kmap: KeypointMap, left: str, right: str) -> Optional[np.ndarray]:
    # Both sides are required; a lone shoulder is not a shoulder midpoint.
    a = kmap.get(left)
    b = kmap.get(right)
    if a is None or b is None:
        return None
    return (a.point() + b.point()) * 0.5


def _head_point(kmap: KeypointMap) -> Optional[np.ndarray]:
    for name in ("nose", "left_eye", "right_eye"):
        kp = kmap.get(name)
        if kp is not None:
            return kp.point()
    return None


def _pair_distance(kmap: KeypointMap, a: str, b: str) -> Optional[float]:
    ka = kmap.get(a)
    kb = kmap.get(b)
    if ka is None or kb is None:
        return None
    return _distance(ka.point(), kb.point())


def normalized_body_height(kmap: KeypointMap) -> Optional[float]:
    """Head-to-ankles distance in image units, or shoulders-to-ankles as a fallback."""
    ankles = _midpoint(kmap, "left_ankle", "right_ankle")
    if ankles is None:
        return None
    head = _head_point(kmap)
    if head is not None:
        dist = _distance(head, ankles)
        if dist is not None:
            return dist
    shoulders = _midpoint(kmap, "left_shoulder", "right_shoulder")
    if shoulders is not None:
        return _distance(shoulders, ankles)
    return None


def _bilateral(values: Iterable[Optional[float]]) -> Optional[float]:
    resolved = [v for v in values if v is not None]
    if not resolved:
        return None
    return float(np.mean(resolved))


def _head_size(kmap: KeypointMap) -> Optional[float]:
    eyes = _pair_distance(kmap, "left_eye", "right_eye")
    if eyes is not None:
        return eyes
    for ear in ("left_ear", "right_ear"):
        dist = _pair_distance(kmap, "nose", ear)
        if dist is not None:
            return dist * 2.0
    return None


def _torso_length(kmap: KeypointMap) -> Optional[float]:
    hips = _midpoint(kmap, "left_hip", "right_hip")
    if hips is None:
        return None
    for name in ("neck", "nose"):
        kp = kmap.get(name)
        if kp is not None:
            return _distance(kp.point(), hips)
    return None


def measure_segments(kmap: KeypointMap) -> Dict[str, Optional[float]]:
    """Raw (unscaled) measurements keyed by diagnostic name; None when unresolved."""
    raw: Dict[str, Optional[float]] = {
        "overall height": normalized_body_height(kmap),
        "shoulder width": _pair_distance(kmap, "left_shoulder", "right_shoulder"),
        "hip width": _pair_distance(kmap, "left_hip", "right_hip"),
    }
    for name, (left, right) in BILATERAL_SEGMENTS.items():
        raw[name] = _bilateral([_pair_distance(kmap, *left), _pair_distance(kmap, *right)])
    raw["head size"] = _head_size(kmap)
    raw["torso length"] = _torso_length(kmap)
    return raw


# -----------------------------------------------------------------------------
# Estimator


_FIELD_FOR_MEASUREMENT = {
    "overall height": "height",
    "shoulder width": "shoulder_width",
    "hip width": "hip_width",
    "upper arm length": "upper_arm_length",
    "forearm length": "forearm_length",
    "thigh length": "thigh_length",
    "shin length": "shin_length",
    "head size": "head_radius",
    "torso length": "torso_length",
}


def estimate_proportions(
    betas: Sequence[float],
    keypoints: Optional[Iterable] = None,
    config: Optional[ProportionConfig] = None,
    logger: logging.Logger = logger,
) -> ProportionEstimate:
    """Estimate body proportions, preferring keypoint geometry over the betas baseline."""
    config = config or ProportionConfig()
    baseline = proportions_from_betas(betas)
    kmap = build_keypoint_map(keypoints, min_confidence=config.min_confidence)

    if not kmap:
        message = "no confident keypoints; using shape-coefficient baseline proportions"
        logger.warning(message)
        return ProportionEstimate(
            record=baseline,
            baseline=baseline,
            unresolved=MEASUREMENTS,
            warnings=(message,) + tuple(f"{name} unresolved" for name in MEASUREMENTS),
            scale=1.0,
            normalized_height=None,
            used_keypoints=False,
        )

    raw = measure_segments(kmap)
    normalized_height = raw["overall height"]
    if normalized_height is not None:
        scale = _clamp(baseline.height / normalized_height, *config.scale_bounds)
    else:
        scale = 1.0

    values = baseline.as_dict()
    unresolved: List[str] = []
    for name in MEASUREMENTS:
        measured = raw[name]
        if measured is None:
            unresolved.append(name)
            continue
        field_name = _FIELD_FOR_MEASUREMENT[name]
        lo, hi = clamp_band(baseline, field_name, config)
        values[field_name] = _clamp(measured * scale, lo, hi)

    values["height"] = _clamp(values["height"], *HEIGHT_RANGE)
    if raw["shoulder width"] is not None:
        values["limb_radius"] = _clamp(values["shoulder_width"] * 0.1, *LIMB_RADIUS_RANGE)

    record = ProportionRecord(**values)

    warnings = tuple(f"{name} unresolved; using baseline" for name in unresolved)
    for line in warnings:
        logger.warning(line)
    logger.debug(
        "proportions from %d keypoints: scale=%.3f normalized_height=%s",
        len(kmap),
        scale,
        "n/a" if normalized_height is None else f"{normalized_height:.4f}",
    )
    return ProportionEstimate(
        record=record,
        baseline=baseline,
        unresolved=tuple(unresolved),
        warnings=warnings,
        scale=scale,
        normalized_height=normalized_height,
        used_keypoints=True,
    )
