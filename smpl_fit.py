"""
Body-parameter estimation stand-in.

There is no body-model regressor or optimizer here: betas and thetas are drawn
around a neutral standing body so the downstream stages have something to work
with. The keypoints only contribute summary statistics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from pose_utils import Keypoint, average_confidence

logger = logging.getLogger(__name__)

NUM_BETAS = 10
NUM_THETAS = 72


@dataclass
class BodyParams:
    betas: List[float]
    thetas: List[float]
    keypoints: Optional[List[Keypoint]] = None
    num_keypoints: int = 0
    avg_confidence: float = 0.0


def _ensure_generator(source: np.random.Generator | int | None) -> np.random.Generator:
    if isinstance(source, np.random.Generator):
        return source
    return np.random.default_rng(source)


def fit_body_params(
    keypoints: Sequence[Keypoint],
    rng: np.random.Generator | int | None = None,
    attach_keypoints: bool = True,
) -> BodyParams:
    """Return random near-neutral betas/thetas plus keypoint statistics."""
    generator = _ensure_generator(rng)

    betas = (generator.uniform(-0.5, 0.5, size=NUM_BETAS) * 0.5).tolist()
    thetas = generator.uniform(-0.5, 0.5, size=NUM_THETAS) * 0.3
    # Root orientation stays closer to upright.
    thetas[:3] = generator.uniform(-0.5, 0.5, size=3) * 0.2

    keypoints = list(keypoints)
    params = BodyParams(
        betas=betas,
        thetas=thetas.tolist(),
        keypoints=keypoints if attach_keypoints else None,
        num_keypoints=len(keypoints),
        avg_confidence=average_confidence(keypoints),
    )
    logger.debug(
        "generated body params: betas=%d thetas=%d avg_confidence=%.3f",
        len(params.betas),
        len(params.thetas),
        params.avg_confidence,
    )
    return params
