"""
Coarse pose hints: turn a handful of pose coefficients into joint rotations.

This is not axis-angle decoding. A few fixed entries of the 72-value theta
vector are scaled into degrees, clamped to a plausible range and written into
the rotation fields of the humanoid's joint groups.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from humanoid import LimbKind, SceneNode, Side, find_limb
from pipeline_config import PoseLimits

logger = logging.getLogger(__name__)

HEAD_YAW_INDEX = 2
# joint -> {side: theta index}
SHOULDER_PITCH_INDEX: Dict[Side, int] = {Side.LEFT: 9, Side.RIGHT: 8}
SHOULDER_ROLL_INDEX: Dict[Side, int] = {Side.LEFT: 6, Side.RIGHT: 5}
ELBOW_INDEX: Dict[Side, int] = {Side.LEFT: 12, Side.RIGHT: 11}
HIP_PITCH_INDEX: Dict[Side, int] = {Side.LEFT: 16, Side.RIGHT: 15}
KNEE_INDEX: Dict[Side, int] = {Side.LEFT: 19, Side.RIGHT: 18}

PITCH, YAW, ROLL = 0, 1, 2


def _theta(thetas: Sequence[float], index: int) -> float:
    if index < len(thetas):
        return float(thetas[index])
    return 0.0


def hint_angle(value: float, scale_deg: float, band_deg: Tuple[float, float]) -> float:
    """Scale a coefficient into degrees, clamp it, and return radians."""
    degrees = float(np.clip(value * scale_deg, band_deg[0], band_deg[1]))
    return float(np.deg2rad(degrees))


def apply_pose_hints(
    root: SceneNode,
    thetas: Sequence[float],
    limits: Optional[PoseLimits] = None,
    logger: logging.Logger = logger,
) -> SceneNode:
    """Write clamped rotations into the hierarchy in place and return ``root``.

    Only rotation fields change. Limb groups are located by their side/kind tag.
    Elbow and knee flexion are both stored as positive X rotations; the
    elbow's rest yaw makes the forearm fold toward +Z (the figure's front)
    while the shin folds backward.
    """
    limits = limits or PoseLimits()

    head = root.find("head")
    if head is not None:
        head.rotation[YAW] = hint_angle(_theta(thetas, HEAD_YAW_INDEX), limits.head_yaw_scale, limits.head_yaw)

    for side in (Side.LEFT, Side.RIGHT):
        arm = find_limb(root, side, LimbKind.ARM)
        if arm is None:
            logger.warning("no %s arm group; skipping its pose hints", side.value)
        else:
            arm.rotation[PITCH] = hint_angle(
                _theta(thetas, SHOULDER_PITCH_INDEX[side]), limits.shoulder_pitch_scale, limits.shoulder_pitch
            )
            # Mirrored so the same coefficient sign abducts both arms outward.
            arm.rotation[ROLL] = side.sign * hint_angle(
                _theta(thetas, SHOULDER_ROLL_INDEX[side]), limits.shoulder_roll_scale, limits.shoulder_roll
            )
            elbow = arm.child_joint("elbow")
            if elbow is not None:
                elbow.rotation[PITCH] = hint_angle(
                    _theta(thetas, ELBOW_INDEX[side]), limits.elbow_scale, limits.elbow
                )

        leg = find_limb(root, side, LimbKind.LEG)
        if leg is None:
            logger.warning("no %s leg group; skipping its pose hints", side.value)
            continue
        leg.rotation[PITCH] = hint_angle(
            _theta(thetas, HIP_PITCH_INDEX[side]), limits.hip_pitch_scale, limits.hip_pitch
        )
        knee = leg.child_joint("knee")
        if knee is not None:
            knee.rotation[PITCH] = hint_angle(_theta(thetas, KNEE_INDEX[side]), limits.knee_scale, limits.knee)

    logger.debug("applied pose hints from %d theta values", len(thetas))
    return root
