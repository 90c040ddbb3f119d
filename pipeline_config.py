"""
Configuration structs for the image -> keypoints -> body params -> maquette pipeline.

Everything here is passed explicitly into the calls that need it; there is no
module-level config singleton to mutate.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Tuple


INFERENCE_MODES = ("mock", "real")


@dataclass(frozen=True)
class ProportionConfig:
    min_confidence: float = 0.3
    # Measurements are clamped to baseline * (1 - span) .. baseline * (1 + span).
    default_span: float = 0.6
    hip_span: float = 0.8
    scale_bounds: Tuple[float, float] = (0.5, 3.0)


@dataclass(frozen=True)
class PoseLimits:
    """Scale factors and clamp bands for the coarse pose hints, in degrees."""

    head_yaw_scale: float = 20.0
    head_yaw: Tuple[float, float] = (-20.0, 20.0)
    shoulder_pitch_scale: float = 40.0
    shoulder_pitch: Tuple[float, float] = (-45.0, 45.0)
    shoulder_roll_scale: float = 25.0
    shoulder_roll: Tuple[float, float] = (-30.0, 30.0)
    elbow_scale: float = 60.0
    elbow: Tuple[float, float] = (-5.0, 90.0)
    hip_pitch_scale: float = 35.0
    hip_pitch: Tuple[float, float] = (-30.0, 35.0)
    knee_scale: float = 60.0
    knee: Tuple[float, float] = (-10.0, 90.0)


def _default_delays() -> Dict[str, float]:
    return {"keypoints": 0.3, "params": 0.5, "mesh": 0.2}


@dataclass(frozen=True)
class PipelineConfig:
    inference_mode: str = "mock"
    keypoint_confidence_threshold: float = 0.5
    mock_delays: Dict[str, float] = field(default_factory=_default_delays)
    log_timing: bool = True
    proportions: ProportionConfig = field(default_factory=ProportionConfig)
    pose_limits: PoseLimits = field(default_factory=PoseLimits)

    def __post_init__(self) -> None:
        if self.inference_mode not in INFERENCE_MODES:
            raise ValueError(
                f"inference_mode must be one of {INFERENCE_MODES}, got '{self.inference_mode}'"
            )

    def is_real_inference(self) -> bool:
        return self.inference_mode == "real"

    def mock_delay(self, stage: str) -> float:
        return max(float(self.mock_delays.get(stage, 0.0)), 0.0)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Build a config from HUMANOID_* environment variables (service deployments)."""
        mode = os.environ.get("HUMANOID_INFERENCE_MODE", "mock").lower()
        threshold = float(os.environ.get("HUMANOID_CONFIDENCE_THRESHOLD", "0.5"))
        delay_scale = float(os.environ.get("HUMANOID_MOCK_DELAY_SCALE", "1.0"))
        delays = {stage: value * delay_scale for stage, value in _default_delays().items()}
        return cls(
            inference_mode=mode,
            keypoint_confidence_threshold=threshold,
            mock_delays=delays,
        )


def no_delay_config(**overrides) -> PipelineConfig:
    """Mock-mode config with the simulated inference delays switched off."""
    delays = {stage: 0.0 for stage in _default_delays()}
    return PipelineConfig(mock_delays=delays, **overrides)
