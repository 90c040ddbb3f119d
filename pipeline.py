"""
Image -> keypoints -> body parameters -> posed humanoid.

Stages:
1. KEYPOINTS: MediaPipe Pose on the photo (real mode) or the mock detector.
2. PARAMS: body-parameter stand-in (random betas/thetas around a neutral body).
3. MESH: proportion estimation, humanoid assembly and pose hints.

Mock mode inserts configurable sleeps to mimic model latency; they carry no
computational meaning and can be set to zero.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from mesh_builder import HumanoidMesh, build_mesh
from pipeline_config import PipelineConfig
from pose_utils import Keypoint, average_confidence, filter_keypoints, generate_mock_keypoints, run_pose_estimation
from smpl_fit import BodyParams, fit_body_params

logger = logging.getLogger(__name__)

STAGE_KEYPOINTS = "keypoints"
STAGE_PARAMS = "params"
STAGE_MESH = "mesh"


class StageTimer:
    """Collects per-stage wall time and logs it as stages finish."""

    def __init__(self, log: logging.Logger, log_timing: bool = True) -> None:
        self.log = log
        self.log_timing = log_timing
        self.durations: Dict[str, float] = {}
        self._started = time.perf_counter()

    def run(self, stage: str, func, *args, **kwargs):
        self.log.debug("stage started: %s", stage)
        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception:
            self.log.exception("stage %s failed", stage)
            raise
        self.durations[stage] = time.perf_counter() - start
        if self.log_timing:
            self.log.info("stage %s completed in %.1f ms", stage, self.durations[stage] * 1000.0)
        return result

    def total(self) -> float:
        return time.perf_counter() - self._started


@dataclass
class PipelineResult:
    keypoints: List[Keypoint]
    params: BodyParams
    mesh: HumanoidMesh
    timings: Dict[str, float] = field(default_factory=dict)
    image: Optional[np.ndarray] = None


def _simulate_latency(config: PipelineConfig, stage: str) -> None:
    delay = config.mock_delay(stage)
    if delay > 0.0:
        time.sleep(delay)


def extract_keypoints(
    image_path: Optional[Path],
    config: PipelineConfig,
    rng: np.random.Generator | int | None = None,
    log: logging.Logger = logger,
) -> tuple[Optional[np.ndarray], List[Keypoint]]:
    """Detect keypoints and drop those below the pipeline confidence threshold."""
    image = None
    if config.is_real_inference():
        if image_path is None:
            raise ValueError("real inference needs an image path")
        log.info("using MediaPipe pose estimation on %s", image_path)
        image, keypoints = run_pose_estimation(Path(image_path))
    else:
        log.info("using mock keypoint data")
        _simulate_latency(config, STAGE_KEYPOINTS)
        keypoints = generate_mock_keypoints(rng)

    filtered = filter_keypoints(keypoints, config.keypoint_confidence_threshold)
    log.debug(
        "keypoints: total=%d kept=%d avg_confidence=%.3f",
        len(keypoints),
        len(filtered),
        average_confidence(keypoints),
    )
    return image, filtered


def _fit_params(keypoints, config: PipelineConfig, rng) -> BodyParams:
    _simulate_latency(config, STAGE_PARAMS)
    return fit_body_params(keypoints, rng=rng)


def _build(params: BodyParams, config: PipelineConfig, log: logging.Logger) -> HumanoidMesh:
    _simulate_latency(config, STAGE_MESH)
    return build_mesh(params, config=config, logger=log)


def process_image(
    image_path: Optional[Path] = None,
    config: Optional[PipelineConfig] = None,
    logger: logging.Logger = logger,
    rng: np.random.Generator | int | None = None,
) -> PipelineResult:
    """Run the full pipeline for one image (the image is ignored in mock mode)."""
    config = config or PipelineConfig()
    generator = rng if isinstance(rng, np.random.Generator) else np.random.default_rng(rng)
    timer = StageTimer(logger, log_timing=config.log_timing)
    logger.info("processing %s (%s inference)", image_path or "<mock>", config.inference_mode)

    image, keypoints = timer.run(STAGE_KEYPOINTS, extract_keypoints, image_path, config, generator, logger)
    params = timer.run(STAGE_PARAMS, _fit_params, keypoints, config, generator)
    mesh = timer.run(STAGE_MESH, _build, params, config, logger)

    if config.log_timing:
        logger.info("pipeline completed in %.1f ms", timer.total() * 1000.0)
    return PipelineResult(
        keypoints=keypoints,
        params=params,
        mesh=mesh,
        timings=dict(timer.durations),
        image=image,
    )
