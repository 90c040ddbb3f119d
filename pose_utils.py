"""
Shared helpers for detecting pose keypoints and turning them into lookup maps.
"""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import cv2
import numpy as np


# Fixed detector vocabulary (COCO-style body joints plus face anchors).
KEYPOINT_NAMES: Tuple[str, ...] = (
    "nose",
    "neck",
    "right_shoulder",
    "right_elbow",
    "right_wrist",
    "left_shoulder",
    "left_elbow",
    "left_wrist",
    "right_hip",
    "right_knee",
    "right_ankle",
    "left_hip",
    "left_knee",
    "left_ankle",
    "right_eye",
    "left_eye",
    "right_ear",
)

ESSENTIAL_KEYPOINTS: Tuple[str, ...] = (
    "nose",
    "neck",
    "left_shoulder",
    "right_shoulder",
    "left_hip",
    "right_hip",
)

DEFAULT_MIN_CONFIDENCE = 0.3

# MediaPipe Pose landmark indices for the names we read back.
MEDIAPIPE_INDICES = {
    "nose": 0,
    "left_eye": 2,
    "right_eye": 5,
    "left_ear": 7,
    "right_ear": 8,
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_elbow": 13,
    "right_elbow": 14,
    "left_wrist": 15,
    "right_wrist": 16,
    "left_hip": 23,
    "right_hip": 24,
    "left_knee": 25,
    "right_knee": 26,
    "left_ankle": 27,
    "right_ankle": 28,
}

# Reference skeleton used by the mock detector, (x, y, confidence).
MOCK_SKELETON = {
    "nose": (0.500, 0.150, 0.95),
    "neck": (0.500, 0.200, 0.92),
    "right_shoulder": (0.400, 0.200, 0.88),
    "right_elbow": (0.350, 0.300, 0.85),
    "right_wrist": (0.320, 0.400, 0.82),
    "left_shoulder": (0.600, 0.200, 0.89),
    "left_elbow": (0.650, 0.300, 0.86),
    "left_wrist": (0.680, 0.400, 0.83),
    "right_hip": (0.450, 0.500, 0.90),
    "right_knee": (0.440, 0.700, 0.87),
    "right_ankle": (0.430, 0.900, 0.84),
    "left_hip": (0.550, 0.500, 0.91),
    "left_knee": (0.560, 0.700, 0.88),
    "left_ankle": (0.570, 0.900, 0.85),
    "right_eye": (0.480, 0.140, 0.80),
    "left_eye": (0.520, 0.140, 0.81),
    "right_ear": (0.460, 0.160, 0.78),
}


# -----------------------------------------------------------------------------
# Data containers


@dataclass(frozen=True)
class Keypoint:
    name: str
    x: float  # normalized, 0 = left edge
    y: float  # normalized, 0 = top edge
    confidence: float

    def point(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=np.float64)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["Keypoint"]:
        """Parse a detector payload entry; returns None when it cannot be used."""
        name = data.get("name")
        if not isinstance(name, str) or not name:
            return None
        confidence = data.get("confidence", data.get("score", data.get("visibility")))
        try:
            x = float(data["x"])
            y = float(data["y"])
            conf = float(confidence) if confidence is not None else 0.0
        except (KeyError, TypeError, ValueError):
            return None
        if not all(math.isfinite(v) for v in (x, y, conf)):
            return None
        return cls(name=name, x=x, y=y, confidence=conf)


KeypointMap = Mapping[str, Keypoint]


# -----------------------------------------------------------------------------
# Keypoint helpers


def coerce_keypoint(item: Any) -> Optional[Keypoint]:
    if isinstance(item, Keypoint):
        return item
    if isinstance(item, Mapping):
        return Keypoint.from_dict(item)
    return None


def build_keypoint_map(
    keypoints: Iterable[Any] | None,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> KeypointMap:
    """Index confident keypoints by name.

    Entries below ``min_confidence``, without a name, or with non-finite
    coordinates or confidence are dropped; absence is a normal condition for
    downstream code. When a name repeats, the more
    confident detection wins. The returned mapping is read-only.
    """
    lookup: dict[str, Keypoint] = {}
    for item in keypoints or ():
        kp = coerce_keypoint(item)
        if kp is None or not kp.name:
            continue
        if not all(math.isfinite(v) for v in (kp.x, kp.y, kp.confidence)):
            continue
        if kp.confidence < min_confidence:
            continue
        current = lookup.get(kp.name)
        if current is None or kp.confidence > current.confidence:
            lookup[kp.name] = kp
    return MappingProxyType(lookup)


def filter_keypoints(keypoints: Sequence[Keypoint], threshold: float) -> List[Keypoint]:
    return [kp for kp in keypoints if kp.confidence >= threshold]


def average_confidence(keypoints: Sequence[Keypoint]) -> float:
    if not keypoints:
        return 0.0
    return float(np.mean([kp.confidence for kp in keypoints]))


def validate_keypoints(keypoints: Iterable[Any], required_fraction: float = 0.8) -> bool:
    """True when enough of the torso/head anchors (nose, neck, shoulders, hips) were detected."""
    names = {kp.name for kp in (coerce_keypoint(item) for item in keypoints) if kp is not None}
    found = sum(1 for name in ESSENTIAL_KEYPOINTS if name in names)
    return found >= len(ESSENTIAL_KEYPOINTS) * required_fraction


def generate_mock_keypoints(rng: np.random.Generator | int | None = None) -> List[Keypoint]:
    """Return the reference skeleton with a little jitter, standing in for a detector."""
    generator = rng if isinstance(rng, np.random.Generator) else np.random.default_rng(rng)
    keypoints: List[Keypoint] = []
    for name in KEYPOINT_NAMES:
        x, y, conf = MOCK_SKELETON[name]
        keypoints.append(
            Keypoint(
                name=name,
                x=x + float(generator.uniform(-0.5, 0.5)) * 0.02,
                y=y + float(generator.uniform(-0.5, 0.5)) * 0.02,
                confidence=min(1.0, conf + float(generator.uniform(-0.5, 0.5)) * 0.05),
            )
        )
    return keypoints


# -----------------------------------------------------------------------------
# Detector adapter


def landmarks_to_keypoints(landmarks_2d: np.ndarray, image_size: Tuple[int, int]) -> List[Keypoint]:
    """Convert MediaPipe pixel landmarks (N, 3: x, y, visibility) into vocabulary keypoints."""
    width, height = image_size
    width = float(width) or 1.0
    height = float(height) or 1.0

    keypoints: List[Keypoint] = []
    for name, idx in MEDIAPIPE_INDICES.items():
        if idx >= landmarks_2d.shape[0]:
            continue
        x, y, visibility = landmarks_2d[idx]
        keypoints.append(Keypoint(name, float(x) / width, float(y) / height, float(visibility)))

    # MediaPipe has no neck landmark; use the shoulder midpoint.
    by_name = {kp.name: kp for kp in keypoints}
    left = by_name.get("left_shoulder")
    right = by_name.get("right_shoulder")
    if left is not None and right is not None:
        keypoints.append(
            Keypoint(
                "neck",
                (left.x + right.x) * 0.5,
                (left.y + right.y) * 0.5,
                min(left.confidence, right.confidence),
            )
        )
    return keypoints


def run_pose_estimation(image_path: Path) -> Tuple[np.ndarray, List[Keypoint]]:
    """Read an image and return it together with its normalized keypoints."""
    image = cv2.imread(str(image_path))
    if image is None:
        raise FileNotFoundError(f"Could not read image at {image_path}")

    import mediapipe as mp

    with mp.solutions.pose.Pose(static_image_mode=True) as pose:
        results = pose.process(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))

    if not results.pose_landmarks:
        raise RuntimeError("MediaPipe Pose did not detect a person in the image.")

    h, w = image.shape[:2]
    k2d = np.array(
        [
            [lm.x * w, lm.y * h, lm.visibility]
            for lm in results.pose_landmarks.landmark
        ],
        dtype=np.float32,
    )
    return image, landmarks_to_keypoints(k2d, (w, h))


# -----------------------------------------------------------------------------
# JSON helpers


def save_keypoints_json(keypoints: Sequence[Keypoint], output_path: Path) -> None:
    payload = {"keypoints": [kp.to_dict() for kp in keypoints]}
    Path(output_path).write_text(json.dumps(payload, indent=2))


def load_keypoints_json(path: Path) -> List[Keypoint]:
    """Load keypoints saved by save_keypoints_json (or a bare list of entries)."""
    data = json.loads(Path(path).read_text())
    entries = data.get("keypoints", []) if isinstance(data, dict) else data
    keypoints: List[Keypoint] = []
    for entry in entries:
        kp = coerce_keypoint(entry)
        if kp is not None:
            keypoints.append(kp)
    return keypoints


def draw_keypoints(
    image: np.ndarray,
    keypoints: Sequence[Keypoint],
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    radius: int = 6,
    font_scale: float = 0.45,
    label: bool = True,
) -> np.ndarray:
    """Draw keypoints on an image copy, colored from red (low) to green (high confidence)."""
    annotated = image.copy()
    h, w = annotated.shape[:2]
    for kp in keypoints:
        center = (int(round(kp.x * w)), int(round(kp.y * h)))
        if kp.confidence < min_confidence:
            color = (150, 150, 150)
        else:
            c = max(0.0, min(1.0, kp.confidence))
            color = (0, int(c * 255), int((1.0 - c) * 255))
        cv2.circle(annotated, center, radius, color, -1, cv2.LINE_AA)
        if label:
            cv2.putText(
                annotated,
                f"{kp.name} {kp.confidence:.2f}",
                (center[0] + radius + 2, center[1] - radius),
                cv2.FONT_HERSHEY_SIMPLEX,
                font_scale,
                (255, 255, 255),
                thickness=1,
                lineType=cv2.LINE_AA,
            )
    return annotated
