"""
Annotate an image with the detected body keypoints and their confidences.
"""

from __future__ import annotations

import argparse
from pathlib import Path

import cv2
from pose_utils import DEFAULT_MIN_CONFIDENCE, draw_keypoints, run_pose_estimation, save_keypoints_json, validate_keypoints


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mark detected keypoints on an image.")
    parser.add_argument("--image", type=Path, required=True, help="Input photo path.")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("keypoints_overlay.png"),
        help="Output image path for the labeled keypoints.",
    )
    parser.add_argument(
        "--min-confidence",
        type=float,
        default=DEFAULT_MIN_CONFIDENCE,
        help="Keypoints below this confidence are drawn grey.",
    )
    parser.add_argument(
        "--font-scale", type=float, default=0.45, help="Font scale for labels."
    )
    parser.add_argument(
        "--radius", type=int, default=6, help="Circle radius for keypoint markers."
    )
    parser.add_argument("--no-labels", action="store_true", help="Draw markers only.")
    parser.add_argument("--save-keypoints", type=Path, help="Optional keypoint JSON dump.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    image, keypoints = run_pose_estimation(args.image)
    if not validate_keypoints(keypoints):
        print("warning: torso/head keypoints are incomplete; proportions will fall back to the baseline")

    annotated = draw_keypoints(
        image,
        keypoints,
        min_confidence=args.min_confidence,
        radius=args.radius,
        font_scale=args.font_scale,
        label=not args.no_labels,
    )
    cv2.imwrite(str(args.output), annotated)
    print(f"Saved labeled keypoints to {args.output}")

    if args.save_keypoints:
        save_keypoints_json(keypoints, args.save_keypoints)
        print(f"Saved keypoints to {args.save_keypoints}")


if __name__ == "__main__":
    main()
