import sys
import unittest
from pathlib import Path

import numpy as np

# Allow root-level module imports when run without installation.
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from pose_utils import generate_mock_keypoints  # noqa: E402
from smpl_fit import NUM_BETAS, NUM_THETAS, fit_body_params  # noqa: E402


class TestFitBodyParams(unittest.TestCase):
    def test_vector_sizes_and_ranges(self) -> None:
        params = fit_body_params(generate_mock_keypoints(0), rng=1)
        self.assertEqual(len(params.betas), NUM_BETAS)
        self.assertEqual(len(params.thetas), NUM_THETAS)
        self.assertTrue(all(abs(b) <= 0.25 for b in params.betas))
        self.assertTrue(all(abs(t) <= 0.1 for t in params.thetas[:3]))
        self.assertTrue(all(abs(t) <= 0.15 for t in params.thetas[3:]))

    def test_keypoint_statistics(self) -> None:
        keypoints = generate_mock_keypoints(0)
        params = fit_body_params(keypoints, rng=1)
        self.assertEqual(params.num_keypoints, len(keypoints))
        self.assertAlmostEqual(params.avg_confidence, float(np.mean([kp.confidence for kp in keypoints])))
        self.assertEqual(params.keypoints, keypoints)

    def test_empty_keypoints(self) -> None:
        params = fit_body_params([], rng=1, attach_keypoints=False)
        self.assertEqual(params.num_keypoints, 0)
        self.assertEqual(params.avg_confidence, 0.0)
        self.assertIsNone(params.keypoints)

    def test_seeded_generation(self) -> None:
        a = fit_body_params([], rng=5)
        b = fit_body_params([], rng=np.random.default_rng(5))
        self.assertEqual(a.betas, b.betas)
        self.assertEqual(a.thetas, b.thetas)


if __name__ == "__main__":
    unittest.main()
