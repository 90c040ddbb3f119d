import json
import sys
import unittest
from pathlib import Path

import numpy as np

# Allow root-level module imports when run without installation.
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from mesh_builder import InvalidParameters, build_mesh, hierarchy_summary, validate_coefficients  # noqa: E402
from pipeline_config import no_delay_config  # noqa: E402
from pose_utils import MOCK_SKELETON  # noqa: E402
from proportions import MEASUREMENTS  # noqa: E402
from smpl_fit import fit_body_params  # noqa: E402


def neutral_params(**extra):
    params = {"betas": [0.0] * 10, "thetas": [0.0] * 72}
    params.update(extra)
    return params


def skeleton_dicts():
    return [{"name": name, "x": x, "y": y, "confidence": conf} for name, (x, y, conf) in MOCK_SKELETON.items()]


class TestParameterValidation(unittest.TestCase):
    def test_invalid_parameters_is_value_error(self) -> None:
        self.assertTrue(issubclass(InvalidParameters, ValueError))

    def test_malformed_parameters_raise(self) -> None:
        cases = {
            "missing betas": {"thetas": [0.0] * 72},
            "missing thetas": {"betas": [0.0] * 10},
            "string betas": neutral_params(betas="0.1 0.2"),
            "mapping thetas": neutral_params(thetas={"a": 1.0}),
            "scalar betas": neutral_params(betas=1.0),
            "nan theta": neutral_params(thetas=[0.0, float("nan")]),
            "inf beta": neutral_params(betas=[float("inf")]),
            "bool beta": neutral_params(betas=[True, 0.0]),
            "text entry": neutral_params(betas=[0.1, "x"]),
        }
        for label, params in cases.items():
            with self.subTest(label):
                with self.assertRaises(InvalidParameters):
                    build_mesh(params)

    def test_validate_coefficients_accepts_arrays(self) -> None:
        values = validate_coefficients(np.array([0.1, -0.2], dtype=np.float32), "betas")
        self.assertEqual(len(values), 2)
        self.assertTrue(all(isinstance(v, float) for v in values))
        self.assertEqual(validate_coefficients((1, 2), "thetas"), [1.0, 2.0])


class TestBuildMesh(unittest.TestCase):
    def test_without_keypoints_uses_baseline(self) -> None:
        mesh = build_mesh(neutral_params())
        self.assertEqual(mesh.unresolved, MEASUREMENTS)
        self.assertEqual(mesh.proportions, mesh.estimate.baseline)
        self.assertGreater(len(mesh.warnings), 0)
        self.assertEqual(mesh.root.name, "humanoid")

    def test_short_vectors_are_accepted(self) -> None:
        mesh = build_mesh({"betas": [], "thetas": [0.2]})
        self.assertEqual(mesh.root.find("head").rotation[1], 0.0)

    def test_keypoint_dicts_are_used(self) -> None:
        mesh = build_mesh(neutral_params(keypoints=skeleton_dicts()))
        self.assertEqual(mesh.unresolved, ())
        self.assertTrue(mesh.estimate.used_keypoints)

    def test_unusable_keypoint_payload_degrades_to_baseline(self) -> None:
        with self.assertLogs("mesh_builder", level="WARNING"):
            mesh = build_mesh(neutral_params(keypoints="nose"))
        self.assertFalse(mesh.estimate.used_keypoints)

    def test_accepts_body_params_objects(self) -> None:
        params = fit_body_params([], rng=0)
        mesh = build_mesh(params, config=no_delay_config())
        self.assertEqual(len(mesh.root.children), 6)

    def test_same_input_same_output(self) -> None:
        params = neutral_params(keypoints=skeleton_dicts(), thetas=[0.3] * 72)
        self.assertEqual(build_mesh(params).to_dict(), build_mesh(params).to_dict())

    def test_summary_is_json_ready(self) -> None:
        mesh = build_mesh(neutral_params(keypoints=skeleton_dicts()))
        payload = json.loads(json.dumps(mesh.to_dict()))
        self.assertEqual(payload["hierarchy"]["name"], "humanoid")
        self.assertEqual(payload["unresolved"], [])
        self.assertIn("height", payload["proportions"])

    def test_hierarchy_summary_marks_limbs(self) -> None:
        summary = hierarchy_summary(build_mesh(neutral_params()).root)
        limbs = {child["name"]: child for child in summary["children"] if "side" in child}
        self.assertEqual(limbs["left_shoulder"]["side"], "left")
        self.assertEqual(limbs["right_hip"]["kind"], "leg")
        self.assertEqual(limbs["left_hip"]["joint"], "hip")


if __name__ == "__main__":
    unittest.main()
