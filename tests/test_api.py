import os
import sys
import unittest
from pathlib import Path

# Allow root-level module imports when run without installation.
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

os.environ["HUMANOID_INFERENCE_MODE"] = "mock"
os.environ["HUMANOID_MOCK_DELAY_SCALE"] = "0"

from fastapi.testclient import TestClient  # noqa: E402

from api import app  # noqa: E402
from pose_utils import MOCK_SKELETON  # noqa: E402
from proportions import MEASUREMENTS  # noqa: E402

# Contents are ignored in mock mode; only the upload type is checked.
FAKE_PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class TestHumanoidApi(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.client = TestClient(app)

    def test_root(self) -> None:
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["inference_mode"], "mock")

    def test_params_without_keypoints(self) -> None:
        response = self.client.post("/humanoid/params", json={"betas": [0.0] * 10, "thetas": [0.0] * 72})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["unresolved"], list(MEASUREMENTS))
        self.assertEqual(body["hierarchy"]["name"], "humanoid")

    def test_params_with_keypoints(self) -> None:
        keypoints = [
            {"name": name, "x": x, "y": y, "confidence": conf} for name, (x, y, conf) in MOCK_SKELETON.items()
        ]
        response = self.client.post(
            "/humanoid/params",
            json={"betas": [0.0] * 10, "thetas": [0.0] * 72, "keypoints": keypoints},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["unresolved"], [])

    def test_params_rejects_non_numeric(self) -> None:
        response = self.client.post("/humanoid/params", json={"betas": ["tall"], "thetas": []})
        self.assertEqual(response.status_code, 422)

    def test_upload_type_is_checked(self) -> None:
        response = self.client.post(
            "/humanoid",
            files={"image": ("notes.txt", b"hello", "text/plain")},
        )
        self.assertEqual(response.status_code, 400)

    def test_json_variant(self) -> None:
        response = self.client.post(
            "/humanoid",
            params={"variant": "json"},
            files={"image": ("photo.png", FAKE_PNG, "image/png")},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["num_keypoints"], 17)
        self.assertIn("hierarchy", body)
        self.assertEqual(set(body["timings"]), {"keypoints", "params", "mesh"})

    def test_glb_variant(self) -> None:
        response = self.client.post(
            "/humanoid",
            files={"image": ("photo.png", FAKE_PNG, "image/png")},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], "model/gltf-binary")
        self.assertEqual(response.content[:4], b"glTF")


if __name__ == "__main__":
    unittest.main()
