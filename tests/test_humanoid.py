import sys
import unittest
from pathlib import Path

import numpy as np

# Allow root-level module imports when run without installation.
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from humanoid import (  # noqa: E402
    ELBOW_REST_ROTATION,
    Primitive,
    LimbKind,
    Side,
    assemble_humanoid,
    find_limb,
    foot_height,
    iter_nodes,
    limb_groups,
    world_matrices,
)
from mesh_builder import hierarchy_summary  # noqa: E402
from proportions import proportions_from_betas  # noqa: E402


def child_kinds(node):
    return {child.name.split("_", 1)[-1]: child for child in node.children}


class TestHumanoidShape(unittest.TestCase):
    def setUp(self) -> None:
        self.proportions = proportions_from_betas([0.4, -0.2, 0.1, 0.3])
        self.root = assemble_humanoid(self.proportions)

    def test_root_children(self) -> None:
        names = [child.name for child in self.root.children]
        self.assertEqual(
            names,
            ["torso", "head", "left_shoulder", "right_shoulder", "left_hip", "right_hip"],
        )
        self.assertEqual(self.root.find("torso").primitive.kind, "capsule")
        self.assertEqual(self.root.find("head").primitive.kind, "sphere")

    def test_two_arms_and_two_legs(self) -> None:
        groups = limb_groups(self.root)
        self.assertEqual(len(groups), 4)
        self.assertEqual(sum(1 for g in groups if g.tag.kind is LimbKind.ARM), 2)
        self.assertEqual(sum(1 for g in groups if g.tag.kind is LimbKind.LEG), 2)
        self.assertEqual({g.tag.side for g in groups}, {Side.LEFT, Side.RIGHT})

    def test_arm_structure(self) -> None:
        for side in Side:
            arm = find_limb(self.root, side, LimbKind.ARM)
            parts = child_kinds(arm)
            self.assertEqual(parts["upper_arm"].primitive.kind, "cylinder")
            elbow = arm.child_joint("elbow")
            self.assertIsNotNone(elbow)
            self.assertEqual(
                sorted(child.primitive.kind for child in elbow.children), ["cylinder", "sphere"]
            )
            self.assertIn(f"{side.value}_forearm", [child.name for child in elbow.children])
            self.assertIn(f"{side.value}_hand", [child.name for child in elbow.children])

    def test_leg_structure(self) -> None:
        for side in Side:
            leg = find_limb(self.root, side, LimbKind.LEG)
            self.assertEqual(child_kinds(leg)["thigh"].primitive.kind, "cylinder")
            knee = leg.child_joint("knee")
            self.assertIsNotNone(knee)
            kinds = {child.name: child.primitive.kind for child in knee.children}
            self.assertEqual(kinds, {f"{side.value}_shin": "cylinder", f"{side.value}_foot": "box"})

    def test_tags_match_lateral_placement(self) -> None:
        for group in limb_groups(self.root):
            self.assertGreater(group.tag.side.sign * group.position[0], 0.0, group.name)

    def test_rest_pose_rotations(self) -> None:
        for node in iter_nodes(self.root):
            expected = ELBOW_REST_ROTATION if node.joint == "elbow" else (0.0, 0.0, 0.0)
            np.testing.assert_array_equal(node.rotation, expected)

    def test_elbow_rest_yaw_keeps_forearm_hanging(self) -> None:
        worlds = world_matrices(self.root)
        for side in Side:
            elbow = worlds[f"{side.value}_elbow"][:3, 3]
            hand = worlds[f"{side.value}_hand"][:3, 3]
            np.testing.assert_allclose(hand[[0, 2]], elbow[[0, 2]], atol=1e-12)
            self.assertAlmostEqual(elbow[1] - hand[1], self.proportions.forearm_length)

    def test_unknown_primitive_kind_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Primitive("torus", {"radius": 0.1})

    def test_node_names_are_unique(self) -> None:
        names = [node.name for node in iter_nodes(self.root)]
        self.assertEqual(len(names), len(set(names)))

    def test_feet_rest_on_ground(self) -> None:
        worlds = world_matrices(self.root)
        half = foot_height(self.proportions) / 2.0
        for side in Side:
            self.assertAlmostEqual(worlds[f"{side.value}_foot"][1, 3] - half, 0.0, places=9)

    def test_head_sits_above_torso_and_shoulders(self) -> None:
        worlds = world_matrices(self.root)
        self.assertGreater(worlds["head"][1, 3], worlds["torso"][1, 3])
        self.assertGreater(worlds["head"][1, 3], worlds["left_shoulder"][1, 3])
        self.assertGreater(worlds["left_shoulder"][1, 3], worlds["left_hip"][1, 3])

    def test_same_proportions_give_same_tree(self) -> None:
        again = assemble_humanoid(self.proportions)
        self.assertEqual(hierarchy_summary(self.root), hierarchy_summary(again))


if __name__ == "__main__":
    unittest.main()
