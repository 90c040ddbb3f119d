"""
Hierarchical primitive humanoid built from a ProportionRecord.

The figure is a strict tree of transform groups and primitive nodes:

    humanoid
    ├── torso (capsule)
    ├── head (sphere)
    ├── left_shoulder / right_shoulder  [arm groups]
    │   ├── *_upper_arm (cylinder)
    │   └── *_elbow
    │       ├── *_forearm (cylinder)
    │       └── *_hand (sphere)
    └── left_hip / right_hip  [leg groups]
        ├── *_thigh (cylinder)
        └── *_knee
            ├── *_shin (cylinder)
            └── *_foot (box)

Y is up, the figure faces +Z and its left side is +X. Limbs hang straight down
from their pivots in the rest pose. Elbow groups carry a fixed half-turn yaw so
that elbow and knee flexion are both positive X rotations; every other rotation
starts at zero for the pose hints to fill in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

import numpy as np
import trimesh

from proportions import ProportionRecord


class Side(str, Enum):
    LEFT = "left"
    RIGHT = "right"

    @property
    def sign(self) -> float:
        return 1.0 if self is Side.LEFT else -1.0


class LimbKind(str, Enum):
    ARM = "arm"
    LEG = "leg"


class LimbTag(NamedTuple):
    side: Side
    kind: LimbKind


SKIN_TONES: Dict[str, Tuple[int, int, int, int]] = {
    "base": (224, 172, 125, 255),
    "shade": (196, 138, 98, 255),
}

PRIMITIVE_KINDS = ("capsule", "cylinder", "sphere", "box")

ELBOW_REST_ROTATION = (0.0, np.pi, 0.0)


@dataclass
class Primitive:
    kind: str
    size: Dict[str, float]
    color: Tuple[int, int, int, int] = SKIN_TONES["base"]

    def __post_init__(self) -> None:
        if self.kind not in PRIMITIVE_KINDS:
            raise ValueError(f"Unknown primitive kind '{self.kind}'")


@dataclass
class SceneNode:
    name: str
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: np.zeros(3))  # Euler XYZ, radians
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))
    primitive: Optional[Primitive] = None
    children: List["SceneNode"] = field(default_factory=list)
    tag: Optional[LimbTag] = None
    joint: Optional[str] = None

    def add(self, child: "SceneNode") -> "SceneNode":
        self.children.append(child)
        return child

    def find(self, name: str) -> Optional["SceneNode"]:
        for node in iter_nodes(self):
            if node.name == name:
                return node
        return None

    def child_joint(self, joint: str) -> Optional["SceneNode"]:
        for child in self.children:
            if child.joint == joint:
                return child
        return None

    def local_matrix(self) -> np.ndarray:
        matrix = trimesh.transformations.euler_matrix(*self.rotation, axes="sxyz")
        matrix[:3, :3] = matrix[:3, :3] @ np.diag(self.scale)
        matrix[:3, 3] = self.position
        return matrix


def _node(name: str, position: Tuple[float, float, float], **kwargs) -> SceneNode:
    return SceneNode(name=name, position=np.array(position, dtype=np.float64), **kwargs)


def iter_nodes(root: SceneNode) -> Iterator[SceneNode]:
    """Pre-order walk of the hierarchy."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def limb_groups(root: SceneNode) -> List[SceneNode]:
    return [node for node in iter_nodes(root) if node.tag is not None]


def find_limb(root: SceneNode, side: Side, kind: LimbKind) -> Optional[SceneNode]:
    target = LimbTag(side, kind)
    for node in root.children:
        if node.tag == target:
            return node
    return None


def world_matrices(root: SceneNode) -> Dict[str, np.ndarray]:
    """World transform of every node, keyed by node name."""
    result: Dict[str, np.ndarray] = {}

    def _walk(node: SceneNode, parent: np.ndarray) -> None:
        world = parent @ node.local_matrix()
        result[node.name] = world
        for child in node.children:
            _walk(child, world)

    _walk(root, np.eye(4))
    return result


def foot_height(proportions: ProportionRecord) -> float:
    return proportions.limb_radius * 1.2


def _build_arm(side: Side, p: ProportionRecord, shoulder_y: float) -> SceneNode:
    prefix = side.value
    x = side.sign * (p.shoulder_width / 2.0 + p.limb_radius * 0.3)
    shoulder = _node(f"{prefix}_shoulder", (x, shoulder_y, 0.0), tag=LimbTag(side, LimbKind.ARM), joint="shoulder")
    shoulder.add(
        _node(
            f"{prefix}_upper_arm",
            (0.0, -p.upper_arm_length / 2.0, 0.0),
            primitive=Primitive("cylinder", {"radius": p.limb_radius, "height": p.upper_arm_length}),
        )
    )
    # Half-turn yaw so a positive X rotation folds the forearm forward (+Z).
    elbow = shoulder.add(
        _node(
            f"{prefix}_elbow",
            (0.0, -p.upper_arm_length, 0.0),
            joint="elbow",
            rotation=np.array(ELBOW_REST_ROTATION),
        )
    )
    elbow.add(
        _node(
            f"{prefix}_forearm",
            (0.0, -p.forearm_length / 2.0, 0.0),
            primitive=Primitive("cylinder", {"radius": p.limb_radius * 0.85, "height": p.forearm_length}),
        )
    )
    elbow.add(
        _node(
            f"{prefix}_hand",
            (0.0, -p.forearm_length, 0.0),
            primitive=Primitive("sphere", {"radius": p.limb_radius * 1.2}, SKIN_TONES["shade"]),
        )
    )
    return shoulder


def _build_leg(side: Side, p: ProportionRecord, hip_y: float) -> SceneNode:
    prefix = side.value
    hip = _node(f"{prefix}_hip", (side.sign * p.hip_width / 2.0, hip_y, 0.0), tag=LimbTag(side, LimbKind.LEG), joint="hip")
    hip.add(
        _node(
            f"{prefix}_thigh",
            (0.0, -p.thigh_length / 2.0, 0.0),
            primitive=Primitive("cylinder", {"radius": p.limb_radius * 1.3, "height": p.thigh_length}),
        )
    )
    knee = hip.add(_node(f"{prefix}_knee", (0.0, -p.thigh_length, 0.0), joint="knee"))
    knee.add(
        _node(
            f"{prefix}_shin",
            (0.0, -p.shin_length / 2.0, 0.0),
            primitive=Primitive("cylinder", {"radius": p.limb_radius * 1.1, "height": p.shin_length}),
        )
    )
    fh = foot_height(p)
    knee.add(
        _node(
            f"{prefix}_foot",
            (0.0, -p.shin_length - fh / 2.0, p.limb_radius),
            primitive=Primitive(
                "box",
                {"width": p.limb_radius * 2.2, "height": fh, "depth": p.limb_radius * 5.0},
                SKIN_TONES["shade"],
            ),
        )
    )
    return hip


def assemble_humanoid(proportions: ProportionRecord) -> SceneNode:
    """Build the rest-pose hierarchy; identical input gives an identical tree."""
    p = proportions
    hip_y = p.hip_width * 0.1
    torso_y = p.torso_length / 2.0 + hip_y
    # Ground contact: lowest point of the feet sits on y = 0.
    lift = p.thigh_length + p.shin_length + foot_height(p) - hip_y

    root = _node("humanoid", (0.0, lift, 0.0))
    root.add(
        _node(
            "torso",
            (0.0, torso_y, 0.0),
            primitive=Primitive(
                "capsule",
                {
                    "radius": p.torso_radius,
                    # Capsule spans torso_length end to end, caps included.
                    "height": max(p.torso_length - 2.0 * p.torso_radius, p.torso_length * 0.1),
                },
            ),
        )
    )
    root.add(
        _node(
            "head",
            (0.0, torso_y + p.torso_length * 0.6 + p.head_radius * 1.6, 0.0),
            primitive=Primitive("sphere", {"radius": p.head_radius}, SKIN_TONES["shade"]),
            joint="neck",
        )
    )

    shoulder_y = torso_y + p.torso_length * 0.45
    for side in (Side.LEFT, Side.RIGHT):
        root.add(_build_arm(side, p, shoulder_y))
    for side in (Side.LEFT, Side.RIGHT):
        root.add(_build_leg(side, p, hip_y))
    return root
