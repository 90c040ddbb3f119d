"""
Turn a photo (or saved / mock keypoints) into a posed primitive humanoid,
export it as a mesh file and render a shaded preview.

The pipeline:
1. Gather keypoints (MediaPipe on the photo, a keypoint JSON, or the mock detector).
2. Generate body parameters (stand-in) and build the posed humanoid hierarchy.
3. Export the hierarchy as a GLB scene graph (or a flattened OBJ/PLY).
4. Render the figure with pyrender's offscreen renderer, falling back to Matplotlib.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import List, Sequence, Tuple

import cv2
import numpy as np
import trimesh

from humanoid import Primitive, SceneNode, iter_nodes, world_matrices
from mesh_builder import build_mesh
from pipeline import process_image
from pipeline_config import PipelineConfig, ProportionConfig
from pose_utils import load_keypoints_json, save_keypoints_json
from smpl_fit import fit_body_params

logger = logging.getLogger(__name__)

# Figure is Y-up; the cameras below work in a Z-up world.
Y_UP_TO_Z_UP = trimesh.transformations.rotation_matrix(np.pi / 2.0, [1.0, 0.0, 0.0])


def _normalize(vec: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(vec))
    if norm < 1e-8:
        return vec
    return vec / norm


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Build a posed primitive humanoid from a photo and export a mesh + preview."
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--image", type=Path, help="Input photo path (runs MediaPipe Pose).")
    source.add_argument(
        "--keypoints-json",
        type=Path,
        help="Keypoint JSON (from --save-keypoints) to skip pose detection.",
    )
    source.add_argument("--mock", action="store_true", help="Use the mock keypoint detector.")
    parser.add_argument(
        "--betas",
        type=float,
        nargs="*",
        help="Shape coefficients; random near-neutral values when omitted.",
    )
    parser.add_argument("--seed", type=int, help="Seed for the parameter stand-in and mock detector.")
    parser.add_argument(
        "--min-confidence",
        type=float,
        default=0.3,
        help="Keypoints below this confidence are ignored for proportions.",
    )
    parser.add_argument(
        "--detector-threshold",
        type=float,
        default=0.5,
        help="Keypoints below this confidence are discarded right after detection.",
    )
    parser.add_argument(
        "--output-mesh",
        type=Path,
        default=Path("humanoid.glb"),
        help="Mesh export path (.glb keeps the hierarchy; .obj/.ply are flattened).",
    )
    parser.add_argument("--output-image", type=Path, help="Optional PNG preview render.")
    parser.add_argument("--output-json", type=Path, help="Optional JSON summary of proportions + hierarchy.")
    parser.add_argument("--save-keypoints", type=Path, help="Optional keypoint JSON dump.")
    parser.add_argument(
        "--image-size",
        type=int,
        default=960,
        help="Width/height (pixels) of the rendered preview.",
    )
    parser.add_argument("--camera-elevation", type=float, default=15.0, help="Camera elevation in degrees.")
    parser.add_argument("--camera-azimuth", type=float, default=25.0, help="Camera azimuth in degrees.")
    parser.add_argument(
        "--distance-scale",
        type=float,
        default=3.0,
        help="Multiplier on the bounding radius for camera distance.",
    )
    parser.add_argument(
        "--sections",
        type=int,
        default=24,
        help="Number of radial segments for limb cylinders (higher = smoother).",
    )
    parser.add_argument("--background", type=str, default="#f2f2f3", help="Hex color for the render background.")
    parser.add_argument("--verbose", action="store_true", help="Log debug detail.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s | %(name)s | %(message)s",
    )
    config = PipelineConfig(
        inference_mode="mock" if args.mock else "real",
        keypoint_confidence_threshold=args.detector_threshold,
        mock_delays={},
        proportions=ProportionConfig(min_confidence=args.min_confidence),
    )

    if args.keypoints_json:
        keypoints = load_keypoints_json(args.keypoints_json)
        params = fit_body_params(keypoints, rng=args.seed)
    else:
        result = process_image(args.image, config=config, rng=args.seed)
        keypoints = result.keypoints
        params = result.params
    if args.betas is not None:
        params.betas = list(args.betas)

    mesh = build_mesh(params, config=config)
    for line in mesh.warnings:
        print(f"warning: {line}")

    if args.save_keypoints:
        save_keypoints_json(keypoints, args.save_keypoints)
        print(f"Saved keypoints to {args.save_keypoints}")

    export_humanoid(mesh.root, args.output_mesh, sections=args.sections)
    print(f"Saved mesh to {args.output_mesh}")

    if args.output_json:
        args.output_json.write_text(json.dumps(mesh.to_dict(), indent=2))
        print(f"Saved summary to {args.output_json}")

    if args.output_image:
        image = render_preview(
            mesh.root,
            args.image_size,
            args.camera_elevation,
            args.camera_azimuth,
            args.distance_scale,
            _hex_to_rgba(args.background),
            sections=args.sections,
        )
        cv2.imwrite(str(args.output_image), cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA))
        print(f"Saved preview render to {args.output_image}")


# -----------------------------------------------------------------------------
# Geometry


def primitive_mesh(primitive: Primitive, sections: int = 24) -> trimesh.Trimesh:
    """Primitive geometry in its node's local frame (long axis along +Y)."""
    size = primitive.size
    if primitive.kind == "cylinder":
        mesh = trimesh.creation.cylinder(radius=size["radius"], height=size["height"], sections=sections)
    elif primitive.kind == "capsule":
        mesh = trimesh.creation.capsule(height=size["height"], radius=size["radius"], count=[sections, sections])
    elif primitive.kind == "sphere":
        return _colored(trimesh.creation.icosphere(subdivisions=2, radius=size["radius"]), primitive.color)
    elif primitive.kind == "box":
        return _colored(
            trimesh.creation.box(extents=(size["width"], size["height"], size["depth"])),
            primitive.color,
        )
    else:
        raise ValueError(f"Unknown primitive kind '{primitive.kind}'")

    # trimesh builds cylinders and capsules along Z.
    mesh.apply_transform(trimesh.geometry.align_vectors([0, 0, 1], [0, 1, 0]))
    return _colored(mesh, primitive.color)


def _colored(mesh: trimesh.Trimesh, color: Tuple[int, int, int, int]) -> trimesh.Trimesh:
    mesh.visual.vertex_colors = np.tile(np.array(color, dtype=np.uint8), (mesh.vertices.shape[0], 1))
    return mesh


def hierarchy_to_meshes(root: SceneNode, sections: int = 24) -> List[trimesh.Trimesh]:
    """One world-space mesh per primitive node."""
    worlds = world_matrices(root)
    meshes: List[trimesh.Trimesh] = []
    for node in iter_nodes(root):
        if node.primitive is None:
            continue
        mesh = primitive_mesh(node.primitive, sections)
        mesh.apply_transform(worlds[node.name])
        mesh.metadata = {"type": node.primitive.kind, "name": node.name}
        meshes.append(mesh)
    return meshes


def hierarchy_to_scene(root: SceneNode, sections: int = 24) -> trimesh.Scene:
    """trimesh scene whose graph mirrors the node tree, local transforms included."""
    scene = trimesh.Scene()

    def _add(node: SceneNode, parent_name: str) -> None:
        if node.primitive is not None:
            scene.add_geometry(
                primitive_mesh(node.primitive, sections),
                node_name=node.name,
                geom_name=node.name,
                parent_node_name=parent_name,
                transform=node.local_matrix(),
            )
        else:
            scene.graph.update(frame_from=parent_name, frame_to=node.name, matrix=node.local_matrix())
        for child in node.children:
            _add(child, node.name)

    _add(root, scene.graph.base_frame)
    return scene


def export_humanoid(root: SceneNode, output_path: Path, sections: int = 24) -> None:
    output_path = Path(output_path)
    if output_path.suffix.lower() in (".glb", ".gltf"):
        hierarchy_to_scene(root, sections).export(str(output_path))
        return
    meshes = hierarchy_to_meshes(root, sections)
    combined = trimesh.util.concatenate(meshes)
    combined.visual.vertex_colors = np.vstack([mesh.visual.vertex_colors for mesh in meshes])
    combined.export(str(output_path))


# -----------------------------------------------------------------------------
# Preview rendering


def render_preview(
    root: SceneNode,
    image_size: int = 960,
    elevation_deg: float = 15.0,
    azimuth_deg: float = 25.0,
    distance_scale: float = 3.0,
    bg_rgba: Tuple[int, int, int, int] = (242, 242, 243, 255),
    sections: int = 24,
) -> np.ndarray:
    """RGBA preview of the figure; pyrender when an offscreen context is available."""
    meshes = hierarchy_to_meshes(root, sections)
    for mesh in meshes:
        mesh.apply_transform(Y_UP_TO_Z_UP)
    center, radius = _scene_bounds(meshes)
    bg_float = np.array(bg_rgba, dtype=np.float32) / 255.0

    try:
        os.environ.setdefault("PYOPENGL_PLATFORM", "egl")
        import pyrender

        scene = pyrender.Scene(bg_color=bg_float, ambient_light=np.array([0.35, 0.35, 0.35]))
        for mesh in meshes:
            scene.add(pyrender.Mesh.from_trimesh(mesh, smooth=False))

        camera_pose = _camera_pose(center, radius, elevation_deg, azimuth_deg, distance_scale)
        scene.add(pyrender.PerspectiveCamera(yfov=np.deg2rad(45.0)), pose=camera_pose)
        scene.add(pyrender.DirectionalLight(color=np.ones(3), intensity=3.0), pose=camera_pose)
        side_pose = camera_pose.copy()
        side_pose[:3, 3] = center + np.array([radius * 2.0, radius * 1.1, radius * 1.5])
        scene.add(pyrender.DirectionalLight(color=np.ones(3), intensity=2.5), pose=side_pose)

        r = pyrender.OffscreenRenderer(viewport_width=image_size, viewport_height=image_size)
        color, _ = r.render(scene, flags=pyrender.RenderFlags.RGBA)
        r.delete()
        return color
    except Exception as exc:
        logger.warning("pyrender offscreen failed (%s); falling back to Matplotlib render.", exc)
        return _matplotlib_render(meshes, image_size, elevation_deg, azimuth_deg, center, radius, bg_rgba)


def _matplotlib_render(
    meshes: Sequence[trimesh.Trimesh],
    image_size: int,
    elevation_deg: float,
    azimuth_deg: float,
    center: np.ndarray,
    radius: float,
    bg_rgba: Tuple[int, int, int, int],
) -> np.ndarray:
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt
    from mpl_toolkits.mplot3d.art3d import Poly3DCollection

    dpi = 100
    fig = plt.figure(figsize=(image_size / dpi, image_size / dpi), dpi=dpi)
    ax = fig.add_subplot(111, projection="3d")
    ax.set_axis_off()
    bg_rgb = np.array(bg_rgba[:3], dtype=np.float32) / 255.0
    fig.patch.set_facecolor(bg_rgb)
    ax.set_facecolor(bg_rgb)

    for mesh in meshes:
        faces = mesh.faces
        colors = mesh.visual.vertex_colors[faces].mean(axis=1) / 255.0
        poly = Poly3DCollection(mesh.vertices[faces], facecolors=colors, linewidths=0.2, edgecolor="k", alpha=0.95)
        ax.add_collection3d(poly)

    extent = radius * 1.1
    ax.set_xlim(center[0] - extent, center[0] + extent)
    ax.set_ylim(center[1] - extent, center[1] + extent)
    ax.set_zlim(center[2] - extent, center[2] + extent)
    # Matplotlib's azimuth 0 looks along +X; shift so 0 faces the figure's front.
    ax.view_init(elev=elevation_deg, azim=azimuth_deg - 90.0)

    fig.tight_layout(pad=0)
    fig.canvas.draw()
    image = np.asarray(fig.canvas.buffer_rgba()).copy()
    plt.close(fig)
    return image


def _scene_bounds(meshes: Sequence[trimesh.Trimesh]) -> Tuple[np.ndarray, float]:
    """Center of the combined bounding box and half its diagonal."""
    corners = np.vstack([mesh.bounds for mesh in meshes])
    lo = corners.min(axis=0)
    hi = corners.max(axis=0)
    return (lo + hi) * 0.5, float(np.linalg.norm(hi - lo)) * 0.5


def _camera_pose(
    center: np.ndarray,
    radius: float,
    elevation_deg: float,
    azimuth_deg: float,
    distance_scale: float,
) -> np.ndarray:
    distance = max(radius * distance_scale, 0.5)
    elev = np.deg2rad(elevation_deg)
    azim = np.deg2rad(azimuth_deg)

    # The figure faces -Y after the Z-up conversion.
    eye = center + np.array(
        [
            distance * np.cos(elev) * np.sin(azim),
            -distance * np.cos(elev) * np.cos(azim),
            distance * np.sin(elev),
        ]
    )

    # pyrender cameras look down their local -Z.
    backward = _normalize(eye - center)
    right = np.cross(np.array([0.0, 0.0, 1.0]), backward)
    if np.linalg.norm(right) < 1e-6:
        right = np.array([1.0, 0.0, 0.0])
    right = _normalize(right)
    up = np.cross(backward, right)

    pose = np.eye(4)
    pose[:3, 0] = right
    pose[:3, 1] = up
    pose[:3, 2] = backward
    pose[:3, 3] = eye
    return pose


def _hex_to_rgba(hex_color: str) -> Tuple[int, int, int, int]:
    digits = hex_color.lstrip("#")
    if len(digits) == 6:
        digits += "ff"
    try:
        channels = bytes.fromhex(digits)
    except ValueError:
        channels = b""
    if len(channels) != 4:
        raise ValueError(f"Expected #rrggbb or #rrggbbaa, got '{hex_color}'")
    red, green, blue, alpha = channels
    return red, green, blue, alpha


if __name__ == "__main__":
    main()
