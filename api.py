"""
Lightweight REST API that turns an input photo into a posed primitive humanoid.

Usage:
    pip install fastapi uvicorn python-multipart
    uvicorn api:app --reload

POST /humanoid with a multipart field named ``image`` (JPEG or PNG). The
``variant`` query parameter selects the response: ``glb`` (default) streams the
humanoid scene, ``preview`` a rendered PNG, ``json`` the proportions and
hierarchy summary.

POST /humanoid/params skips detection and builds the humanoid straight from a
JSON body of betas, thetas and optional keypoints.

The pipeline mode comes from HUMANOID_INFERENCE_MODE (``mock`` or ``real``).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from tempfile import NamedTemporaryFile, TemporaryDirectory
from typing import Any, Dict, List, Optional

import cv2

os.environ.setdefault("MEDIAPIPE_DISABLE_GPU", "1")

from fastapi import FastAPI, File, HTTPException, Request, UploadFile  # noqa: E402
from fastapi.responses import FileResponse, JSONResponse  # noqa: E402
from pydantic import BaseModel  # noqa: E402
from starlette.background import BackgroundTask  # noqa: E402
from starlette.concurrency import run_in_threadpool  # noqa: E402

from mesh_builder import InvalidParameters, build_mesh  # noqa: E402
from pipeline import process_image  # noqa: E402
from pipeline_config import PipelineConfig  # noqa: E402
from render_humanoid import export_humanoid, render_preview  # noqa: E402

logger = logging.getLogger(__name__)

app = FastAPI(title="Humanoid Maquette API")
config = PipelineConfig.from_env()

VARIANTS = {"glb", "preview", "json"}


class KeypointPayload(BaseModel):
    name: str
    x: float
    y: float
    confidence: float = 0.0


class HumanoidParams(BaseModel):
    betas: List[float]
    thetas: List[float]
    keypoints: Optional[List[KeypointPayload]] = None


def _generate_assets(image_path: Path, output_dir: Path, variant: str) -> Dict[str, Any]:
    """Run the pipeline and export the requested asset into ``output_dir``."""
    result = process_image(image_path, config=config, logger=logger)
    summary = result.mesh.to_dict()
    summary["timings"] = result.timings
    summary["num_keypoints"] = len(result.keypoints)

    assets: Dict[str, Any] = {"summary": summary}
    if variant == "preview":
        preview_rgba = render_preview(result.mesh.root, image_size=960)
        preview_path = output_dir / "humanoid_preview.png"
        cv2.imwrite(str(preview_path), cv2.cvtColor(preview_rgba, cv2.COLOR_RGBA2BGRA))
        assets["preview"] = preview_path
    elif variant == "glb":
        glb_path = output_dir / "humanoid.glb"
        export_humanoid(result.mesh.root, glb_path)
        assets["glb"] = glb_path
    return assets


@app.get("/")
async def root() -> JSONResponse:
    return JSONResponse(
        {"message": "Humanoid maquette API is running", "inference_mode": config.inference_mode}
    )


@app.post("/humanoid")
async def make_humanoid(request: Request, image: UploadFile = File(...)):
    if image.content_type not in {"image/jpeg", "image/png"}:
        raise HTTPException(status_code=400, detail="Only JPEG or PNG images are supported.")

    variant = (request.query_params.get("variant") or "glb").lower()
    if variant not in VARIANTS:
        logger.warning("unknown variant '%s'; returning glb", variant)
        variant = "glb"

    with NamedTemporaryFile(delete=False, suffix=Path(image.filename or "upload.png").suffix) as tmp:
        tmp_path = Path(tmp.name)
        tmp.write(await image.read())

    output_tmpdir = TemporaryDirectory()
    output_dir = Path(output_tmpdir.name)

    def cleanup() -> None:
        tmp_path.unlink(missing_ok=True)
        output_tmpdir.cleanup()

    try:
        assets = await run_in_threadpool(_generate_assets, tmp_path, output_dir, variant)
    except InvalidParameters as exc:
        cleanup()
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except RuntimeError as exc:
        cleanup()
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except FileNotFoundError as exc:
        cleanup()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception:
        cleanup()
        raise

    if variant == "json":
        cleanup()
        return JSONResponse(assets["summary"])
    if variant == "preview":
        return FileResponse(
            assets["preview"],
            filename="humanoid_preview.png",
            media_type="image/png",
            background=BackgroundTask(cleanup),
        )
    return FileResponse(
        assets["glb"],
        filename="humanoid.glb",
        media_type="model/gltf-binary",
        background=BackgroundTask(cleanup),
    )


@app.post("/humanoid/params")
async def make_humanoid_from_params(params: HumanoidParams) -> JSONResponse:
    payload: Dict[str, Any] = {"betas": params.betas, "thetas": params.thetas}
    if params.keypoints is not None:
        payload["keypoints"] = [
            {"name": kp.name, "x": kp.x, "y": kp.y, "confidence": kp.confidence}
            for kp in params.keypoints
        ]
    try:
        mesh = await run_in_threadpool(build_mesh, payload, config, logger)
    except InvalidParameters as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return JSONResponse(mesh.to_dict())


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(name)s | %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
