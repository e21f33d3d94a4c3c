"""
HTTP front door.

    POST /api/shoe-image   {"model": "..."} → image URL + diagnostics
    GET  /api/stats        pipeline and cache counters
    GET  /health           liveness
    GET  /images/...       published and intermediate artifacts
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from config.settings import AppConfig, cfg as default_cfg
from core.pipeline import PipelineResult, ShoeImagePipeline
from utils.log_config import get_logger
from utils.text_cleaner import is_valid_query

log = get_logger(__name__)

_MISSING_MODEL = "`model` (string) is required in the request body."


def create_app(
    config: Optional[AppConfig] = None,
    pipeline: Optional[ShoeImagePipeline] = None,
) -> FastAPI:
    config = config or default_cfg
    config.paths.ensure()
    pipeline = pipeline or ShoeImagePipeline(config)
    prefix = config.server.images_prefix

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        log.info("Serving images from %s", config.paths.images_dir)
        yield
        await pipeline.close()
        log.info("Pipeline closed")

    app = FastAPI(title="Shoe Image API", lifespan=lifespan)
    app.state.pipeline = pipeline

    def absolute(request: Request, path: Optional[Path]) -> Optional[str]:
        if path is None:
            return None
        base = str(request.base_url).rstrip("/")
        return base + pipeline.cache.url_for(path, prefix)

    def payload(request: Request, result: PipelineResult) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": result.success,
            "model": result.model,
            "source": result.source,
            "imageUrl": absolute(request, result.final_path),
            "rawDownloadedUrl": absolute(request, result.raw_download_path),
            "geminiInputUrl": absolute(request, result.validator_input_path),
            "geminiApprovedRawUrl": absolute(request, result.approved_raw_path),
            "geminiRejectedUrl": absolute(request, result.rejected_path),
            "geminiValidationStatus": result.validation_status.value,
            "originalImageUrl": result.original_image_url,
            "outcome": result.outcome.value,
        }
        if not result.success:
            body["error"] = result.error
        return body

    # ── routes ──────────────────────────────────────────────

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/stats")
    async def stats() -> Dict[str, Any]:
        return {
            "pipeline": pipeline.stats.snapshot(),
            "cache": pipeline.cache.stats(),
        }

    @app.post("/api/shoe-image")
    async def shoe_image(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            body = None
        model = body.get("model") if isinstance(body, dict) else None
        if not is_valid_query(model):
            return JSONResponse({"success": False, "error": _MISSING_MODEL}, status_code=400)

        result = await pipeline.resolve(model)
        status = 200 if result.success else 404
        return JSONResponse(payload(request, result), status_code=status)

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception) -> JSONResponse:
        log.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            {"success": False, "error": f"Internal server error: {exc}"},
            status_code=500,
        )

    app.mount(prefix, StaticFiles(directory=str(config.paths.images_dir)), name="images")
    return app
