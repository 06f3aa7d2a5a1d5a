"""FastAPI application factory and mounts."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from livecut.core import PipelineConfig, load_config
from livecut.core.errors import (
    ConflictError,
    ExternalServiceError,
    InvalidInputError,
    LivecutError,
    NotFoundError,
    OperationCancelled,
    ResourceError,
)
from livecut.core.logging_utils import get_logger
from livecut.media import Transcoder
from livecut.segment import FrameClassifier

from .routers.export import router as export_router
from .routers.segments import router as segments_router
from .routers.videos import router as videos_router
from .state import build_state
from .workspace import open_workspace

logger = get_logger("livecut.server")

# Order matters: the first matching base class wins.
ERROR_STATUS: Tuple[Tuple[Type[LivecutError], int], ...] = (
    (NotFoundError, 404),
    (InvalidInputError, 400),
    (ConflictError, 409),
    (OperationCancelled, 409),
    (ExternalServiceError, 502),
    (ResourceError, 500),
)


def status_for(exc: LivecutError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


async def _livecut_error_handler(request: Request, exc: LivecutError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    payload: Dict[str, str] = {"error": type(exc).__name__, "detail": str(exc)}
    return JSONResponse(status_code=status, content=payload)


def create_app(
    workspace_root: Optional[Path] = None,
    *,
    config: Optional[PipelineConfig] = None,
    transcoder: Optional[Transcoder] = None,
    classifier_factory: Optional[Callable[[], FrameClassifier]] = None,
    autostart: bool = True,
) -> FastAPI:
    """Create the FastAPI app instance."""

    workspace = open_workspace(workspace_root)
    state = build_state(
        workspace,
        config or load_config(),
        transcoder=transcoder,
        classifier_factory=classifier_factory,
        autostart=autostart,
    )
    app = FastAPI(title="Livecut Server", version="0.1.0")
    app.state.livecut = state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )
    app.add_exception_handler(LivecutError, _livecut_error_handler)

    app.include_router(videos_router)
    app.include_router(segments_router)
    app.include_router(export_router)
    app.mount("/downloads", StaticFiles(directory=str(workspace.exports_dir)), name="downloads")
    return app
