from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .. import __version__
from ..board.context import Board
from ..errors import (
    ExternalFailure,
    MissionControlError,
    NotFoundError,
    PolicyViolation,
    ValidationError,
    WrongTenantError,
)
from ..storage.container import Container
from .router import create_router

_STATUS_CODES: list[tuple[type[MissionControlError], int]] = [
    (NotFoundError, 404),
    (WrongTenantError, 403),
    (ValidationError, 400),
    (PolicyViolation, 409),
    (ExternalFailure, 502),
]


def status_code_for(exc: MissionControlError) -> int:
    for error_type, code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return 500


def create_app(project_dir: Optional[Path] = None, enable_cors: bool = True) -> FastAPI:
    """Create the FastAPI application serving the board of `project_dir`.

    Args:
        project_dir: Directory holding the `.mission_control` state root. Defaults to cwd.
        enable_cors: Whether to allow cross-origin requests from dashboards.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(title="Mission Control", version=__version__)
    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    board = Board(Container(project_dir or Path.cwd()))
    board.workspaces.ensure_default()
    app.state.board = board

    @app.exception_handler(MissionControlError)
    async def _mission_control_error(request: Request, exc: MissionControlError) -> JSONResponse:
        code = status_code_for(exc)
        if code >= 500:
            logger.error("{} {} failed: {}", request.method, request.url.path, exc)
        return JSONResponse(status_code=code, content={"detail": str(exc), "error": exc.__class__.__name__})

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"name": "Mission Control", "version": __version__, "status": "running"}

    app.include_router(create_router(lambda: app.state.board))
    return app
