from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .. import __version__
from ..clock import Clock
from ..config import Settings, configure_logging
from ..db import FlowDB
from ..errors import FlowError
from ..llm import OpenAIChatClient, TextGenerator
from ..service import FlowService
from .routes.flow import router as flow_router
from .routes.health import router as health_router
from .routes.meta import router as meta_router
from .routes.patterns import router as patterns_router
from .routes.sessions import router as sessions_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    generator: TextGenerator | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    resolved = settings or Settings.from_env()
    db = FlowDB(resolved.db_path, journal_mode=resolved.journal_mode)
    service = FlowService(
        db=db,
        generator=generator or OpenAIChatClient.from_settings(resolved),
        clock=clock,
        settings=resolved,
    )

    app = FastAPI(title="FlowState API", version=__version__)
    app.state.flow_service = service

    app.include_router(health_router)
    app.include_router(meta_router)
    app.include_router(flow_router)
    app.include_router(sessions_router)
    app.include_router(patterns_router)

    app.add_exception_handler(FlowError, _flow_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
    return app


def create_default_app() -> FastAPI:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    return create_app(settings=settings)


async def _flow_error_handler(request: Request, exc: FlowError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed upstream: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content={"success": False, "error": exc.message})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    parts = []
    for item in exc.errors():
        location = ".".join(str(piece) for piece in item.get("loc", ()) if piece != "body")
        parts.append(f"{location}: {item.get('msg', 'invalid')}" if location else str(item.get("msg", "invalid")))
    return JSONResponse(status_code=400, content={"success": False, "error": "; ".join(parts)})


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})
