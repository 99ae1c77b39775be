"""
shopsage/src/main.py — Application Entry Point

Responsibility:
    FastAPI application factory.  ``create_app()`` builds the FastAPI
    instance, wires the ``SessionManager`` (or records why it could not
    be built), registers the chat routes and the error handlers, and
    configures CORS for the storefront widget.

    On shutdown the lifespan hook waits for pending interaction-log
    writes.

    A missing credential does not stop the process: the app starts,
    logs the ``ConfigurationError`` once, and every ``/api/chat``
    request answers 500 with the safe configuration message.

Run:
    uvicorn shopsage.src.main:create_app --factory --host 0.0.0.0 --port 8000
    python -m shopsage.src.main

Related Files:
    - shopsage/src/api/routes.py        → Route definitions mounted here
    - shopsage/src/core/chat_engine.py  → ``build_session_manager()``
    - shopsage/config/settings.py       → Host, port, CORS origins, credentials
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shopsage.config.settings import Settings, settings
from shopsage.src.api.routes import router
from shopsage.src.core.chat_engine import SessionManager, build_session_manager
from shopsage.src.core.errors import ConfigurationError, ShopSageError, classify
from shopsage.src.utils.logger import get_logger, quiet_third_party_loggers

logger = get_logger(__name__)


async def _shopsage_error_handler(request: Request, exc: ShopSageError) -> JSONResponse:
    classified = classify(exc)
    if classified.status_code >= 500:
        logger.error("[API] %s %s → %d (%s: %s)", request.method, request.url.path, classified.status_code, type(exc).__name__, exc)
    else:
        logger.info("[API] %s %s → %d (%s)", request.method, request.url.path, classified.status_code, classified.message)
    return JSONResponse(status_code=classified.status_code, content={"error": classified.message})


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unmatched method or path; same body shape as the chat route.
    message = f"Method {request.method} Not Allowed" if exc.status_code == 405 else str(exc.detail)
    logger.info("[API] %s %s → %d (%s)", request.method, request.url.path, exc.status_code, message)
    return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=getattr(exc, "headers", None))


@asynccontextmanager
async def _lifespan(app: FastAPI):
    logger.info("[API] ShopSage starting (session manager %s).", "ready" if app.state.session_manager else "UNAVAILABLE")
    yield
    manager: SessionManager | None = app.state.session_manager
    if manager is not None:
        pending = manager.interaction_logger.pending
        if pending:
            logger.info("[API] Draining %d pending interaction-log write(s) …", pending)
        await manager.interaction_logger.drain()
    logger.info("[API] ShopSage stopped.")


def create_app(session_manager: SessionManager | None = None, config: Settings | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Parameters
    ----------
    session_manager
        Pre-built manager (tests).  When omitted one is built from *config*.
    config
        Settings to build from.  Defaults to the ``settings`` singleton.
    """
    config = config or settings
    quiet_third_party_loggers()

    startup_error: ConfigurationError | None = None
    if session_manager is None:
        try:
            session_manager = build_session_manager(config)
        except ConfigurationError as exc:
            logger.error("[API] Configuration error; chat requests will fail: %s", exc)
            startup_error = exc

    app = FastAPI(title="ShopSage", description="Storefront shopping assistant", lifespan=_lifespan)
    app.state.session_manager = session_manager
    app.state.startup_error = startup_error

    app.add_middleware(CORSMiddleware, allow_origins=config.CORS_ORIGINS, allow_methods=["POST", "OPTIONS"], allow_headers=["*"])
    app.add_exception_handler(ShopSageError, _shopsage_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)  # type: ignore[arg-type]
    app.include_router(router)
    return app


if __name__ == "__main__":
    uvicorn.run("shopsage.src.main:create_app", factory=True, host=settings.HOST, port=settings.PORT)
