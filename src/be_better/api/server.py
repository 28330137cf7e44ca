"""
FastAPI backend server for Be Better.

This module builds the FastAPI application that holds the remote ledger:
- CORS middleware so the browser client on another origin can call the API
- Exception handlers so every failure body is ``{"error": "<message>"}``
- Schema initialization on startup
- All route registrations

The server listens on port 3000 by default and binds every interface so
clients on other machines can reach it.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from be_better import __version__
from be_better.api.routes import register_routes
from be_better.db import schema, sessions_repo
from be_better.db.errors import DatabaseError

logger = logging.getLogger(__name__)


# ============================================================================
# ERROR HANDLERS
# ============================================================================


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed bodies are client errors, reported as 400 rather than 422
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'invalid')}" if location else first.get("msg")
    else:
        message = "invalid request"
    return JSONResponse(status_code=400, content={"error": message})


async def _database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    logger.error("Database failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "internal error"})


# ============================================================================
# APPLICATION FACTORY
# ============================================================================


@asynccontextmanager
async def _lifespan(app: FastAPI):
    schema.init_database()
    removed = sessions_repo.cleanup_expired_sessions()
    if removed:
        logger.info("Removed %d expired sessions", removed)
    logger.info("Be Better API %s ready", __version__)
    yield


def create_app() -> FastAPI:
    """
    Build a configured FastAPI application.

    CORS settings come from ``config.security``. The database schema is
    created on startup when missing.
    """
    from be_better.config import config

    app = FastAPI(title="Be Better API", version=__version__, lifespan=_lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_origins,
        allow_credentials=config.security.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(DatabaseError, _database_error_handler)

    register_routes(app)
    return app


app = create_app()


# ============================================================================
# SERVER STARTUP
# ============================================================================


def start_server(host: str | None = None, port: int | None = None) -> None:
    """Run the API under uvicorn, defaulting host and port to ``config.server``."""
    import uvicorn

    from be_better.config import config

    uvicorn.run(
        app,
        host=host or config.server.host,
        port=port or config.server.port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    start_server()
