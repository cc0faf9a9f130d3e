"""
crucible.api.main — FastAPI application entry point
====================================================

Run with::

    uvicorn crucible.api.main:app --reload --port 8000

Caller-facing service errors become ``{"ok": false, "error": <kind>,
"detail": <message>}`` with a status picked from the error class.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

load_dotenv()

from crucible.api.deps import get_engine  # noqa: E402
from crucible.api.routes.admin import router as admin_router  # noqa: E402
from crucible.api.routes.public import router as public_router  # noqa: E402
from crucible.services.errors import (  # noqa: E402
    AuthorizationError,
    ConflictError,
    CrucibleError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[CrucibleError], int]] = [
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
]


def status_for(exc: CrucibleError) -> int:
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return 400


def _cors_origins() -> list[str]:
    """Allowed origins from CORS_ALLOW_ORIGINS (comma-separated) or FRONTEND_URL."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("Crucible API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Crucible API shutting down")


app = FastAPI(
    title="Crucible Dashboard API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CrucibleError)
async def crucible_error_handler(request: Request, exc: CrucibleError):
    return JSONResponse(
        status_code=status_for(exc),
        content={"ok": False, "error": exc.kind, "detail": exc.message},
    )


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Storage error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "internal", "detail": "Internal storage error."},
    )


app.include_router(public_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
