"""
marginalia.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn marginalia.api.main:app --reload --port 8000

or ``python -m marginalia.api`` to pick the port up from ``config.yaml``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from marginalia.api.auth import router as auth_router  # noqa: E402
from marginalia.api.deps import get_engine  # noqa: E402
from marginalia.api.routes.discussions import router as discussions_router  # noqa: E402
from marginalia.api.routes.home import router as home_router  # noqa: E402
from marginalia.api.routes.notes import router as notes_router  # noqa: E402
from marginalia.api.routes.stories import router as stories_router  # noqa: E402
from marginalia.api.routes.users import router as users_router  # noqa: E402
from marginalia.database.engine import init_db  # noqa: E402
from marginalia.services.errors import ServiceError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — create tables and warm the DB engine."""
    engine = get_engine()
    init_db(engine)
    logger.info("Marginalia API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Marginalia API shutting down")


app = FastAPI(
    title="Marginalia API",
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


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query parameters are invalid input: 400, not 422."""
    errors = exc.errors()
    if not errors:
        return JSONResponse(status_code=400, content={"error": "Invalid request"})
    first = errors[0]
    where = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"error": f"{where}: {message}" if where else message},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Unexpected server error"})


# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(discussions_router, prefix="/api")
app.include_router(stories_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(notes_router, prefix="/api")
app.include_router(home_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
