"""SCHOLA API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from schola_api.middleware.auth import AuthMiddleware
from schola_api.middleware.correlation import CorrelationIDMiddleware
from schola_api.routes import attendance, marks
from schola_api.settings import get_settings
from schola_api.sheets.errors import SheetError

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting SCHOLA API...")
    try:
        settings.validate_production_settings()
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise
    yield
    logger.info("Shutting down SCHOLA API...")


app = FastAPI(
    title="SCHOLA API",
    description="Attendance and exam mark sheets with audited approval lifecycle",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Last added runs first: correlation id is set before auth logs it
app.add_middleware(AuthMiddleware)
app.add_middleware(CorrelationIDMiddleware)

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

app.include_router(attendance.router)
app.include_router(marks.router)


@app.exception_handler(SheetError)
async def sheet_error_handler(request: Request, exc: SheetError):
    """Render engine errors with their status and context."""
    if exc.status_code >= 500:
        logger.error(
            f"Sheet operation failed: {exc.message}",
            extra={"correlation_id": getattr(request.state, "correlation_id", None), "path": request.url.path},
        )
    content = {"detail": exc.message, "error": type(exc).__name__, **exc.context}
    return JSONResponse(status_code=exc.status_code, content=content)


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "schola-api",
        "version": "0.1.0",
    }
