"""FastAPI application entrypoint."""
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from list_sync_api.routers import health, imports
from list_sync_api.settings import get_settings
from list_sync_core.logging import configure_logging
from list_sync_core.util import (
    CollaboratorError,
    ConflictError,
    NotFoundError,
    SyncError,
    ValidationError,
    suggestion_for,
)

configure_logging(get_settings().log_level)
logger = structlog.get_logger()

app = FastAPI(title="List Sync API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api")
app.include_router(imports.router, prefix="/api")

STATUS_CODES = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (CollaboratorError, 502),
)


@app.exception_handler(SyncError)
def sync_error_handler(request: Request, exc: SyncError):
    """Map sync errors onto HTTP responses."""
    status_code = next((code for cls, code in STATUS_CODES if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.warning(
            "request_failed", path=request.url.path, error=exc.message, error_kind=exc.kind.value
        )
    body = {"detail": exc.message, "errorKind": exc.kind.value}
    suggestion = suggestion_for(exc.kind)
    if suggestion:
        body["suggestion"] = suggestion
    return JSONResponse(status_code=status_code, content=body)


@app.on_event("startup")
def startup():
    """Log the effective configuration."""
    settings = get_settings()
    logger.info(
        "api_started",
        store_backend=settings.store_backend,
        dispatch=settings.dispatch,
        stager=settings.stager,
    )
