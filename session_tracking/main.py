from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import structlog
import time

from session_tracking.core.config import settings
from session_tracking.core.database import init_models
from session_tracking.core.errors import SessionTrackingError, ValidationError
from session_tracking.middleware.rate_limit import rate_limit_middleware
from session_tracking.api import events, sessions, users

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.DEBUG if settings.debug else logging.INFO
    )
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events"""
    logger.info("application_startup", app_name=settings.app_name, stage=settings.stage)
    if settings.auto_create_tables:
        await init_models()
        logger.info("tables_ready")
    yield
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan
)


def error_response(error: SessionTrackingError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={
            "detail": error.message,
            "error_type": error.error_type,
            "field": getattr(error, "field", None)
        }
    )


@app.exception_handler(SessionTrackingError)
async def session_tracking_error_handler(request: Request, exc: SessionTrackingError):
    if exc.status_code >= 500:
        logger.error(
            "request_failed",
            method=request.method,
            path=request.url.path,
            error_type=exc.error_type,
            error=exc.message
        )
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Body and parameter validation failures share the 400 error shape"""
    return error_response(ValidationError.from_pydantic(exc))


# Middleware for logging requests
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration * 1000, 2)
    )

    return response


app.middleware("http")(rate_limit_middleware)

# Include routers
app.include_router(sessions.router)
app.include_router(events.router)
app.include_router(users.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "app": settings.app_name}


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": settings.app_name,
        "endpoints": {
            "health": "/health",
            "sessions": "/sessions",
            "events": "/events",
            "users": "/users/{external_id}/sessions",
            "docs": "/docs"
        }
    }
