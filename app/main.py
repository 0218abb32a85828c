"""
Main FastAPI application
"""
import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.config.database import db_config
from app.config.logging import setup_logging
from app.config.settings import settings
from app.routes import booking, notifications, payment, room_availability
from app.services.booking_scheduler import start_booking_scheduler
from app.utils.exceptions import AppError

logger = logging.getLogger(__name__)

HTTP_ERROR_KINDS = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}


def _error(status_code: int, kind: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"kind": kind, "message": message, **extra}},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events"""
    # Startup
    setup_logging()
    await db_config.connect_db()
    await db_config.ensure_indexes()

    scheduler_tasks = start_booking_scheduler() if settings.SCHEDULER_ENABLED else []
    logger.info("%s v%s started", settings.APP_NAME, settings.VERSION)
    yield
    # Shutdown
    for task in scheduler_tasks:
        task.cancel()
    await asyncio.gather(*scheduler_tasks, return_exceptions=True)
    await db_config.close_db()
    logger.info("Application shutdown")

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Round-trip through json with default=str to handle non-serializable objects (e.g. ValueError)
    safe_errors = json.loads(json.dumps(exc.errors(), default=str))
    logger.info("422 validation error on %s %s: %s", request.method, request.url.path, safe_errors)
    return _error(422, "validation_error", "Request validation failed", details=safe_errors)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    kind = HTTP_ERROR_KINDS.get(exc.status_code, "error")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": {"kind": kind, "message": str(exc.detail)}},
        headers=getattr(exc, "headers", None),
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time
    logger.info("%s %s - %s (%.2fs)", request.method, request.url.path, response.status_code, duration)
    return response

# Include routers
app.include_router(booking.router, prefix="/api")
app.include_router(room_availability.router, prefix="/api")
app.include_router(payment.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "app": settings.APP_NAME,
        "version": settings.VERSION,
        "status": "running"
    }

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}
