"""
FastAPI application main module.
Wires the payroll queue service (broker, worker pool, status registry) into the HTTP surface.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
import time
import uuid
import os
from contextlib import asynccontextmanager
from payroll_batch.api.v1 import api_router
from payroll_batch.utils import setup_logging, get_logger
from payroll_batch.database import engine, Base, SessionLocal
from payroll_batch.config import QUEUE_SETTINGS
from payroll_batch.services.payroll_queue_service import build_payroll_queue_service
import payroll_batch.models.db  # noqa: F401  register models before create_all

# Setup logging before creating the app
setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE", "logs/app.log"),
    enable_console=True
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Application startup initiated")

    service = None
    try:
        # Create database tables
        logger.info("Creating database tables")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")

        # Broker probe, registry and worker pool
        service = build_payroll_queue_service()
        app.state.payroll_queue_service = service  # type: ignore[attr-defined]
        service.start()
        logger.info(
            "Payroll queue service started",
            broker_available=service.availability.is_usable(),
            concurrency=QUEUE_SETTINGS.get("concurrency"),
        )
        logger.info("Application startup completed successfully")
        yield
    except Exception as e:  # pragma: no cover
        logger.error("Application startup failed", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("Application shutdown initiated")
        if service is not None:
            service.stop()
            logger.info("Payroll worker pool stop signal sent")
        logger.info("Application shutdown completed")

# FastAPI app initialization
app = FastAPI(
    title="Payroll Batch Processor",
    description="""
    Asynchronous monthly payroll processing.

    ## Features
    * **Queued runs** - Redis-backed job queue with a bounded worker pool
    * **Graceful degradation** - Runs inline when the queue is unreachable
    * **Progress polling** - Per-job status and progress
    * **Idempotent processing** - One payroll record per employee per period
    * **Retries** - Exponential backoff, three attempts per job

    ## Tenancy
    Tenant and acting user are passed by the upstream gateway in the
    `X-Tenant-ID`, `X-User-ID` and `X-User-Name` headers.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

# CORS middleware - configure appropriately for production
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Compression middleware for better performance
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Request ID and comprehensive logging middleware
@app.middleware("http")
async def add_request_context_and_logging(request: Request, call_next):
    """
    Add request ID, timing, and comprehensive request/response logging.
    """
    # Generate or extract request ID
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    request.state.start_time = time.time()

    # Log incoming request
    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        user_agent=request.headers.get("User-Agent"),
        remote_addr=request.client.host if request.client else "unknown",
        tenant_id=request.headers.get("X-Tenant-ID"),
        request_id=request_id
    )

    # Process request
    response = await call_next(request)

    # Calculate processing time
    process_time = time.time() - request.state.start_time

    # Add response headers
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"

    # Log response
    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time_ms=round(process_time * 1000, 2),
        request_id=request_id
    )

    return response

# Custom exception handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "Request validation failed",
        errors=exc.errors(),
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Request validation failed",
            "details": [
                {k: v for k, v in err.items() if k in ("loc", "msg", "type")}
                for err in exc.errors()
            ],
            "request_id": request_id
        }
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail,
            "request_id": request_id
        }
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=request_id,
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "request_id": request_id
        }
    )

# Health check endpoints
@app.get("/health", tags=["health"], summary="Basic health check")
async def health_check(request: Request):
    """Health check with database and job broker status."""
    health_status = {
        "status": "healthy",
        "service": "payroll-batch",
        "version": "1.0.0",
        "timestamp": time.time(),
        "checks": {}
    }

    # Database check
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"
    finally:
        db.close()

    # Broker state is read from the availability signal; no extra round trip
    service = getattr(request.app.state, "payroll_queue_service", None)  # type: ignore[attr-defined]
    if service is None:
        health_status["checks"]["queue"] = "not_started"
    else:
        available = service.availability.is_usable()
        health_status["checks"]["queue"] = {
            "backend": "redis" if available else "synchronous",
            **service.availability.snapshot(),
        }
        if not available and bool(QUEUE_SETTINGS.get("use_redis", True)):
            health_status["status"] = "degraded"

    return health_status

# API Documentation root
@app.get("/", tags=["root"])
async def root():
    """API root endpoint with basic information."""
    return {
        "message": "Payroll Batch Processor API",
        "version": "1.0.0",
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": "/api/v1"
    }

# Include API router with version prefix
app.include_router(api_router, prefix="/api/v1")

# Development server configuration
if __name__ == "__main__":
    import uvicorn

    logger.info("Starting development server")

    uvicorn.run(
        "payroll_batch.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_dirs=["payroll_batch"],
        log_level="info",
        access_log=True
    )
