"""
Main FastAPI application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pdpgate import __version__
from pdpgate.api.routes import data, health, metrics, pdp, uploads
from pdpgate.core.config import get_settings
from pdpgate.core.database import create_tables
from pdpgate.core.errors import PDPError
from pdpgate.core.logging_config import LoggingConfig
from pdpgate.core.metrics import app_info
from pdpgate.core.middleware import LoggingContextMiddleware
from pdpgate.core.middleware_metrics import MetricsMiddleware

VERSION = __version__

# Configure logging first
LoggingConfig.configure()

logger = LoggingConfig.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI app"""
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode...")
    app_info.info({"app_name": settings.app_name, "app_env": settings.app_env, "version": VERSION})
    if settings.database_create_tables:
        create_tables()
    logger.info(f"Using pdptool at {settings.pdptool_path}")

    yield

    logger.info(f"Shutting down {settings.app_name}...")


_settings = get_settings()
app = FastAPI(
    title=_settings.app_name,
    description="HTTP gateway for proof-of-data-possession storage workflows",
    version=VERSION,
    lifespan=lifespan,
)

# Logging context first so every request is tagged
app.add_middleware(LoggingContextMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PDPError)
async def pdp_error_handler(request: Request, exc: PDPError):
    """Workflow errors carry their own status and the captured tool output"""
    logger.error(
        f"{type(exc).__name__}: {exc.message}",
        extra={
            "error_type": type(exc).__name__,
            "status_code": exc.status_code,
            "output": exc.output,
            "path": request.url.path,
        }
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler to log all unhandled errors"""
    logger.error(
        "Unhandled exception",
        exc_info=True,
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        }
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": str(exc),
            "type": type(exc).__name__
        }
    )


app.include_router(pdp.router)
app.include_router(uploads.router)
app.include_router(data.router)
app.include_router(health.router)
app.include_router(metrics.router)


@app.get("/")
async def root():
    """Service banner"""
    settings = get_settings()
    return {
        "message": f"{settings.app_name} is running",
        "version": VERSION,
        "environment": settings.app_env,
    }
