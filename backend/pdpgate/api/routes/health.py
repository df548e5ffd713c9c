"""
Health check endpoints
"""
import os

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pdpgate import __version__
from pdpgate.core.config import get_settings
from pdpgate.core.database import get_db
from pdpgate.core.logging_config import LoggingConfig
from pdpgate.utils.datetime_utils import utc_now_iso

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(tags=["health"])

VERSION = __version__


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint

    Returns:
        dict: Health status
    """
    return {
        "status": "healthy",
        "timestamp": utc_now_iso(),
        "service": get_settings().app_name,
    }


@router.get("/health/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """
    Detailed health check with component status

    Returns 503 when the database or the pdptool binary is unavailable.
    """
    settings = get_settings()
    health_status = {
        "status": "healthy",
        "timestamp": utc_now_iso(),
        "service": settings.app_name,
        "version": VERSION,
        "environment": settings.app_env,
        "components": {}
    }
    overall_healthy = True

    # Check database
    try:
        db.execute(text("SELECT 1"))
        db.commit()
        health_status["components"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful"
        }
    except SQLAlchemyError as e:
        overall_healthy = False
        logger.warning(f"Database health check failed: {e}")
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}",
            "error": type(e).__name__
        }

    # Check pdptool
    tool_path = settings.pdptool_path
    if not os.path.isfile(tool_path):
        overall_healthy = False
        health_status["components"]["pdptool"] = {
            "status": "unhealthy",
            "message": "pdptool binary not found",
            "path": tool_path
        }
    elif not os.access(tool_path, os.X_OK):
        overall_healthy = False
        health_status["components"]["pdptool"] = {
            "status": "unhealthy",
            "message": "pdptool binary is not executable",
            "path": tool_path
        }
    else:
        health_status["components"]["pdptool"] = {
            "status": "healthy",
            "message": "pdptool binary available",
            "path": tool_path
        }

    if not overall_healthy:
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)
    return health_status
