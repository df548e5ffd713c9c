"""
Development entry point: ``python main.py`` from the backend directory
"""
from pdpgate.main import app  # noqa: F401

if __name__ == "__main__":
    import uvicorn

    from pdpgate.core.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "pdpgate.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.app_env == "development",
    )
