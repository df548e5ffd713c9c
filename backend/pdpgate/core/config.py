"""
Configuration management using Pydantic Settings
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from project root
# config.py is at: backend/pdpgate/core/config.py
_current_file = Path(__file__).resolve()
_backend_dir = _current_file.parent.parent.parent
_project_root = _backend_dir.parent
ENV_FILE = _project_root / ".env"
# Fallback: try in backend/ directory if not found in project root
if not ENV_FILE.exists():
    ENV_FILE = _backend_dir / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=False)


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "PDP Gateway"
    app_env: str = Field(default="development", description="Application environment")
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8080, ge=1, le=65535, description="API port")
    allowed_origins: str = Field(
        default="*",
        description="Allowed CORS origins (comma-separated)"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_sqlalchemy: bool = Field(default=False, description="Enable SQLAlchemy query logging")
    log_uvicorn_access: bool = Field(default=False, description="Enable Uvicorn access logging")
    log_module_levels: Optional[str] = Field(
        default=None,
        description='Module-specific log levels (JSON string, e.g., {"pdpgate.services": "DEBUG"})'
    )
    log_format: str = Field(
        default="json",
        description="Log format: 'json' for structured logging, 'text' for plain text"
    )
    log_file_enabled: bool = Field(default=False, description="Enable file logging")
    log_file_path: str = Field(
        default="logs/pdpgate.log",
        description="Path to log file (relative to project root)"
    )
    log_file_rotation: str = Field(
        default="midnight",
        description="Log file rotation: 'midnight' or 'W0'..'W6' (weekly)"
    )
    log_file_retention: int = Field(
        default=30,
        ge=1,
        description="Number of rotated log files to keep"
    )
    log_sensitive_data: bool = Field(
        default=False,
        description="Enable logging of sensitive data (keys, passwords, tokens) - NOT RECOMMENDED"
    )

    # Database
    database_url: str = Field(
        default="postgresql://filcdn:filcdnpassword@db:5432/filcdn_db",
        validation_alias=AliasChoices("DATABASE_URL", "POSTGRES_DSN"),
        description="SQLAlchemy database URL"
    )
    database_pool_size: int = Field(default=10, ge=1, description="Database pool size")
    database_max_overflow: int = Field(default=10, ge=0, description="Database max overflow")
    database_create_tables: bool = Field(
        default=True,
        description="Create missing tables on startup (use Alembic for managed deployments)"
    )

    # pdptool
    pdptool_path: str = Field(
        default="/workspaces/kingen/curio/cmd/pdptool/pdptool",
        validation_alias=AliasChoices("PDPTOOL_PATH", "PDP_TOOL_PATH"),
        description="Path to the pdptool binary"
    )
    pdp_tool_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Maximum runtime of a single pdptool invocation (seconds)"
    )
    pdp_poll_interval_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Interval between proof set creation status polls (seconds)"
    )
    pdp_poll_timeout_seconds: float = Field(
        default=900.0,
        gt=0,
        description="Give up waiting for proof set creation after this many seconds"
    )
    pdp_bind_max_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Maximum add-roots attempts"
    )
    pdp_bind_backoff_step_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Linear backoff step between add-roots attempts (seconds)"
    )
    pdp_encrypted_suffix: str = Field(
        default=".enc",
        description="Filename suffix marking pre-encrypted uploads"
    )
    pdp_encrypted_settle_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Settle delay after uploading a pre-encrypted file (seconds)"
    )
    pdp_upload_tmp_prefix: str = Field(
        default="pdp-upload-",
        description="Prefix for staged upload temp files"
    )
    pdp_upload_tmp_dir: Optional[str] = Field(
        default=None,
        description="Directory for staged upload temp files (system default if unset)"
    )
    pdp_max_upload_mb: Optional[int] = Field(
        default=None,
        ge=1,
        description="Largest accepted upload (megabytes); unset for no limit"
    )

    @field_validator("pdp_encrypted_suffix")
    @classmethod
    def normalize_suffix(cls, v: str) -> str:
        """Suffix comparison is case-insensitive"""
        return v.strip().lower()

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
