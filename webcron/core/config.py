"""
Configuration management for webcron.

Handles environment-based configuration for development and production.
"""
import os
from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Debug - handle non-boolean values gracefully
    debug: bool = False

    @field_validator("debug", "cron_web_listener", "database_echo", mode="before")
    @classmethod
    def parse_flag(cls, v):
        """Parse boolean flags from environment, handling non-boolean values."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.strip().lower() in ("true", "1", "yes")
        return bool(v)

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Database
    database_path: str = os.getenv("DATABASE_PATH", str(Path.home() / ".webcron" / "webcron.db"))
    database_url: Optional[str] = os.getenv("DATABASE_URL", None)
    database_echo: bool = _env_flag("DATABASE_ECHO")

    # Cron: seconds to wait for the cron table lock before giving up
    cron_lock_timeout: float = float(os.getenv("CRON_LOCK_TIMEOUT", "30"))

    # Cron: run a web-scope pass after ordinary GET requests
    cron_web_listener: bool = _env_flag("CRON_WEB_LISTENER", "true")

    # Cron: comma-separated modules exposing register_cron_jobs(registry)
    cron_job_modules: str = os.getenv("CRON_JOB_MODULES", "")

    @field_validator("cron_lock_timeout")
    @classmethod
    def check_lock_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("cron_lock_timeout must be > 0")
        return v

    def job_modules(self) -> List[str]:
        """Configured job modules, in order, without blanks."""
        return [m.strip() for m in self.cron_job_modules.split(",") if m.strip()]

    class Config:
        # Load .env from project root (webcron/core/config.py -> parent.parent.parent)
        env_file = str(Path(__file__).resolve().parent.parent.parent / ".env")
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields in .env file


# Global settings instance
settings = Settings()


def get_database_url(config: Optional[Settings] = None) -> str:
    """Get the database URL, defaulting to SQLite at database_path."""
    config = config or settings
    if config.database_url:
        return config.database_url
    # Ensure directory exists
    db_path = Path(config.database_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{config.database_path}"
