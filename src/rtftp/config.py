"""
Runtime configuration
"""
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_MAX_ATTEMPTS, DEFAULT_PORT, DEFAULT_TIMEOUT_S


class Settings(BaseSettings):
    """rtftp settings, overridable via RTFTP_* environment variables or .env"""

    model_config = SettingsConfigDict(env_prefix="RTFTP_", env_file=".env", extra="ignore")

    # Server
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    root: Path = Path(".")
    allow_overwrite: bool = False

    # Transfer engine
    timeout_s: float = DEFAULT_TIMEOUT_S
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    log_level: str = "INFO"


settings = Settings()
