"""Configuration module for the video downloader API."""
import os
from dataclasses import dataclass
from typing import Tuple
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# bcrypt hash of "password", matching the stock admin account
DEFAULT_ADMIN_PASSWORD_HASH = "$2a$10$92IXUNpkjO0rOQ5byMi.Ye4oKoEa3Ro9llC/.og/at2.uheWG/igi"

DEFAULT_API_KEYS = ("demo-key-12345", "test-key-67890")


@dataclass(frozen=True)
class AppConfig:
    """Application configuration dataclass with validation.

    All configuration values are loaded from environment variables
    with sensible defaults. Validation occurs at initialization time
    to ensure fail-fast behavior on invalid configuration.
    """

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    ENVIRONMENT: str = "development"
    VERSION: str = "1.0.0"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Storage root; downloads/ and processing/ live underneath
    TEMP_DIR: str = "temp"

    # External tools
    YTDLP_BINARY: str = "yt-dlp"
    FFMPEG_BINARY: str = "ffmpeg"

    # Metadata extraction bounds
    METADATA_TIMEOUT: int = 30
    METADATA_MAX_BUFFER: int = 10 * 1024 * 1024

    # Job runner (delay in seconds)
    JOB_MAX_ATTEMPTS: int = 3
    JOB_RETRY_DELAY: float = 5.0
    JOB_RETENTION_HOURS: int = 24

    # Retention sweeper (minutes)
    CLEANUP_INTERVAL_MINUTES: int = 30
    DOWNLOADS_MAX_AGE_MINUTES: int = 60
    PROCESSING_MAX_AGE_MINUTES: int = 30

    # Rate limiting on /api/
    RATE_LIMIT_REQUESTS: int = 1000
    RATE_LIMIT_WINDOW_SECONDS: int = 900

    # Auth
    API_KEYS: Tuple[str, ...] = DEFAULT_API_KEYS
    SKIP_AUTH: bool = False
    JWT_SECRET: str = "your-secret-key"
    JWT_EXPIRATION_HOURS: int = 24
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD_HASH: str = DEFAULT_ADMIN_PASSWORD_HASH

    # CORS
    ALLOWED_ORIGINS: Tuple[str, ...] = ("*",)

    def __post_init__(self) -> None:
        """Validate configuration values after initialization."""
        errors = []

        if not isinstance(self.PORT, int) or not 0 < self.PORT < 65536:
            errors.append(f"PORT must be between 1 and 65535 (got: {self.PORT})")

        positive_fields = [
            ("METADATA_TIMEOUT", self.METADATA_TIMEOUT),
            ("METADATA_MAX_BUFFER", self.METADATA_MAX_BUFFER),
            ("JOB_MAX_ATTEMPTS", self.JOB_MAX_ATTEMPTS),
            ("JOB_RETENTION_HOURS", self.JOB_RETENTION_HOURS),
            ("CLEANUP_INTERVAL_MINUTES", self.CLEANUP_INTERVAL_MINUTES),
            ("DOWNLOADS_MAX_AGE_MINUTES", self.DOWNLOADS_MAX_AGE_MINUTES),
            ("PROCESSING_MAX_AGE_MINUTES", self.PROCESSING_MAX_AGE_MINUTES),
            ("RATE_LIMIT_REQUESTS", self.RATE_LIMIT_REQUESTS),
            ("RATE_LIMIT_WINDOW_SECONDS", self.RATE_LIMIT_WINDOW_SECONDS),
            ("JWT_EXPIRATION_HOURS", self.JWT_EXPIRATION_HOURS),
        ]
        for name, value in positive_fields:
            if not isinstance(value, int) or value <= 0:
                errors.append(f"{name} must be a positive integer (got: {value})")

        if self.JOB_RETRY_DELAY < 0:
            errors.append(f"JOB_RETRY_DELAY cannot be negative (got: {self.JOB_RETRY_DELAY})")

        if not self.TEMP_DIR or not self.TEMP_DIR.strip():
            errors.append("TEMP_DIR cannot be empty")

        if not self.JWT_SECRET:
            errors.append("JWT_SECRET cannot be empty")

        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.LOG_LEVEL not in valid_log_levels:
            errors.append(
                f"LOG_LEVEL must be one of {valid_log_levels} (got: {self.LOG_LEVEL})"
            )

        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def auth_disabled(self) -> bool:
        """SKIP_AUTH is only honoured outside production-like environments."""
        return self.SKIP_AUTH and self.is_development

    @property
    def downloads_dir(self) -> str:
        return os.path.join(self.TEMP_DIR, "downloads")

    @property
    def processing_dir(self) -> str:
        return os.path.join(self.TEMP_DIR, "processing")

    @property
    def uploads_dir(self) -> str:
        return os.path.join(self.TEMP_DIR, "uploads")


def load_config() -> AppConfig:
    """Load configuration from environment variables.

    Reads all configuration values from environment variables with
    sensible defaults. Performs type conversion where needed.

    Returns:
        AppConfig instance with validated configuration values.

    Raises:
        ValueError: If any configuration validation fails.
    """
    def _int_env(name: str, default: int) -> int:
        value = os.getenv(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            raise ValueError(
                f"{name} must be a valid integer (got: {value!r})"
            )

    def _float_env(name: str, default: float) -> float:
        value = os.getenv(name)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            raise ValueError(
                f"{name} must be a valid number (got: {value!r})"
            )

    def _list_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
        value = os.getenv(name)
        if not value:
            return default
        return tuple(item.strip() for item in value.split(",") if item.strip())

    environment = os.getenv("NODE_ENV") or os.getenv("ENVIRONMENT", "development")

    # Production gets the tighter request budget unless overridden
    default_rate_limit = 100 if environment == "production" else 1000

    return AppConfig(
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=_int_env("PORT", 3001),
        ENVIRONMENT=environment,
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        TEMP_DIR=os.getenv("TEMP_DIR", "temp"),
        YTDLP_BINARY=os.getenv("YTDLP_BINARY", "yt-dlp"),
        FFMPEG_BINARY=os.getenv("FFMPEG_BINARY", "ffmpeg"),
        METADATA_TIMEOUT=_int_env("METADATA_TIMEOUT", 30),
        METADATA_MAX_BUFFER=_int_env("METADATA_MAX_BUFFER", 10 * 1024 * 1024),
        JOB_MAX_ATTEMPTS=_int_env("JOB_MAX_ATTEMPTS", 3),
        JOB_RETRY_DELAY=_float_env("JOB_RETRY_DELAY", 5.0),
        JOB_RETENTION_HOURS=_int_env("JOB_RETENTION_HOURS", 24),
        CLEANUP_INTERVAL_MINUTES=_int_env("CLEANUP_INTERVAL_MINUTES", 30),
        DOWNLOADS_MAX_AGE_MINUTES=_int_env("DOWNLOADS_MAX_AGE_MINUTES", 60),
        PROCESSING_MAX_AGE_MINUTES=_int_env("PROCESSING_MAX_AGE_MINUTES", 30),
        RATE_LIMIT_REQUESTS=_int_env("RATE_LIMIT_REQUESTS", default_rate_limit),
        RATE_LIMIT_WINDOW_SECONDS=_int_env("RATE_LIMIT_WINDOW_SECONDS", 900),
        API_KEYS=_list_env("API_KEYS", DEFAULT_API_KEYS),
        SKIP_AUTH=os.getenv("SKIP_AUTH", "false").lower() == "true",
        JWT_SECRET=os.getenv("JWT_SECRET", "your-secret-key"),
        JWT_EXPIRATION_HOURS=_int_env("JWT_EXPIRATION_HOURS", 24),
        ADMIN_USERNAME=os.getenv("ADMIN_USERNAME", "admin"),
        ADMIN_PASSWORD_HASH=os.getenv("ADMIN_PASSWORD_HASH", DEFAULT_ADMIN_PASSWORD_HASH),
        ALLOWED_ORIGINS=_list_env("ALLOWED_ORIGINS", ("*",)),
    )


# Global config instance
config = load_config()

__all__ = ["config", "AppConfig", "load_config"]
