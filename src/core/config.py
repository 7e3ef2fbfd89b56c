from functools import lru_cache
from typing import Any, List
import json

from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from a JSON list or a comma separated string"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Application
    APP_NAME: str = "QOLAE Readers Dashboard"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"

    # Database
    DATABASE_URL: str
    DB_ECHO: bool = False

    # JWT
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 8 * 60

    # Cookies
    COOKIE_NAME: str = "qolaeReaderToken"
    COOKIE_DOMAIN: str = ".qolae.com"
    COOKIE_SECURE: bool = True

    # Email (SMTP)
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str = "noreply@qolae.com"
    EMAIL_FROM_NAME: str = "QOLAE Readers Portal"

    # Public service URLs
    SSOT_BASE_URL: str = "https://api.qolae.com"
    HRCOMPLIANCE_URL: str = "https://hrcompliance.qolae.com"
    READERS_PORTAL_URL: str = "https://readers.qolae.com"

    CORS_ORIGINS: str = (
        "https://admin.qolae.com,https://api.qolae.com,"
        "https://readers.qolae.com,https://hrcompliance.qolae.com"
    )

    # Artifact repository
    CENTRAL_REPOSITORY_DIR: str = "/var/www/api.qolae.com/central-repository"
    COUNTER_SIGNATURE_FILENAME: str = "lizs-signature-canvas.png"

    # NDA preview cache
    PREVIEW_CACHE_TTL_SECONDS: int = 10 * 60
    PREVIEW_SWEEP_INTERVAL_SECONDS: int = 60

    # Outbound calls to the SSOT service
    UPSTREAM_TIMEOUT_SECONDS: float = 10.0
    UPSTREAM_MAX_RETRIES: int = 1
    UPSTREAM_RETRY_JITTER_SECONDS: float = 0.5

    # Email verification codes
    VERIFICATION_CODE_TTL_MINUTES: int = 10
    VERIFICATION_MAX_ATTEMPTS: int = 3

    @property
    def cors_origins(self) -> List[str]:
        return parse_cors_origins(self.CORS_ORIGINS)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
