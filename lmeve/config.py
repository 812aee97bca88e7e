"""Application configuration"""

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from functools import lru_cache
from typing import List, Optional
from pathlib import Path

# Get the backend directory (parent of lmeve directory)
BACKEND_DIR = Path(__file__).parent.parent
ENV_FILE = BACKEND_DIR / ".env"


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "LMeve"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    CORS_ORIGINS: List[str] = ["*"]

    # Storage (settings.json, caches, seed data)
    STORAGE_DIR: str = str(BACKEND_DIR / "server" / "storage")
    LMEVE_STORAGE_DIR: Optional[str] = None

    # Database defaults, used when neither the request nor stored settings provide a value
    DEFAULT_DB_HOST: str = "localhost"
    DEFAULT_DB_PORT: int = 3306
    DEFAULT_DATABASE: str = "lmeve2"
    DEFAULT_SDE_DATABASE: str = "EveStaticData"
    DB_CONNECT_TIMEOUT: int = 10

    # EVE SSO / ESI
    SSO_BASE_URL: str = "https://login.eveonline.com"
    ESI_BASE_URL: str = "https://esi.evetech.net"
    ESI_DATASOURCE: str = "tranquility"
    USER_AGENT: str = "LMeve/1.0 (+https://github.com/dstevens79/lmeve)"

    # Outbound HTTP
    HTTP_TIMEOUT: float = 5.0
    PUBLIC_IP_URL: str = "https://api.ipify.org?format=json"
    PUBLIC_IP_TIMEOUT: float = 1.5
    SDE_LATEST_URL: str = "https://www.fuzzwork.co.uk/dump/mysql-latest.tar.bz2"
    SDE_CHECK_TIMEOUT: float = 10.0

    # Caching
    STATUS_CACHE_TTL: int = 600  # 10 minutes
    SDE_CHECK_INTERVAL: int = 86400  # 1 day
    ACTIVE_USER_WINDOW_MINUTES: int = 15

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra="ignore"  # Ignore extra fields in .env
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
