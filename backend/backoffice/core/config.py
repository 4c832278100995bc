from typing import List, Union
import logging

from pydantic import AnyHttpUrl, Field, validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    PROJECT_NAME: str = "Back-office"
    API_PREFIX: str = "/api"

    # CORS
    BACKEND_CORS_ORIGINS: List[Union[str, AnyHttpUrl]] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @validator("BACKEND_CORS_ORIGINS", pre=True)
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Database
    DATABASE_URI: str = "sqlite+aiosqlite:///./backoffice.db"
    SQL_ECHO: bool = False

    # Locale / timezone
    DEFAULT_LOCALE: str = Field(default="th", pattern="^(th|en)$")
    BUSINESS_TIMEZONE: str = "Asia/Bangkok"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Stale import batch cleanup
    IMPORT_CLEANUP_ENABLED: bool = True
    IMPORT_CLEANUP_INTERVAL_MINUTES: int = 15
    IMPORT_STALE_AFTER_MINUTES: int = 60

    # Batching
    RECONCILE_BATCH_SIZE: int = 500
    SALES_IMPORT_CHUNK_SIZE: int = 500
    PAGE_SIZE: int = 1000

    ADMIN_ROLE: str = "admin"

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
logger.info(f"Loaded settings: API_PREFIX={settings.API_PREFIX}, DATABASE_URI={settings.DATABASE_URI}")
