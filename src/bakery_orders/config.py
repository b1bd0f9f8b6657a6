import os
from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="../.env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ORDERS_DB_USER: str      = os.getenv("ORDERS_DB_USER", "")
    ORDERS_DB_PASSWORD: str  = os.getenv("ORDERS_DB_PASSWORD", "")
    ORDERS_DB_NAME: str      = os.getenv("ORDERS_DB_NAME", "")
    ORDERS_DB_HOST: str      = os.getenv("ORDERS_DB_HOST", "localhost")
    ORDERS_DB_PORT: int      = int(os.getenv("ORDERS_DB_PORT", "5432"))
    ORDERS_DB_ECHO: bool     = False
    # full SQLAlchemy URL, wins over the ORDERS_DB_* parts when set
    ORDERS_DB_URL: str       = os.getenv("ORDERS_DB_URL", "")

    RABBIT_USER: str         = os.getenv("RABBIT_USER", "")
    RABBIT_PASSWORD: str     = os.getenv("RABBIT_PASSWORD", "")
    RABBIT_HOST: str         = os.getenv("RABBIT_HOST", "localhost")
    RABBIT_PORT: int         = int(os.getenv("RABBIT_PORT", "5672"))
    # upper bound for one event publish inside a request, seconds
    RABBIT_PUBLISH_TIMEOUT: float = float(os.getenv("RABBIT_PUBLISH_TIMEOUT", "2"))

    JWT_SECRET: str          = os.getenv("JWT_SECRET", "change-me")
    JWT_ALGORITHM: str       = os.getenv("JWT_ALGORITHM", "HS256")

    PDF_STORAGE_PATH: str    = os.getenv("PDF_STORAGE_PATH", "uploads/pdfs")
    PDF_PUBLIC_BASE_URL: str = os.getenv("PDF_PUBLIC_BASE_URL", "")

    # status-change notifications raised by client users go to this address
    STAFF_NOTIFICATION_EMAIL: str = os.getenv("STAFF_NOTIFICATION_EMAIL", "")

    DEFAULT_PAGE_SIZE: int   = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
    MAX_PAGE_SIZE: int       = int(os.getenv("MAX_PAGE_SIZE", "100"))
    LOG_LEVEL: str           = os.getenv("LOG_LEVEL", "INFO")

    # JSON, e.g. {"FINANCEIRO": ["pedidos:listar", "pedidos:ver"]}
    ROLE_PERMISSIONS: Dict[str, List[str]] = Field(default_factory=dict)


settings = Settings()
