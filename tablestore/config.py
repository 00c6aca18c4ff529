from typing import Optional
from urllib.parse import quote_plus
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # --- Basic configuration ---
    APP_NAME: str = "Tablestore Library"
    APP_DESCRIPTION: str = "Compensating unit of work over a partitioned table store, with audit trails"
    APP_VERSION: str = "1.0.0"
    APP_ENV: str = "development"  # development, production, testing
    DEBUG: bool = True

    # --- Table store backend ---
    STORE_BACKEND: str = "sql"  # sql, redis
    STORE_PAGE_SIZE: int = 1000  # Rows per query page; continuation tokens cover the rest
    AUDIT_TABLE_SUFFIX: str = "Audit"

    # --- SQL backend (SQLModel) ---
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = "root"
    DB_NAME: str = "tablestore"
    DB_URL: Optional[str] = None  # Full SQLAlchemy async URL, e.g. sqlite+aiosqlite:///./tablestore.db

    @property
    def DATABASE_URL(self) -> str:
        if self.DB_URL:
            return self.DB_URL
        # Build async MySQL connection URL
        safe_password = quote_plus(self.DB_PASSWORD)
        return f"mysql+aiomysql://{self.DB_USER}:{safe_password}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # --- Redis backend ---
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_KEY_PREFIX: str = "tablestore:"

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # --- Logging ---
    LOG_DIR: str = "logs"

    # --- API route prefixes ---
    API_V1_BOOKS_PREFIX: str = "/api/v1/books"

    # --- Pydantic ---
    # Load env from project root .env; priority: env vars > .env > defaults
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )


# Singleton settings instance
settings = Settings()
