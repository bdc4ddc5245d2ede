from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    APP_NAME: str = "Finverno"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    PORT: int = 8000

    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/finverno"
    DATABASE_SYNC_URL: str = ""
    DATABASE_SSL: bool = False
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_RECYCLE: int = 300

    # Identity provider tokens. HS* algorithms use JWT_SECRET, RS* use the public key file.
    JWT_ALGORITHM: str = "HS256"
    JWT_SECRET: Optional[str] = None
    JWT_PUBLIC_KEY_PATH: Optional[str] = None
    JWT_AUDIENCE: Optional[str] = None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    CRON_SECRET: Optional[str] = None  # Required in production for /cron/* auth

    DEFAULT_DISPUTE_WINDOW_HOURS: int = 48
    MIN_DISPUTE_WINDOW_HOURS: int = 24
    MAX_DISPUTE_WINDOW_HOURS: int = 72
    SWEEP_CLAIM_TTL_MINUTES: int = 15

    CACHE_BACKEND: str = "memory"
    CACHE_TTL_SECONDS: int = 300
    UPSTASH_REDIS_REST_URL: str = ""
    UPSTASH_REDIS_REST_TOKEN: str = ""

    R2_ACCESS_KEY_ID: str = ""
    R2_SECRET_ACCESS_KEY: str = ""
    R2_ENDPOINT_URL: str = ""
    TAKEOFF_BUCKET: str = "boq-takeoffs"
    INVESTOR_DOCUMENT_BUCKET: str = "investor-documents"
    INVOICE_BUCKET: str = "contractor-documents"
    SIGNED_URL_TTL_SECONDS: int = 3600

    CORS_ORIGINS: str = "http://localhost:3000"
    CORS_ORIGIN_REGEX: Optional[str] = None

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
