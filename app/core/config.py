from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'koperasi_user'
    POSTGRES_PASSWORD: str = 'koperasi_pass'
    POSTGRES_DB: str = 'koperasi_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Overrides the POSTGRES_* parts when set

    # Redis settings (Celery broker and result backend)
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # JWT settings
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Pagination
    DEFAULT_PAGE_SIZE: int = 15
    MAX_PAGE_SIZE: int = 50

    # Financial validation
    BALANCE_TOLERANCE: float = 0.01
    MAX_AMOUNT_INCREASE_PERCENTAGE: float = 1000.0
    MIN_REPORTING_YEAR: int = 2020

    # Exports
    EXPORT_STORAGE_PATH: str = 'storage/exports'
    EXPORT_MAX_REPORTS: int = 100
    EXPORT_ASYNC_THRESHOLD: int = 10
    EXPORT_QUEUE_ENABLED: bool = True
    EXPORT_RETENTION_DAYS: int = 30

    # Retention for housekeeping jobs
    NOTIFICATION_RETENTION_DAYS: int = 30
    AUDIT_RETENTION_DAYS: int = 365

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", "EXPORT_QUEUE_ENABLED", mode="before")
    @classmethod
    def parse_bool(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

settings = Settings()
