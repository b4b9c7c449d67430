from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'factory_user'
    POSTGRES_PASSWORD: str = 'factory_pass'
    POSTGRES_DB: str = 'factory_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    # Full URL override (e.g. sqlite:// for local test runs)
    DATABASE_URL: Optional[str] = None

    # JWT settings
    APP_SECRET_STRING: str = 'change-me-factory-erp-secret-key-2024'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Invoicing
    INVOICE_NUMBER_PREFIX: str = 'INV'
    INVOICE_NUMBER_MAX_RETRIES: int = 3
    MONEY_TOLERANCE: Decimal = Decimal('0.01')
    INVOICE_MAX_ROUND_OFF: Decimal = Decimal('1.00')
    DEFAULT_CURRENCY: str = 'INR'

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

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("INVOICE_NUMBER_PREFIX", mode="before")
    @classmethod
    def parse_prefix(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("INVOICE_NUMBER_MAX_RETRIES")
    @classmethod
    def validate_retries(cls, v):
        if v < 1:
            raise ValueError("INVOICE_NUMBER_MAX_RETRIES must be at least 1")
        return v

settings = Settings()
