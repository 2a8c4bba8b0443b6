from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'ally_user'
    POSTGRES_PASSWORD: str = 'ally_pass'
    POSTGRES_DB: str = 'ally_billing'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Override completo (tests usan sqlite)

    # Redis settings
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Billing
    DEFAULT_CURRENCY: str = 'CRC'
    SUPPORTED_CURRENCIES: list = ["CRC", "USD", "EUR"]
    DEFAULT_TAX_RATE: Decimal = Decimal("13")
    PAID_BALANCE_EPSILON: Decimal = Decimal("0.01")
    CASH_TERM_CODE: str = '01'  # Contado
    OVERDUE_RECONCILE_INTERVAL_SECONDS: float = 3600.0

    # Facturación electrónica (Hacienda CR)
    HACIENDA_ENABLED: bool = False
    HACIENDA_COUNTRY_CODE: str = '506'
    HACIENDA_RECEPCION_URL: str = 'https://api-sandbox.comprobanteselectronicos.go.cr/recepcion/v1/recepcion'
    HACIENDA_ACCESS_TOKEN: Optional[str] = None  # Bearer emitido por el IdP de Hacienda
    HACIENDA_MAX_RETRIES: int = 3
    HACIENDA_TIMEOUT_SECONDS: float = 15.0
    HACIENDA_BRANCH: str = '001'
    HACIENDA_TERMINAL: str = '00001'
    FISCAL_CODE_LENGTH: int = 13

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

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("HACIENDA_ENABLED", mode="before")
    @classmethod
    def parse_hacienda_enabled(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

settings = Settings()
