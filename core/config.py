from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=True)

    PROJECT_NAME: str = "Listings Ledger API"

    # Razorpay
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_WEBHOOK_SECRET: str = ""
    RAZORPAY_PLAN_SERVICE: str = ""
    RAZORPAY_PLAN_SHOP: str = ""
    RAZORPAY_API_BASE: str = "https://api.razorpay.com/v1"
    GATEWAY_TIMEOUT_SECONDS: float = 15.0
    SUBSCRIPTION_TOTAL_COUNT: int = 35

    # Security
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    ADMIN_API_KEY: str = ""

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    CORS_ORIGINS: str = "*"

    @field_validator("SUBSCRIPTION_TOTAL_COUNT")
    @classmethod
    def positive_total_count(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("SUBSCRIPTION_TOTAL_COUNT must be positive")
        return v

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def gateway_configured(self) -> bool:
        return bool(self.RAZORPAY_KEY_ID.strip() and self.RAZORPAY_KEY_SECRET.strip())


@lru_cache
def get_settings() -> Settings:
    return Settings()
