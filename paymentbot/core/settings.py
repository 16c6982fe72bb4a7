from __future__ import annotations
from typing import Literal, Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator, ConfigDict


class Settings(BaseSettings):
    # --- App ---
    APP_NAME: str = "Payment Link Bot"
    ENV: Literal["development", "staging", "production"] = "development"
    LOG_LEVEL: str = "INFO"
    SDK_LOG_LEVEL: str = "WARNING"    # stripe / httpx / httpcore stdlib loggers

    # --- HTTP / CORS ---
    CORS_ORIGINS: str = "*"  # comma-separated list or "*"
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: str = "*"   # comma-separated or "*"
    CORS_ALLOW_HEADERS: str = "*"   # comma-separated or "*"

    # --- Auth ---
    JWT_SECRET: str = "supersecretjwt"
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: Optional[str] = None
    JWT_AUDIENCE: Optional[str] = None
    DEV_JWT_SUBJECT: str = "dev-user"

    # --- Payments ---
    PAYMENTS_BACKEND: Literal["fake", "stripe"] = "fake"
    STRIPE_SECRET_KEY: str = ""         # required if PAYMENTS_BACKEND=stripe
    STRIPE_WEBHOOK_SECRET: str = ""     # required if PAYMENTS_BACKEND=stripe
    CURRENCY: str = "usd"

    AIRWALLEX_CLIENT_ID: str = ""
    AIRWALLEX_API_KEY: str = ""
    AIRWALLEX_BASE_URL: str = "https://api.airwallex.com"

    # --- Outbound calls ---
    PROVIDER_TIMEOUT_SECONDS: float = 10.0
    PROVIDER_MAX_RETRIES: int = 1

    model_config = ConfigDict(env_file=".env", case_sensitive=False)

    @property
    def DEV_MODE(self) -> bool:
        return self.ENV == "development"

    @field_validator("CORS_ORIGINS", "CORS_ALLOW_METHODS", "CORS_ALLOW_HEADERS")
    @classmethod
    def _norm_csv(cls, v: str) -> str:
        return ",".join([piece.strip() for piece in v.split(",")]) if v else v

    @field_validator("CURRENCY")
    @classmethod
    def _norm_currency(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if len(v) != 3:
            raise ValueError("CURRENCY must be a 3-letter ISO code")
        return v

    @field_validator("AIRWALLEX_BASE_URL")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("PROVIDER_MAX_RETRIES")
    @classmethod
    def _bounded_retries(cls, v: int) -> int:
        if v < 0 or v > 3:
            raise ValueError("PROVIDER_MAX_RETRIES must be between 0 and 3")
        return v

    def validate_payments(self) -> None:
        if self.PAYMENTS_BACKEND == "stripe":
            if not self.STRIPE_SECRET_KEY or not self.STRIPE_WEBHOOK_SECRET:
                raise ValueError("STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET are required when PAYMENTS_BACKEND=stripe")

    @property
    def airwallex_enabled(self) -> bool:
        return bool(self.AIRWALLEX_CLIENT_ID and self.AIRWALLEX_API_KEY)


settings = Settings()
# Post init checks that are cross-field aware
settings.validate_payments()
