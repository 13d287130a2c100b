from enum import Enum
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

XENDIT_DEFAULT_CHANNELS = ["QRIS", "CREDIT_CARD", "BCA", "BNI", "BRI", "MANDIRI", "PERMATA"]


class StorageBackend(str, Enum):
    MEMORY = "memory"
    SUPABASE = "supabase"


class PaymentMismatchPolicy(str, Enum):
    # Underpaid invoices leave the booking pending until it expires.
    REJECT = "reject"
    # Underpaid invoices still confirm the booking with a partial payment status.
    ACCEPT_PARTIAL = "accept_partial"


def _validate_public_http_url(value: str, field_name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"{field_name} must be an absolute http(s) URL.")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "booking-settlement-engine"
    app_url: str = Field("http://localhost:3000", env="APP_URL")

    # Storage
    storage_backend: StorageBackend = Field(StorageBackend.MEMORY, env="STORAGE_BACKEND")
    supabase_url: str | None = Field(None, env="SUPABASE_URL")
    supabase_service_key: str | None = Field(None, env="SUPABASE_SERVICE_KEY")

    # Staff bearer tokens (issued elsewhere, verified here)
    jwt_secret: str | None = Field(None, env="JWT_SECRET")
    algorithm: str = "HS256"

    # Xendit
    xendit_secret_key: str | None = Field(None, env="XENDIT_SECRET_KEY")
    xendit_base_url: str = Field("https://api.xendit.co", env="XENDIT_BASE_URL")
    xendit_webhook_token: str | None = Field(None, env="XENDIT_WEBHOOK_TOKEN")
    xendit_timeout_seconds: float = 15.0
    currency_code: str = "IDR"
    invoice_duration_seconds: int = Field(86400, gt=0)
    accepted_payment_channels: list[str] = Field(
        default_factory=lambda: list(XENDIT_DEFAULT_CHANNELS)
    )
    payment_mismatch_policy: PaymentMismatchPolicy = Field(
        PaymentMismatchPolicy.REJECT, env="PAYMENT_MISMATCH_POLICY"
    )

    # Pending-hold expiry
    expiry_sweep_interval_seconds: int = Field(300, ge=0)
    cron_secret: str | None = Field(None, env="CRON_SECRET")

    @model_validator(mode="after")
    def validate_settings(self):
        if self.storage_backend == StorageBackend.SUPABASE:
            if not self.supabase_url or not self.supabase_service_key:
                raise ValueError(
                    "SUPABASE_URL and SUPABASE_SERVICE_KEY are required when "
                    "STORAGE_BACKEND=supabase."
                )
            if not self.supabase_url.rstrip("/").endswith(".supabase.co"):
                raise ValueError(
                    "SUPABASE_URL must be a valid Supabase project URL "
                    "(e.g., https://<project>.supabase.co)"
                )

        _validate_public_http_url(self.app_url, "APP_URL")
        _validate_public_http_url(self.xendit_base_url, "XENDIT_BASE_URL")

        code = self.currency_code.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError("CURRENCY_CODE must be a three-letter ISO 4217 code.")
        self.currency_code = code

        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
