from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.core.config import (
    XENDIT_DEFAULT_CHANNELS,
    PaymentMismatchPolicy,
    Settings,
    StorageBackend,
)


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.storage_backend == StorageBackend.MEMORY
    assert settings.currency_code == "IDR"
    assert settings.invoice_duration_seconds == 86400
    assert settings.accepted_payment_channels == XENDIT_DEFAULT_CHANNELS
    assert settings.payment_mismatch_policy == PaymentMismatchPolicy.REJECT


def test_supabase_backend_requires_credentials():
    with pytest.raises(ValidationError) as exc_info:
        Settings(_env_file=None, storage_backend="supabase")

    assert "SUPABASE_URL and SUPABASE_SERVICE_KEY are required" in str(exc_info.value)


def test_supabase_url_must_be_a_project_url():
    with pytest.raises(ValidationError):
        Settings(
            _env_file=None,
            storage_backend="supabase",
            supabase_url="https://example.com",
            supabase_service_key="service-key",
        )

    settings = Settings(
        _env_file=None,
        storage_backend="supabase",
        supabase_url="https://abcd1234.supabase.co",
        supabase_service_key="service-key",
    )
    assert settings.storage_backend == StorageBackend.SUPABASE


def test_app_url_must_be_absolute():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, app_url="book.example.com")


def test_currency_code_is_normalized():
    assert Settings(_env_file=None, currency_code="idr").currency_code == "IDR"
    with pytest.raises(ValidationError):
        Settings(_env_file=None, currency_code="RUPIAH")


def test_mismatch_policy_from_environment(monkeypatch):
    monkeypatch.setenv("PAYMENT_MISMATCH_POLICY", "accept_partial")

    assert Settings(_env_file=None).payment_mismatch_policy == PaymentMismatchPolicy.ACCEPT_PARTIAL
