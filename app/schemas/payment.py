from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.enums import (
    BookingStatus,
    InvoiceStatus,
    PaymentEventStatus,
    PaymentMethod,
    ReconcileResult,
)


class Payment(BaseModel):
    """Invoice record linking a booking to the provider's hosted payment."""

    id: str
    booking_id: str
    external_id: str | None = None
    provider_invoice_id: str | None = None
    invoice_url: str | None = None
    amount: int
    method: PaymentMethod | None = None
    payment_channel: str | None = None
    status: InvoiceStatus = InvoiceStatus.PENDING
    expires_at: datetime | None = None
    paid_at: datetime | None = None
    created_at: datetime | None = None


class InvoiceRequest(BaseModel):
    external_id: str
    amount: int = Field(..., gt=0)
    payer_email: str
    description: str
    success_redirect_url: str
    failure_redirect_url: str
    customer_name: str
    customer_phone: str | None = None


class Invoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    external_id: str
    invoice_url: str
    status: str
    amount: int
    expiry_date: datetime


class XenditInvoiceCallback(BaseModel):
    """Invoice callback body as posted by Xendit."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    external_id: str | None = None
    status: str
    amount: int | None = None
    paid_amount: int | None = None
    payment_channel: str | None = None
    payment_method: str | None = None
    paid_at: datetime | None = None
    event_id: str | None = None


class ReconcileOutcome(BaseModel):
    event_id: str
    result: ReconcileResult
    booking_id: str | None = None
    booking_status: BookingStatus | None = None
    payment_method: PaymentMethod | None = None
    amount_mismatch: bool = False
    duplicate: bool = False
    detail: str | None = None


class PaymentEvent(BaseModel):
    """Normalized, write-once payment notification."""

    provider_event_id: str
    external_id: str | None = None
    provider_invoice_id: str | None = None
    status: PaymentEventStatus
    amount: int | None = None
    channel: str | None = None
    paid_at: datetime | None = None
    received_at: datetime
    outcome: ReconcileOutcome | None = None


class WebhookAck(BaseModel):
    received: bool = True
    outcome: ReconcileOutcome | None = None
