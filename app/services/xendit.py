"""Xendit invoice API client and callback normalization."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from app.core.config import Settings
from app.core.errors import PaymentProviderError
from app.schemas.enums import PaymentEventStatus, PaymentMethod
from app.schemas.payment import Invoice, InvoiceRequest

logger = logging.getLogger(__name__)

INVOICES_PATH = "/v2/invoices"

QRIS_CHANNELS = frozenset({"QRIS", "QR_CODE"})
CARD_CHANNELS = frozenset({"CREDIT_CARD"})

_STATUS_MAP = {
    "PAID": PaymentEventStatus.PAID,
    "SETTLED": PaymentEventStatus.PAID,
    "EXPIRED": PaymentEventStatus.EXPIRED,
    "FAILED": PaymentEventStatus.FAILED,
}


def map_payment_channel(channel: str | None) -> PaymentMethod:
    """Normalize a Xendit channel code; unknown channels are bank transfers."""
    code = (channel or "").strip().upper()
    if code in QRIS_CHANNELS:
        return PaymentMethod.QRIS
    if code in CARD_CHANNELS:
        return PaymentMethod.CREDIT_CARD
    return PaymentMethod.BANK_TRANSFER


def map_invoice_status(status: str | None) -> PaymentEventStatus | None:
    """Map a Xendit invoice status; statuses that settle nothing map to None."""
    return _STATUS_MAP.get((status or "").strip().upper())


class PaymentGateway(Protocol):
    async def create_invoice(self, request: InvoiceRequest) -> Invoice: ...


class XenditClient:
    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.transport = transport

    def _payload(self, request: InvoiceRequest) -> dict:
        customer = {"given_names": request.customer_name, "email": request.payer_email}
        if request.customer_phone:
            customer["mobile_number"] = request.customer_phone
        return {
            "external_id": request.external_id,
            "amount": request.amount,
            "payer_email": request.payer_email,
            "description": request.description,
            "success_redirect_url": request.success_redirect_url,
            "failure_redirect_url": request.failure_redirect_url,
            "currency": self.settings.currency_code,
            "customer": customer,
            "payment_methods": list(self.settings.accepted_payment_channels),
            "invoice_duration": self.settings.invoice_duration_seconds,
        }

    async def create_invoice(self, request: InvoiceRequest) -> Invoice:
        if not self.settings.xendit_secret_key:
            raise PaymentProviderError("XENDIT_SECRET_KEY is not configured.")

        async with httpx.AsyncClient(
            base_url=self.settings.xendit_base_url,
            auth=(self.settings.xendit_secret_key, ""),
            timeout=httpx.Timeout(self.settings.xendit_timeout_seconds),
            transport=self.transport,
        ) as client:
            try:
                response = await client.post(INVOICES_PATH, json=self._payload(request))
            except httpx.HTTPError as exc:
                raise PaymentProviderError(
                    f"Xendit invoice request failed: {exc}",
                    external_id=request.external_id,
                ) from exc

        if response.is_error:
            raise PaymentProviderError(
                f"Xendit invoice creation failed ({response.status_code}): {response.text}",
                external_id=request.external_id,
            )

        invoice = Invoice.model_validate(response.json())
        logger.info(
            "Created Xendit invoice %s for %s (%d %s)",
            invoice.id,
            invoice.external_id,
            invoice.amount,
            self.settings.currency_code,
        )
        return invoice
