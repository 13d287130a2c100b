import logging

from fastapi import APIRouter, Depends, Header

from app.api import deps
from app.core.config import Settings, get_settings
from app.core.errors import AuthenticationFailed
from app.core.security import WEBHOOK_TOKEN_HEADER, verify_webhook_token
from app.schemas.payment import WebhookAck, XenditInvoiceCallback
from app.services.reconciler import PaymentReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1.0/webhooks", tags=["webhooks"])


@router.post("/xendit", response_model=WebhookAck)
async def xendit_invoice_callback(
    payload: XenditInvoiceCallback,
    callback_token: str | None = Header(None, alias=WEBHOOK_TOKEN_HEADER),
    settings: Settings = Depends(get_settings),
    reconciler: PaymentReconciler = Depends(deps.get_reconciler),
):
    """Xendit invoice callback. Redeliveries are acknowledged with the stored outcome."""
    if not verify_webhook_token(callback_token, settings.xendit_webhook_token):
        logger.warning("Rejected Xendit callback for invoice %s: bad callback token", payload.id)
        raise AuthenticationFailed("Invalid callback token.")

    outcome = await reconciler.handle_callback(payload)
    return WebhookAck(received=True, outcome=outcome)
