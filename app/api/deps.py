from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from app.core.config import Settings, get_settings
from app.core.security import decode_access_token, verify_webhook_token
from app.db.base import get_store
from app.db.store import BookingStore
from app.services.availability import AvailabilityResolver
from app.services.booking_state import BookingStateMachine
from app.services.expiry import ExpirySweeper
from app.services.rates import RateResolver
from app.services.reconciler import PaymentReconciler
from app.services.xendit import PaymentGateway, XenditClient

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def get_payment_gateway(settings: Settings = Depends(get_settings)) -> PaymentGateway:
    return XenditClient(settings)


def get_rate_resolver(store: BookingStore = Depends(get_store)) -> RateResolver:
    return RateResolver(store)


def get_availability_resolver(store: BookingStore = Depends(get_store)) -> AvailabilityResolver:
    return AvailabilityResolver(store)


def get_state_machine(
    store: BookingStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
) -> BookingStateMachine:
    return BookingStateMachine(store, gateway, settings)


def get_reconciler(
    store: BookingStore = Depends(get_store),
    state_machine: BookingStateMachine = Depends(get_state_machine),
    settings: Settings = Depends(get_settings),
) -> PaymentReconciler:
    return PaymentReconciler(store, state_machine, settings.payment_mismatch_policy)


def get_expiry_sweeper(
    store: BookingStore = Depends(get_store),
    state_machine: BookingStateMachine = Depends(get_state_machine),
) -> ExpirySweeper:
    return ExpirySweeper(store, state_machine)


async def get_current_staff(token: str = Depends(oauth2_scheme)) -> dict:
    """Claims of a staff bearer token. Tokens are issued elsewhere."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
    except (JWTError, ValueError):
        raise credentials_exception

    if not payload.get("sub"):
        raise credentials_exception
    return payload


async def verify_cron_secret(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not verify_webhook_token(token, settings.cron_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
