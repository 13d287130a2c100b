from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from pydantic import BaseModel

from app.core.clock import Clock, utcnow
from app.core.errors import BookingEngineError, InvalidTransition
from app.db.store import BookingStore
from app.services.booking_state import BookingStateMachine

logger = logging.getLogger(__name__)


class SweepResult(BaseModel):
    checked: int = 0
    expired: list[str] = []
    skipped: list[str] = []


class ExpirySweeper:
    """Cancels pending holds whose payment window has passed."""

    def __init__(self, store: BookingStore, state_machine: BookingStateMachine, clock: Clock = utcnow):
        self.store = store
        self.state_machine = state_machine
        self.clock = clock

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        now = now or self.clock()
        result = SweepResult()
        for booking in await self.store.list_expired_holds(now):
            result.checked += 1
            try:
                await self.state_machine.expire_pending(booking.id, now)
            except InvalidTransition:
                # Paid or cancelled between the listing and the transition.
                result.skipped.append(booking.id)
                continue
            result.expired.append(booking.id)

        if result.expired:
            logger.info("Expired %d pending booking(s)", len(result.expired))
        return result

    async def run_forever(self, interval_seconds: float) -> None:
        while True:
            try:
                await self.sweep()
            except BookingEngineError as exc:
                logger.error("Expiry sweep failed: %s", exc)
            except Exception:
                logger.exception("Expiry sweep crashed; retrying in %ss", interval_seconds)
            await asyncio.sleep(interval_seconds)
