from fastapi import APIRouter, Depends

from app.api import deps
from app.services.expiry import ExpirySweeper, SweepResult

router = APIRouter(prefix="/v1.0/cron", tags=["cron"])


@router.post(
    "/expire-pending",
    response_model=SweepResult,
    dependencies=[Depends(deps.verify_cron_secret)],
)
async def expire_pending_bookings(
    sweeper: ExpirySweeper = Depends(deps.get_expiry_sweeper),
):
    """Cancel pending bookings whose payment window has passed."""
    return await sweeper.sweep()
