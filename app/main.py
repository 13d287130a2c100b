import asyncio
import contextlib
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import availability, bookings, cron, pricing, webhooks
from app.core.config import get_settings
from app.core.errors import BookingEngineError
from app.db.base import get_store
from app.services.booking_state import BookingStateMachine
from app.services.expiry import ExpirySweeper
from app.services.xendit import XenditClient

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title=settings.app_name)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update this in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingEngineError)
async def booking_engine_error_handler(request: Request, exc: BookingEngineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.api_route("/ping", methods=["GET", "HEAD", "OPTIONS"], tags=["public"])
async def ping() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(availability.router)
app.include_router(pricing.router)
app.include_router(bookings.router)
app.include_router(webhooks.router)
app.include_router(cron.router)

_sweep_task: asyncio.Task | None = None


def _log_sweep_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Expiry sweep task stopped", exc_info=exc)


@app.on_event("startup")
async def _start_expiry_sweep() -> None:
    global _sweep_task
    if settings.expiry_sweep_interval_seconds <= 0:
        return
    store = get_store()
    sweeper = ExpirySweeper(store, BookingStateMachine(store, XenditClient(settings), settings))
    _sweep_task = asyncio.create_task(
        sweeper.run_forever(settings.expiry_sweep_interval_seconds)
    )
    _sweep_task.add_done_callback(_log_sweep_exit)


@app.on_event("shutdown")
async def _stop_expiry_sweep() -> None:
    global _sweep_task
    if _sweep_task is None:
        return
    _sweep_task.cancel()
    with contextlib.suppress(asyncio.CancelledError, Exception):
        await _sweep_task
    _sweep_task = None


@app.get("/", tags=["public"])
async def root() -> dict[str, str]:
    return {"message": f"Welcome to {settings.app_name}"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
