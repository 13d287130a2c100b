from __future__ import annotations

from collections.abc import Collection, Mapping
from datetime import date, datetime
from typing import Any

from supabase import Client

ACTIVE_STATUS_VALUES = ("pending", "confirmed", "checked_in")


async def get_booking_by_id(client: Client, booking_id: str) -> dict | None:
    response = client.table("bookings").select("*").eq("id", booking_id).limit(1).execute()
    if not response.data:
        return None
    return response.data[0]


async def get_overlapping_bookings(
    client: Client,
    room_ids: Collection[str],
    check_in: date,
    check_out: date,
) -> list[dict]:
    if not room_ids:
        return []
    response = (
        client.table("bookings")
        .select("*")
        .in_("room_id", list(room_ids))
        .in_("status", list(ACTIVE_STATUS_VALUES))
        .lt("check_in", check_out.isoformat())
        .gt("check_out", check_in.isoformat())
        .execute()
    )
    return response.data or []


async def get_expired_holds(
    client: Client, now: datetime, room_id: str | None = None
) -> list[dict]:
    query = (
        client.table("bookings")
        .select("*")
        .eq("status", "pending")
        .lte("hold_expires_at", now.isoformat())
        .order("hold_expires_at")
    )
    if room_id:
        query = query.eq("room_id", room_id)
    response = query.execute()
    return response.data or []


async def claim_room(client: Client, row: dict) -> dict:
    """Insert a pending booking through the ``claim_room`` database function.

    The function locks the room row, checks bookings and blocks for overlap
    and inserts in the same transaction; an exclusion constraint backs it.
    """
    response = client.rpc("claim_room", {"p_booking": row}).execute()
    data = response.data
    if isinstance(data, list):
        return data[0]
    return data


async def update_booking_if(
    client: Client,
    booking_id: str,
    statuses: Collection[str],
    changes: Mapping[str, Any],
    expected: Mapping[str, Any] | None = None,
) -> dict | None:
    """Conditional update; returns the updated row or None when nothing matched."""
    query = (
        client.table("bookings")
        .update(dict(changes))
        .eq("id", booking_id)
        .in_("status", list(statuses))
    )
    for field, value in (expected or {}).items():
        query = query.eq(field, value)
    response = query.execute()
    if not response.data:
        return None
    return response.data[0]
