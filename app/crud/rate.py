from __future__ import annotations

from supabase import Client


async def get_rates(client: Client, room_type_id: str, stay_type: str) -> list[dict]:
    """All versions of the rate card entry for a room type and stay type."""
    response = (
        client.table("rates")
        .select("*")
        .eq("room_type_id", room_type_id)
        .eq("stay_type", stay_type)
        .order("created_at", desc=True)
        .execute()
    )
    return response.data or []


async def get_room_rate_override(client: Client, room_id: str, stay_type: str) -> dict | None:
    response = (
        client.table("room_rate_overrides")
        .select("*")
        .eq("room_id", room_id)
        .eq("stay_type", stay_type)
        .eq("is_active", True)
        .limit(1)
        .execute()
    )
    if not response.data:
        return None
    return response.data[0]
