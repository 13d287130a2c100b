from __future__ import annotations

from collections.abc import Collection
from datetime import date

from supabase import Client


async def get_room_by_id(client: Client, room_id: str) -> dict | None:
    response = client.table("rooms").select("*").eq("id", room_id).limit(1).execute()
    if not response.data:
        return None
    return response.data[0]


async def get_rooms(
    client: Client,
    property_id: str | None = None,
    room_type_id: str | None = None,
) -> list[dict]:
    query = client.table("rooms").select("*").order("room_number")
    if property_id:
        query = query.eq("property_id", property_id)
    if room_type_id:
        query = query.eq("room_type_id", room_type_id)
    response = query.execute()
    return response.data or []


async def get_room_type_by_id(client: Client, room_type_id: str) -> dict | None:
    response = (
        client.table("room_types").select("*").eq("id", room_type_id).limit(1).execute()
    )
    if not response.data:
        return None
    return response.data[0]


async def get_overlapping_blocks(
    client: Client,
    room_ids: Collection[str],
    check_in: date,
    check_out: date,
) -> list[dict]:
    if not room_ids:
        return []
    response = (
        client.table("availability_blocks")
        .select("*")
        .in_("room_id", list(room_ids))
        .lt("start_date", check_out.isoformat())
        .gt("end_date", check_in.isoformat())
        .execute()
    )
    return response.data or []
