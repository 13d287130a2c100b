from __future__ import annotations

from collections.abc import Collection, Mapping
from typing import Any

from supabase import Client


async def create_payment(client: Client, row: dict) -> dict:
    response = client.table("payments").insert(row).execute()
    return response.data[0]


async def update_payment(client: Client, payment_id: str, changes: Mapping[str, Any]) -> dict | None:
    response = client.table("payments").update(dict(changes)).eq("id", payment_id).execute()
    if not response.data:
        return None
    return response.data[0]


async def get_payment_by_external_id(client: Client, external_id: str) -> dict | None:
    response = (
        client.table("payments").select("*").eq("external_id", external_id).limit(1).execute()
    )
    if not response.data:
        return None
    return response.data[0]


async def get_payment_by_invoice_id(client: Client, invoice_id: str) -> dict | None:
    response = (
        client.table("payments")
        .select("*")
        .eq("provider_invoice_id", invoice_id)
        .limit(1)
        .execute()
    )
    if not response.data:
        return None
    return response.data[0]


async def get_payment_event(client: Client, provider_event_id: str) -> dict | None:
    response = (
        client.table("payment_events")
        .select("*")
        .eq("provider_event_id", provider_event_id)
        .limit(1)
        .execute()
    )
    if not response.data:
        return None
    return response.data[0]


async def insert_payment_event(client: Client, row: dict) -> dict:
    """Write-once insert; a unique violation on provider_event_id propagates."""
    response = client.table("payment_events").insert(row).execute()
    return response.data[0]


async def update_payment_if(
    client: Client, payment_id: str, statuses: Collection[str], changes: Mapping[str, Any]
) -> dict | None:
    """Conditional update on the invoice status; None when nothing matched."""
    response = (
        client.table("payments")
        .update(dict(changes))
        .eq("id", payment_id)
        .in_("status", list(statuses))
        .execute()
    )
    if not response.data:
        return None
    return response.data[0]
