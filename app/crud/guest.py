from __future__ import annotations

from supabase import Client


async def find_or_create_guest(
    client: Client,
    full_name: str,
    email: str,
    phone: str,
    id_type: str | None = None,
    id_number: str | None = None,
) -> dict:
    """Find a guest by email (refreshing name and phone) or create one."""
    existing = (
        client.table("guests").select("*").ilike("email", email).limit(1).execute()
    )
    if existing.data:
        update = {"full_name": full_name, "phone": phone}
        if id_number:
            update["id_number"] = id_number
        response = (
            client.table("guests").update(update).eq("id", existing.data[0]["id"]).execute()
        )
        return response.data[0] if response.data else {**existing.data[0], **update}

    guest_data = {"full_name": full_name, "email": email, "phone": phone}
    if id_type:
        guest_data["id_type"] = id_type
    if id_number:
        guest_data["id_number"] = id_number
    response = client.table("guests").insert(guest_data).execute()
    return response.data[0]
