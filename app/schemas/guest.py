from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

PHONE_PATTERN = r"^[+\d\s()-]+$"


class GuestContact(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    phone: str = Field(..., min_length=8, max_length=20, pattern=PHONE_PATTERN)
    id_type: str | None = Field(None, max_length=50)
    id_number: str | None = Field(None, max_length=50)


class Guest(BaseModel):
    id: str
    full_name: str
    email: str
    phone: str
    id_type: str | None = None
    id_number: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
