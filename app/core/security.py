from __future__ import annotations

import secrets

from jose import jwt

from app.core.config import get_settings

WEBHOOK_TOKEN_HEADER = "x-callback-token"


def verify_webhook_token(provided: str | None, expected: str | None) -> bool:
    """Exact match of the provider callback token against the shared secret.

    An empty or missing token never authenticates, even when no secret is
    configured.
    """
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def decode_access_token(token: str) -> dict:
    """Decode a staff bearer token. Raises ``JWTError`` or ``ValueError``."""
    settings = get_settings()
    if not settings.jwt_secret:
        raise ValueError("JWT_SECRET is not configured; staff tokens cannot be verified.")
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.algorithm])
