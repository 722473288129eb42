"""Opaque session tokens and refresh policy."""

import secrets
from datetime import datetime, timedelta

TOKEN_BYTES = 32


def generate_token() -> str:
    """Generate a random opaque session token."""
    return secrets.token_hex(TOKEN_BYTES)


def needs_refresh(
    created_at: datetime | None,
    expiry_minutes: int,
    refresh_threshold_minutes: int,
    now: datetime | None = None,
) -> bool:
    """Check whether a token is close enough to expiry to be refreshed.

    Args:
        created_at: When the token was issued. A missing value always
            needs a refresh.
        expiry_minutes: Token lifetime in minutes.
        refresh_threshold_minutes: Refresh window before expiry.
        now: Reference time, defaults to the current time.

    Returns:
        True if ``age > expiry - threshold``.
    """
    if created_at is None:
        return True
    age = (now or datetime.now()) - created_at
    return age > timedelta(minutes=expiry_minutes - refresh_threshold_minutes)
