"""Authentication: tokens, one-time codes and the intent guard."""

from chatengine.auth.guard import AUTH_REQUIRED_TEXT, AuthGuard, auth_required_reply
from chatengine.auth.otp import (
    OtpFailure,
    OtpPurpose,
    OtpRecord,
    OtpStore,
    OtpVerificationError,
    generate_otp,
)
from chatengine.auth.policy import PUBLIC_FLOWS, PUBLIC_INTENTS, SUPPORT_INTENTS, requires_auth
from chatengine.auth.tokens import generate_token, needs_refresh

__all__ = [
    "AuthGuard",
    "auth_required_reply",
    "AUTH_REQUIRED_TEXT",
    "OtpStore",
    "OtpRecord",
    "OtpPurpose",
    "OtpFailure",
    "OtpVerificationError",
    "generate_otp",
    "PUBLIC_INTENTS",
    "PUBLIC_FLOWS",
    "SUPPORT_INTENTS",
    "requires_auth",
    "generate_token",
    "needs_refresh",
]
