"""Which intents an unauthenticated sender may reach."""

PUBLIC_INTENTS = frozenset(
    {
        "register",
        "login",
        "greeting",
        "help",
        "password_reset",
        "verify_otp",
        "resend_otp",
    }
)

# Steps of these flows belong to the public intents that start them
PUBLIC_FLOWS = ("registration", "login", "password_reset")

# Resolved only while a session is in SUPPORT_CHAT
SUPPORT_INTENTS = frozenset({"support_message", "end_support"})


def requires_auth(intent: str) -> bool:
    """Check whether an intent needs an authenticated session.

    Examples:
        "greeting" -> False
        "registration_step_email" -> False
        "track_order" -> True
        "checkout_step_address" -> True
    """
    if intent in PUBLIC_INTENTS:
        return False
    return not any(intent.startswith(f"{flow}_step_") for flow in PUBLIC_FLOWS)
