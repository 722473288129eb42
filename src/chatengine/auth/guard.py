"""Authentication guard between resolution and the handler."""

import logging
from typing import TYPE_CHECKING

from chatengine.auth.policy import SUPPORT_INTENTS
from chatengine.session.state import ConversationState
from chatengine.whatsapp.messages import Button, ButtonMessage

if TYPE_CHECKING:
    from chatengine.nlp.results import IntentResult
    from chatengine.session.state import Session

logger = logging.getLogger(__name__)

AUTH_REQUIRED_TEXT = (
    "You need to be logged in to do that.\n\n"
    "Log in with: login your@email.com yourpassword\n"
    "Or create an account with: register Your Name your@email.com yourpassword"
)


def auth_required_reply() -> ButtonMessage:
    """The prompt shown instead of running a protected handler."""
    return ButtonMessage(
        body=AUTH_REQUIRED_TEXT,
        buttons=(
            Button(id="show_login_prompt", title="Login"),
            Button(id="show_register_prompt", title="Register"),
            Button(id="show_help_menu", title="Main Menu"),
        ),
    )


class AuthGuard:
    """Decides whether a resolved intent may run for this session."""

    def allows(self, result: "IntentResult", session: "Session", authenticated: bool) -> bool:
        """Check an intent against the session's login.

        Args:
            result: The resolved intent.
            session: Current session.
            authenticated: Whether the session passed the idle-aware
                authentication check this turn.

        Returns:
            True if the handler may run.
        """
        if not result.requires_auth:
            return True
        if authenticated:
            return True
        if (
            result.intent in SUPPORT_INTENTS
            and session.state == ConversationState.SUPPORT_CHAT
            and session.token is not None
        ):
            return True

        logger.info(
            "Blocked unauthenticated intent (sender_id=%s, intent=%s)",
            session.sender_id,
            result.intent,
        )
        return False
