"""Turn context, reply collector and the intent-to-handler registry."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from chatengine.config.intents import IntentsConfig
from chatengine.nlp.results import IntentResult
from chatengine.observability.audit import AuditLogger
from chatengine.pagination.cursor import DEFAULT_PAGE_SIZE
from chatengine.services.container import Services
from chatengine.session.manager import SessionManager
from chatengine.session.state import Session
from chatengine.whatsapp.messages import (
    Button,
    ButtonMessage,
    ListMessage,
    ListRow,
    ListSection,
    LocationRequestMessage,
    OutboundMessage,
    TextMessage,
)
from chatengine.whatsapp.models import InboundMessage

logger = logging.getLogger(__name__)


@dataclass
class Reply:
    """Outbound messages collected during a turn, sent after the save."""

    messages: list[OutboundMessage] = field(default_factory=list)

    def add(self, message: OutboundMessage) -> None:
        self.messages.append(message)

    def text(self, body: str) -> None:
        self.messages.append(TextMessage(body=body))

    def buttons(self, body: str, buttons: list[tuple[str, str]]) -> None:
        """Add a button message from (id, title) pairs."""
        self.messages.append(
            ButtonMessage(body=body, buttons=tuple(Button(id=i, title=t) for i, t in buttons))
        )

    def menu(self, body: str, button_text: str, rows: list[tuple[str, str]]) -> None:
        """Add a single-section list message from (id, title) pairs."""
        self.messages.append(
            ListMessage(
                body=body,
                button_text=button_text,
                sections=(ListSection(rows=tuple(ListRow(id=i, title=t) for i, t in rows)),),
            )
        )

    def location_request(self, body: str) -> None:
        self.messages.append(LocationRequestMessage(body=body))

    def clear(self) -> None:
        self.messages = []


@dataclass
class TurnContext:
    """Everything a handler may read or change during one turn.

    Handlers change the session in place and append to ``reply``. The
    dispatcher saves the session and sends the reply afterwards.
    """

    session: Session
    message: InboundMessage
    result: IntentResult
    services: Services
    sessions: SessionManager
    config: IntentsConfig
    audit: AuditLogger
    now: datetime = field(default_factory=datetime.now)
    reply: Reply = field(default_factory=Reply)
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def params(self) -> dict[str, Any]:
        return self.result.parameters

    @property
    def value(self) -> str:
        """The raw answer for a flow step."""
        return str(self.params.get("value", self.message.text)).strip()

    @property
    def user_id(self) -> str:
        """The authenticated user's id.

        Raises:
            RuntimeError: If the session has no user; the guard prevents
                this for protected intents.
        """
        if self.session.user_id is None:
            raise RuntimeError("Handler requires an authenticated session")
        return self.session.user_id


Handler = Callable[[TurnContext], Awaitable[None]]

_HANDLERS: dict[str, Handler] = {}


def handles(*intents: str) -> Callable[[Handler], Handler]:
    """Register a handler for one or more intents."""

    def decorator(func: Handler) -> Handler:
        for intent in intents:
            if intent in _HANDLERS:
                raise ValueError(f"Duplicate handler for intent: {intent}")
            _HANDLERS[intent] = func
        return func

    return decorator


def get_handler(intent: str) -> Handler | None:
    """Get the handler registered for an intent."""
    return _HANDLERS.get(intent)


def registered_intents() -> list[str]:
    """List every intent with a handler."""
    return sorted(_HANDLERS)
