"""Per-turn orchestration.

Every inbound message goes through the same pipeline while holding the
sender's lock:

1. load or create the session and mark the message read
2. expire a stale login or stale flow context
3. touch the session and refresh its token
4. resolve the message to an intent
5. run the auth guard
6. run the intent's handler
7. save the session
8. send the collected replies
"""

import logging
import re
import uuid
from datetime import datetime
from typing import Any

from chatengine.auth.guard import AuthGuard, auth_required_reply
from chatengine.config.intents import IntentsConfig
from chatengine.flows.context import get_flow
from chatengine.flows.definitions import FlowName, step_intent
from chatengine.flows.resolver import FlowResolver, is_flow_marker
from chatengine.handlers import TurnContext, get_handler
from chatengine.handlers.media import PENDING_PRESCRIPTION_KEY
from chatengine.nlp.classifier import IntentClassifier
from chatengine.nlp.results import UNKNOWN_INTENT, IntentResult, ResolutionSource
from chatengine.observability.audit import AuditLogger
from chatengine.pagination.cursor import DEFAULT_PAGE_SIZE, PaginationCursor, get_active_cursor
from chatengine.pagination.navigation import (
    NavigationAction,
    NavigationResult,
    is_navigation_shape,
    parse_navigation,
)
from chatengine.services.container import Services
from chatengine.services.protocols import Messenger
from chatengine.session.locks import SenderLocks
from chatengine.session.manager import ExpiryOutcome, SessionManager
from chatengine.session.state import ConversationState, Session
from chatengine.whatsapp.messages import OutboundMessage, TextMessage
from chatengine.whatsapp.models import InboundMessage, MessageKind

logger = logging.getLogger(__name__)

SESSION_EXPIRED_TEXT = "Your session expired due to inactivity. Please log in again."
CONTEXT_DISCARDED_TEXT = (
    "Your previous request timed out due to inactivity, so we started over."
)
HANDLER_ERROR_TEXT = "Sorry, something went wrong on our side. Please try again in a moment."

SUPPORT_CLOSE_PATTERN = re.compile(r"^(?:close|exit|end chat|stop support)$", re.IGNORECASE)

MENU_REPLY_PREFIX = "menu_"

# Interactive reply ids that map straight to an intent
INTERACTIVE_INTENTS: dict[str, tuple[str, dict[str, Any]]] = {
    "show_help_menu": ("help", {}),
    "show_login_prompt": ("login", {}),
    "show_register_prompt": ("register", {}),
    "show_password_reset_prompt": ("password_reset", {}),
    "logout": ("logout", {}),
    "show_cart": ("view_cart", {}),
    "cart_next_page": ("view_cart", {"direction": "next"}),
    "cart_prev_page": ("view_cart", {"direction": "previous"}),
    "show_checkout": ("place_order", {}),
}

# Text of these intents is never written to the audit log
SENSITIVE_INTENTS = frozenset({"register", "login", "verify_otp", "password_reset_step_otp"})
SENSITIVE_SUFFIXES = ("_step_password", "_step_new_password")


def is_sensitive(intent: str) -> bool:
    """Check whether an intent's message text may hold a secret."""
    return intent in SENSITIVE_INTENTS or intent.endswith(SENSITIVE_SUFFIXES)


def describe_location(message: InboundMessage) -> str:
    """Turn a shared location into an address line."""
    parts = [p for p in (message.location_name, message.location_address) if p]
    if parts:
        return ", ".join(parts)
    return f"{message.latitude}, {message.longitude}"


def _public(intent: str, source: ResolutionSource, **parameters: Any) -> IntentResult:
    return IntentResult(intent=intent, parameters=parameters, requires_auth=False, source=source)


class Dispatcher:
    """Runs turns for inbound messages.

    Turns for one sender are serialized; turns for different senders run
    concurrently. The locks are per process, so a multi-process deployment
    needs locking in the session store instead.
    """

    def __init__(
        self,
        sessions: SessionManager,
        classifier: IntentClassifier,
        services: Services,
        messenger: Messenger,
        config: IntentsConfig | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        audit_enabled: bool = True,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            sessions: Session state machine.
            classifier: Text classifier.
            services: Domain collaborators.
            messenger: Outbound channel.
            config: Intent table; defaults to the classifier's.
            page_size: Default items per list page.
            audit_enabled: Whether audit events are emitted.
        """
        self._sessions = sessions
        self._classifier = classifier
        self._services = services
        self._messenger = messenger
        self._config = config or classifier.config
        self._page_size = page_size
        self._audit_enabled = audit_enabled
        self._flows = FlowResolver()
        self._guard = AuthGuard()
        self._locks = SenderLocks()

    @property
    def sessions(self) -> SessionManager:
        """Get the session manager."""
        return self._sessions

    @property
    def classifier(self) -> IntentClassifier:
        """Get the classifier in use."""
        return self._classifier

    @property
    def config(self) -> IntentsConfig:
        """Get the intent table in use."""
        return self._config

    def update_config(self, new_config: IntentsConfig) -> None:
        """Swap in a reloaded intent table for subsequent turns."""
        self._classifier = IntentClassifier(new_config, threshold=self._classifier.threshold)
        self._config = new_config
        logger.info("Dispatcher using new intent table (%d intents)", len(new_config.intents))

    async def handle(
        self,
        message: InboundMessage,
        now: datetime | None = None,
        refresh_activity: bool = True,
    ) -> list[OutboundMessage]:
        """Run one turn.

        Args:
            message: The normalized inbound message.
            now: Turn time, defaults to the current time.
            refresh_activity: Whether this turn counts as activity for the
                idle timeout.

        Returns:
            The messages sent (or attempted) in reply.
        """
        async with self._locks.hold(message.sender_id):
            return await self._run_turn(message, now or datetime.now(), refresh_activity)

    async def _run_turn(
        self, message: InboundMessage, now: datetime, refresh_activity: bool
    ) -> list[OutboundMessage]:
        audit = AuditLogger(
            turn_id=str(uuid.uuid4()), sender_id=message.sender_id, enabled=self._audit_enabled
        )
        session, created = self._sessions.get_or_create(message.sender_id)
        if created:
            audit.log_session_event("created")
        await self._mark_read(message)

        notices: list[OutboundMessage] = []
        outcome = self._sessions.expire_if_idle(session, now)
        if outcome == ExpiryOutcome.SESSION_EXPIRED:
            audit.log_session_event("expired", reason="idle_timeout")
            notices.append(TextMessage(body=SESSION_EXPIRED_TEXT))
        elif outcome == ExpiryOutcome.CONTEXT_DISCARDED:
            audit.log_session_event("context_discarded", reason="idle_timeout")
            notices.append(TextMessage(body=CONTEXT_DISCARDED_TEXT))

        self._sessions.touch(session, now, suppress=not refresh_activity)
        authenticated = self._sessions.is_authenticated(session, now)
        if authenticated:
            self._sessions.refresh_token_if_needed(session, now)

        result = self.resolve(session, message)
        audit.log_message_received(
            message.kind.value, None if is_sensitive(result.intent) else message.text
        )
        audit.log_intent_resolved(
            result.intent, result.source.value, result.confidence, result.requires_auth
        )

        ctx = TurnContext(
            session=session,
            message=message,
            result=result,
            services=self._services,
            sessions=self._sessions,
            config=self._config,
            audit=audit,
            now=now,
            page_size=self._page_size,
        )
        if self._guard.allows(result, session, authenticated):
            await self._run_handler(ctx)
        else:
            audit.log_auth_blocked(result.intent)
            ctx.reply.add(auth_required_reply())

        self._sessions.save(session)

        outbound = notices + ctx.reply.messages
        await self._send(message.sender_id, outbound, audit)
        return outbound

    def resolve(self, session: Session, message: InboundMessage) -> IntentResult:
        """Resolve a message to an intent for this session."""
        kind = message.kind
        if kind == MessageKind.AUDIO:
            return _public("voice_message", ResolutionSource.MEDIA)
        if kind == MessageKind.UNSUPPORTED:
            return _public("unsupported_message", ResolutionSource.MEDIA)
        if kind in (MessageKind.IMAGE, MessageKind.DOCUMENT):
            return IntentResult.resolved(
                "prescription_media",
                ResolutionSource.MEDIA,
                parameters={"media_id": message.media_id, "caption": message.caption},
            )
        if kind == MessageKind.LOCATION:
            return self._resolve_location(session, message)
        if kind == MessageKind.INTERACTIVE and message.reply_id:
            result = self._resolve_interactive(session, message.reply_id)
            if result is not None:
                return result
        return self._resolve_text(session, message.text)

    def _resolve_location(self, session: Session, message: InboundMessage) -> IntentResult:
        context = get_flow(session)
        if context is not None and context.flow == FlowName.CHECKOUT and context.step == "address":
            return IntentResult.resolved(
                step_intent(FlowName.CHECKOUT, "address"),
                ResolutionSource.LOCATION,
                parameters={"value": describe_location(message)},
            )
        return IntentResult.resolved("share_location", ResolutionSource.LOCATION)

    def _resolve_interactive(self, session: Session, reply_id: str) -> IntentResult | None:
        if is_flow_marker(reply_id):
            return self._flows.resolve_marker(session, reply_id)
        if reply_id in INTERACTIVE_INTENTS:
            intent, params = INTERACTIVE_INTENTS[reply_id]
            return IntentResult.resolved(
                intent, ResolutionSource.INTERACTIVE, parameters=dict(params)
            )
        if reply_id.startswith(MENU_REPLY_PREFIX):
            intent = self._config.menu_intent(reply_id[len(MENU_REPLY_PREFIX) :])
            if intent:
                return IntentResult.resolved(intent, ResolutionSource.MENU)
        logger.debug("Unmapped interactive reply id %s, using its title", reply_id)
        return None

    def _resolve_text(self, session: Session, raw_text: str) -> IntentResult:
        text = raw_text.strip()
        if not text:
            return IntentResult.unknown(ResolutionSource.FALLBACK)

        interrupt = self._flows.resolve_interrupt(session, text)
        if interrupt is not None:
            return interrupt

        if session.state == ConversationState.SUPPORT_CHAT:
            if SUPPORT_CLOSE_PATTERN.match(text):
                return IntentResult.resolved("end_support", ResolutionSource.SUPPORT)
            return IntentResult.resolved(
                "support_message", ResolutionSource.SUPPORT, parameters={"value": text}
            )

        cursor = get_active_cursor(session)
        if cursor is not None and is_navigation_shape(text):
            context = get_flow(session)
            if context is None or not context.expects_numeric:
                navigation = parse_navigation(text, cursor)
                if navigation is not None:
                    return self._navigation_result(cursor, navigation)

        continuation = self._flows.resolve_flow(session, text)
        if continuation is not None:
            return continuation

        return self._classifier.classify(
            text, pending_attachment=bool(session.data.get(PENDING_PRESCRIPTION_KEY))
        )

    @staticmethod
    def _navigation_result(cursor: PaginationCursor, navigation: NavigationResult) -> IntentResult:
        namespace = cursor.namespace.value
        if navigation.action == NavigationAction.SELECT:
            return IntentResult.resolved(
                "list_select",
                ResolutionSource.PAGINATION,
                parameters={
                    "namespace": namespace,
                    "item": navigation.item,
                    "selection": navigation.selection,
                },
            )
        if navigation.action == NavigationAction.ERROR:
            return IntentResult.resolved(
                "list_error", ResolutionSource.PAGINATION, parameters={"error": navigation.error}
            )
        return IntentResult.resolved(
            "list_navigate",
            ResolutionSource.PAGINATION,
            parameters={"namespace": namespace, "page": navigation.page},
        )

    async def _run_handler(self, ctx: TurnContext) -> None:
        intent = ctx.result.intent
        handler = get_handler(intent) or get_handler(UNKNOWN_INTENT)
        if handler is None:
            raise RuntimeError(f"No handler registered for {UNKNOWN_INTENT!r}")
        try:
            await handler(ctx)
        except Exception as e:
            logger.exception(
                "Handler failed (intent=%s, sender_id=%s)", intent, ctx.session.sender_id
            )
            ctx.audit.log_handler_failed(intent, e)
            ctx.reply.clear()
            ctx.reply.text(HANDLER_ERROR_TEXT)

    async def _mark_read(self, message: InboundMessage) -> None:
        if not message.message_id:
            return
        try:
            await self._messenger.mark_read(message.message_id)
        except Exception as e:
            logger.debug("Failed to mark message %s read: %s", message.message_id, e)

    async def _send(
        self, to: str, messages: list[OutboundMessage], audit: AuditLogger
    ) -> None:
        for outbound in messages:
            try:
                await self._messenger.send(to, outbound)
            except Exception as e:
                logger.error("Failed to send %s reply to %s: %s", outbound.kind, to, e)
                audit.log_reply_failed(outbound.kind, e)
