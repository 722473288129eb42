"""End-to-end turn tests through the dispatcher."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from conftest import SENDER, bodies, joined

from chatengine.auth.guard import AUTH_REQUIRED_TEXT
from chatengine.dispatcher import (
    CONTEXT_DISCARDED_TEXT,
    HANDLER_ERROR_TEXT,
    SESSION_EXPIRED_TEXT,
    Dispatcher,
    is_sensitive,
)
from chatengine.flows.context import get_flow
from chatengine.flows.definitions import FlowName
from chatengine.nlp.classifier import IntentClassifier
from chatengine.pagination.cursor import (
    ListNamespace,
    build_cursor,
    get_active_cursor,
    set_cursor,
)
from chatengine.services.memory import SEED_PRODUCTS
from chatengine.session.state import ConversationState
from chatengine.whatsapp.client import LoggingMessenger
from chatengine.whatsapp.messages import ButtonMessage, ListMessage, LocationRequestMessage
from chatengine.whatsapp.models import InboundMessage, MessageKind


def button_ids(message) -> list[str]:
    return [button.id for button in message.buttons]


def interactive(reply_id: str, title: str = "Option") -> InboundMessage:
    return InboundMessage(
        sender_id=SENDER,
        kind=MessageKind.INTERACTIVE,
        text=title,
        reply_id=reply_id,
        reply_title=title,
    )


class TestRegistration:
    """Test registration and OTP verification."""

    async def test_register_then_verify_code(self, say, sessions, services):
        """Test one-shot registration followed by the emailed code."""
        await say("register Jane Doe jane@example.com mypassword123")

        session = sessions.store.get(SENDER)
        assert session.state == ConversationState.REGISTERING
        assert session.data["waitingForOTPVerification"] is True
        email, code, purpose = services.email.sent[-1]
        assert email == "jane@example.com"
        assert purpose == "registration"

        replies = await say(code)

        session = sessions.store.get(SENDER)
        assert session.state == ConversationState.LOGGED_IN
        assert session.token is not None
        assert session.user_id is not None
        assert "waitingForOTPVerification" not in session.data
        assert "registration" not in session.data
        assert "Welcome, Jane Doe" in joined(replies)
        assert await services.accounts.exists("jane@example.com")

    async def test_wrong_code_keeps_waiting(self, say, sessions):
        """Test an invalid code is rejected and the wait continues."""
        await say("register Jane Doe jane@example.com mypassword123")

        replies = await say("0000")

        assert "not valid" in joined(replies)
        session = sessions.store.get(SENDER)
        assert session.state == ConversationState.REGISTERING
        assert session.data["waitingForOTPVerification"] is True

    async def test_resend_issues_new_code(self, say, services):
        """Test 'resend' emails a fresh code that supersedes the old one."""
        await say("register Jane Doe jane@example.com mypassword123")
        first_code = services.email.sent[-1][1]

        await say("resend")

        assert len(services.email.sent) == 2
        second_code = services.email.sent[-1][1]
        if first_code != second_code:
            replies = await say(first_code)
            assert "already been used" in joined(replies)

    async def test_email_failure_sets_flag(self, say, sessions, services):
        """Test a failed OTP email still waits and records the failure."""
        services.email.send_otp = AsyncMock(side_effect=RuntimeError("smtp down"))

        replies = await say("register Jane Doe jane@example.com mypassword123")

        session = sessions.store.get(SENDER)
        assert session.data["waitingForOTPVerification"] is True
        assert session.data["emailSendFailed"] is True
        assert "resend" in joined(replies)

    async def test_cancel_while_waiting_for_code(self, say, sessions, services):
        """Test 'cancel' abandons a pending registration and its code."""
        await say("register Jane Doe jane@example.com mypassword123")
        code = services.email.sent[-1][1]

        replies = await say("cancel")

        assert "Cancelled" in replies[0].body
        session = sessions.store.get(SENDER)
        assert session.state == ConversationState.NEW
        assert "waitingForOTPVerification" not in session.data
        assert "registration" not in session.data

        await say(code)
        assert sessions.store.get(SENDER).state == ConversationState.NEW
        assert not await services.accounts.exists("jane@example.com")

    async def test_cancelled_flow_drops_code_wait(self, say, sessions, services):
        """Test cancelling another flow started during the wait also ends the wait."""
        await say("register Jane Doe jane@example.com mypassword123")
        code = services.email.sent[-1][1]
        await say("login")
        assert get_flow(sessions.store.get(SENDER)).flow == FlowName.LOGIN

        await say("cancel")

        session = sessions.store.get(SENDER)
        assert get_flow(session) is None
        assert "waitingForOTPVerification" not in session.data
        await say(code)
        assert not await services.accounts.exists("jane@example.com")

    async def test_step_by_step_registration(self, say, sessions, services):
        """Test the guided flow asks for each missing field."""
        await say("register")
        session = sessions.store.get(SENDER)
        assert get_flow(session).step == "email"
        assert session.state == ConversationState.REGISTERING

        await say("jane@example.com")
        assert get_flow(sessions.store.get(SENDER)).step == "name"
        await say("Jane Doe")
        assert get_flow(sessions.store.get(SENDER)).step == "phone"
        await say("0801 234 5678")
        assert get_flow(sessions.store.get(SENDER)).step == "password"
        await say("mypassword123")

        session = sessions.store.get(SENDER)
        assert get_flow(session) is None
        assert session.data["registration"]["phone"] == "08012345678"
        assert session.data["waitingForOTPVerification"] is True
        assert services.email.sent[-1][0] == "jane@example.com"

    async def test_short_password_rejected(self, say, sessions):
        """Test a one-shot registration with a short password is refused."""
        replies = await say("register Jane Doe jane@example.com abc")

        assert "at least 6 characters" in joined(replies)
        assert sessions.store.get(SENDER).state == ConversationState.NEW

    async def test_existing_email_offers_login(self, say, services):
        """Test registering an existing email points to login."""
        await services.accounts.register("Jane", "jane@example.com", "mypassword123", None)

        replies = await say("register Jane Doe jane@example.com mypassword123")

        assert "already exists" in replies[0].body
        assert "show_login_prompt" in button_ids(replies[0])


class TestLogin:
    """Test login and password reset."""

    async def test_one_shot_login(self, say, sessions, services):
        """Test 'login <email> <password>' authenticates."""
        await services.accounts.register("Jane", "jane@example.com", "mypassword123", None)

        await say("login jane@example.com mypassword123")

        session = sessions.store.get(SENDER)
        assert session.state == ConversationState.LOGGED_IN
        assert session.token is not None

    async def test_guided_login(self, say, sessions, services):
        """Test the login flow asks for email then password."""
        await services.accounts.register("Jane", "jane@example.com", "mypassword123", None)

        await say("login")
        assert sessions.store.get(SENDER).state == ConversationState.LOGGING_IN
        await say("jane@example.com")
        await say("mypassword123")

        assert sessions.store.get(SENDER).state == ConversationState.LOGGED_IN

    async def test_wrong_password(self, say, sessions, services):
        """Test a failed login offers retry buttons and stays logged out."""
        await services.accounts.register("Jane", "jane@example.com", "mypassword123", None)

        replies = await say("login jane@example.com wrongpass")

        assert replies[0].body == "Invalid email or password."
        assert "show_password_reset_prompt" in button_ids(replies[0])
        session = sessions.store.get(SENDER)
        assert session.token is None
        assert session.state == ConversationState.NEW

    async def test_password_reset(self, say, sessions, services):
        """Test resetting a password with an emailed code."""
        await services.accounts.register("Jane", "jane@example.com", "mypassword123", None)

        await say("forgot password")
        await say("jane@example.com")
        email, code, purpose = services.email.sent[-1]
        assert (email, purpose) == ("jane@example.com", "password_reset")

        await say(code)
        assert get_flow(sessions.store.get(SENDER)).step == "new_password"
        replies = await say("newsecret1")
        assert "password has been updated" in joined(replies)

        await say("login jane@example.com newsecret1")
        assert sessions.store.get(SENDER).state == ConversationState.LOGGED_IN

    async def test_password_reset_unknown_email_advances(self, say, sessions, services):
        """Test an unknown email gets the same reply and no code is sent."""
        await say("forgot password")
        replies = await say("nobody@example.com")

        assert "If an account exists" in joined(replies)
        assert services.email.sent == []
        assert get_flow(sessions.store.get(SENDER)).step == "otp"

    async def test_cancel_login_flow(self, say, sessions):
        """Test 'cancel' leaves a public flow without logging in."""
        await say("login")
        replies = await say("cancel")

        assert "Cancelled" in joined(replies)
        session = sessions.store.get(SENDER)
        assert get_flow(session) is None
        assert session.state == ConversationState.NEW

    async def test_logout(self, say, sessions, logged_in):
        """Test logout clears the session."""
        await say("logout")

        session = sessions.store.get(SENDER)
        assert session.token is None
        assert session.state == ConversationState.NEW


class TestAuthGuard:
    """Test protected intents are intercepted."""

    async def test_track_requires_login(self, say, services):
        """Test an unauthenticated track request gets the auth prompt."""
        services.orders = AsyncMock()

        replies = await say("track 12345")

        assert len(replies) == 1
        assert isinstance(replies[0], ButtonMessage)
        assert replies[0].body == AUTH_REQUIRED_TEXT
        assert "show_login_prompt" in button_ids(replies[0])
        services.orders.track.assert_not_awaited()

    async def test_unknown_requires_login(self, say):
        """Test unrecognized text from a logged out sender gets the auth prompt."""
        replies = await say("qwerty zxcvb")

        assert replies[0].body == AUTH_REQUIRED_TEXT

    async def test_greeting_is_public(self, say):
        """Test a greeting is answered without logging in."""
        replies = await say("hello")

        assert isinstance(replies[0], ButtonMessage)
        assert "show_register_prompt" in button_ids(replies[0])

    async def test_greeting_when_logged_in_shows_menu(self, say, logged_in):
        """Test a logged in greeting shows the main menu."""
        replies = await say("hi")

        assert isinstance(replies[0], ListMessage)
        rows = replies[0].sections[0].rows
        assert rows[0].id == "menu_1"

    async def test_voice_note_is_public(self, dispatcher):
        """Test voice notes get a reply without logging in."""
        message = InboundMessage(sender_id=SENDER, kind=MessageKind.AUDIO, media_id="a1")

        replies = await dispatcher.handle(message)

        assert "Voice notes" in replies[0].body

    async def test_register_button(self, dispatcher, sessions):
        """Test the Register button starts the registration flow."""
        replies = await dispatcher.handle(interactive("show_register_prompt", "Register"))

        assert "email address" in joined(replies)
        assert get_flow(sessions.store.get(SENDER)).flow == FlowName.REGISTRATION


class TestExpiry:
    """Test idle expiry notices."""

    async def test_expired_login_notice(self, say, sessions, logged_in):
        """Test a login idle past the timeout is dropped with a notice."""
        later = datetime.now() + timedelta(minutes=21)

        replies = await say("cart", now=later)

        assert replies[0].body == SESSION_EXPIRED_TEXT
        assert replies[1].body == AUTH_REQUIRED_TEXT
        session = sessions.store.get(SENDER)
        assert session.token is None
        assert session.state == ConversationState.NEW

    async def test_stale_flow_discarded(self, say, sessions):
        """Test an unauthenticated flow idle past the timeout is discarded."""
        await say("login")
        later = datetime.now() + timedelta(minutes=21)

        replies = await say("hello", now=later)

        assert replies[0].body == CONTEXT_DISCARDED_TEXT
        assert get_flow(sessions.store.get(SENDER)) is None

    async def test_active_session_not_expired(self, say, sessions, logged_in):
        """Test a turn inside the timeout keeps the login."""
        later = datetime.now() + timedelta(minutes=19)

        await say("cart", now=later)

        assert sessions.store.get(SENDER).state == ConversationState.LOGGED_IN

    async def test_suppressed_activity_refresh(self, dispatcher, say, sessions, logged_in):
        """Test a turn that does not count as activity leaves the idle clock running."""
        before = sessions.store.get(SENDER).last_activity
        start = datetime.now()

        await dispatcher.handle(
            InboundMessage.text_message(SENDER, "cart"),
            now=start + timedelta(minutes=10),
            refresh_activity=False,
        )
        assert sessions.store.get(SENDER).last_activity == before

        replies = await say("cart", now=start + timedelta(minutes=21))

        assert replies[0].body == SESSION_EXPIRED_TEXT


class TestPagination:
    """Test list navigation and selection."""

    def _seed_cursor(self, sessions):
        session = sessions.store.get(SENDER)
        items = [p.to_item() for p in SEED_PRODUCTS[:5]]
        cursor = build_cursor(
            ListNamespace.PRODUCTS,
            items,
            len(SEED_PRODUCTS),
            1,
            5,
            title="Medicines",
            query={"query": ""},
        )
        set_cursor(session, cursor)
        sessions.save(session)

    async def test_next_page(self, say, sessions, logged_in):
        """Test 'next' advances the cursor and snapshots the new page."""
        self._seed_cursor(sessions)

        replies = await say("next")

        cursor = get_active_cursor(sessions.store.get(SENDER))
        assert cursor.current_page == 2
        assert [item["id"] for item in cursor.items] == [
            "p-006",
            "p-007",
            "p-008",
            "p-009",
            "p-010",
        ]
        assert "(Page 2/3)" in replies[0].body

    async def test_previous_on_first_page(self, say, sessions, logged_in):
        """Test 'prev' on page 1 reports the boundary."""
        self._seed_cursor(sessions)

        replies = await say("prev")

        assert replies[0].body == "Already on first page"
        assert get_active_cursor(sessions.store.get(SENDER)).current_page == 1

    async def test_invalid_selection(self, say, sessions, logged_in):
        """Test a number outside the page is rejected."""
        self._seed_cursor(sessions)

        replies = await say("9")

        assert replies[0].body == "Invalid selection. Choose 1-5"

    async def test_select_product(self, say, sessions, logged_in):
        """Test selecting a product shows its details."""
        self._seed_cursor(sessions)

        replies = await say("2")

        assert "Paracetamol Syrup" in replies[0].body
        assert "add 2" in replies[0].body


class TestShoppingAndCheckout:
    """Test search, cart and checkout."""

    async def test_full_checkout(self, dispatcher, say, sessions, services, logged_in):
        """Test searching, adding to cart, checking out and tracking."""
        await say("medicines")
        assert get_flow(sessions.store.get(SENDER)).flow == FlowName.PRODUCT_SEARCH

        replies = await say("paracetamol")
        assert "Paracetamol 500mg" in replies[0].body

        replies = await say("add 1 2")
        assert "Added 2x Paracetamol 500mg" in replies[0].body

        replies = await say("checkout")
        assert isinstance(replies[0], LocationRequestMessage)

        location = InboundMessage(
            sender_id=SENDER,
            kind=MessageKind.LOCATION,
            latitude=6.6018,
            longitude=3.3515,
            location_address="12 Allen Avenue, Ikeja",
        )
        await dispatcher.handle(location)
        assert get_flow(sessions.store.get(SENDER)).step == "phone"

        # Digits reach the flow even though a product list is active
        replies = await say("08012345678")
        assert get_flow(sessions.store.get(SENDER)).step == "payment"
        assert "flow:checkout:payment:cash" in button_ids(replies[0])

        replies = await dispatcher.handle(
            interactive("flow:checkout:payment:cash", "Cash on Delivery")
        )
        assert "Order #10001" in replies[0].body
        assert await services.catalog.get_cart(logged_in.user_id) == []
        assert get_flow(sessions.store.get(SENDER)) is None

        replies = await say("track 10001")
        assert "Status: Processing" in replies[0].body

        # The payment buttons are now stale
        replies = await dispatcher.handle(
            interactive("flow:checkout:payment:cash", "Cash on Delivery")
        )
        assert "no longer available" in replies[0].body

    async def test_card_payment_sends_link(self, say, services, logged_in):
        """Test a non-cash payment choice includes a payment link."""
        product = await services.catalog.get_product("p-001")
        await services.catalog.add_to_cart(logged_in.user_id, product, 1)

        await say("checkout")
        await say("12 Allen Avenue, Ikeja, Lagos")
        await say("08012345678")
        replies = await say("2")

        assert "https://pay.example.com/paystack/" in replies[0].body

    async def test_checkout_empty_cart(self, say, logged_in):
        """Test checkout with an empty cart is refused."""
        replies = await say("checkout")

        assert "cart is empty" in replies[0].body

    async def test_view_cart_and_remove(self, say, services, logged_in):
        """Test the cart listing and removing a line."""
        product = await services.catalog.get_product("p-005")
        await services.catalog.add_to_cart(logged_in.user_id, product, 3)

        replies = await say("cart")
        assert "3x Ibuprofen 400mg" in replies[0].body
        assert "show_checkout" in button_ids(replies[-1])

        replies = await say("remove 1")
        assert "Removed Ibuprofen 400mg" in replies[0].body
        assert await services.catalog.get_cart(logged_in.user_id) == []

    async def test_add_without_list(self, say, logged_in):
        """Test 'add' without a product list asks for a search first."""
        replies = await say("add 1")

        assert "Search for a product first" in replies[0].body


class TestAppointments:
    """Test doctor search and booking."""

    async def test_book_from_lists(self, say, sessions, services, logged_in):
        """Test choosing a specialty, a doctor and a time."""
        await say("4")
        cursor = get_active_cursor(sessions.store.get(SENDER))
        assert cursor.namespace == ListNamespace.SPECIALTIES

        replies = await say("2")
        assert "Doctors: Cardiologist" in replies[0].body
        assert get_flow(sessions.store.get(SENDER)).step == "doctor"

        await say("1")
        assert get_flow(sessions.store.get(SENDER)).step == "datetime"

        when = (datetime.now() + timedelta(days=2)).replace(hour=10, minute=0)
        replies = await say(f"{when:%Y-%m-%d %H:%M}")
        assert "flow:appointment:confirm:yes" in button_ids(replies[0])

        replies = await say("yes")
        assert "appointment is booked" in replies[0].body
        appointments = await services.appointments.list_appointments(logged_in.user_id)
        assert len(appointments) == 1
        assert appointments[0].scheduled_at == when.replace(second=0, microsecond=0)

    async def test_past_datetime_rejected(self, say, sessions, logged_in):
        """Test a time in the past keeps the flow on the datetime step."""
        await say("4")
        await say("2")
        await say("1")

        replies = await say("2020-01-01 10:00")

        assert "must be in the future" in replies[0].body
        assert get_flow(sessions.store.get(SENDER)).step == "datetime"

    async def test_short_no_cancels_at_confirm(self, say, sessions, services, logged_in):
        """Test 'n' at the confirm step cancels instead of paging the doctor list."""
        await say("4")
        await say("2")
        await say("1")
        assert get_active_cursor(sessions.store.get(SENDER)) is None

        when = (datetime.now() + timedelta(days=2)).replace(hour=10, minute=0)
        await say(f"{when:%Y-%m-%d %H:%M}")
        replies = await say("n")

        assert "Booking cancelled" in replies[0].body
        session = sessions.store.get(SENDER)
        assert get_flow(session) is None
        assert await services.appointments.list_appointments(logged_in.user_id) == []


class TestSupport:
    """Test live support mode."""

    async def test_support_session(self, say, sessions, services, logged_in):
        """Test messages are forwarded until the chat is closed."""
        await say("support")
        session = sessions.store.get(SENDER)
        assert session.state == ConversationState.SUPPORT_CHAT
        ticket = session.data["support_ticket"]

        await say("my order is late")
        assert services.support.transcripts[ticket] == ["my order is late"]

        await say("close")
        session = sessions.store.get(SENDER)
        assert session.state == ConversationState.LOGGED_IN
        assert "support_ticket" not in session.data

    async def test_support_unavailable(self, say, sessions, services, logged_in):
        """Test an unavailable support desk keeps the user logged in."""
        services.support.available = False

        replies = await say("support")

        assert "unavailable" in replies[0].body
        assert sessions.store.get(SENDER).state == ConversationState.LOGGED_IN


class TestMedia:
    """Test prescription uploads."""

    async def test_prescription_waits_for_order(self, dispatcher, say, sessions, logged_in):
        """Test an image without an order id is held until 'rx <id>'."""
        image = InboundMessage(sender_id=SENDER, kind=MessageKind.IMAGE, media_id="media-1")

        replies = await dispatcher.handle(image)

        assert "Which order" in replies[0].body
        assert sessions.store.get(SENDER).data["pendingPrescription"] == "media-1"

        replies = await say("rx 99999")
        assert "Order 99999 not found" in replies[0].body

    async def test_image_requires_login(self, dispatcher):
        """Test an unauthenticated upload gets the auth prompt."""
        image = InboundMessage(sender_id=SENDER, kind=MessageKind.IMAGE, media_id="media-1")

        replies = await dispatcher.handle(image)

        assert replies[0].body == AUTH_REQUIRED_TEXT


class FailingMessenger(LoggingMessenger):
    async def send(self, to, message):
        raise RuntimeError("network down")

    async def mark_read(self, message_id):
        raise RuntimeError("network down")


class TestErrorContainment:
    """Test failures never escape a turn."""

    async def test_handler_failure_gives_apology(self, say, sessions, services, logged_in):
        """Test a failing handler is replaced by one apology and the session is saved."""
        services.catalog.get_cart = AsyncMock(side_effect=RuntimeError("db down"))

        replies = await say("cart")

        assert bodies(replies) == [HANDLER_ERROR_TEXT]
        assert sessions.store.get(SENDER).state == ConversationState.LOGGED_IN

    async def test_send_failure_is_contained(self, intents_config, services, sessions):
        """Test outbound failures are logged and the turn completes."""
        dispatcher = Dispatcher(
            sessions=sessions,
            classifier=IntentClassifier(intents_config),
            services=services,
            messenger=FailingMessenger(),
            audit_enabled=False,
        )
        message = InboundMessage.text_message(SENDER, "hello", message_id="wamid.1")

        replies = await dispatcher.handle(message)

        assert len(replies) == 1
        assert sessions.store.get(SENDER) is not None

    async def test_marks_message_read(self, dispatcher, messenger):
        """Test inbound messages with an id are marked read."""
        await dispatcher.handle(InboundMessage.text_message(SENDER, "hi", message_id="wamid.7"))

        assert list(messenger.read) == ["wamid.7"]

    async def test_concurrent_turns_are_serialized(self, dispatcher, sessions, services):
        """Test two turns for the same sender both apply."""
        await services.accounts.register("Jane", "jane@example.com", "mypassword123", None)

        await asyncio.gather(
            dispatcher.handle(InboundMessage.text_message(SENDER, "hello")),
            dispatcher.handle(
                InboundMessage.text_message(SENDER, "login jane@example.com mypassword123")
            ),
        )

        assert sessions.store.get(SENDER).state == ConversationState.LOGGED_IN


class TestConfigSwap:
    """Test the dispatcher picks up a reloaded intent table."""

    async def test_update_config(self, dispatcher, intents_config, say, logged_in):
        """Test a new menu applies to the next turn."""
        new_config = intents_config.model_copy(
            update={"menu": (intents_config.menu[4].model_copy(update={"key": "1"}),)}
        )

        dispatcher.update_config(new_config)
        replies = await say("1")

        assert dispatcher.config is new_config
        assert "cart is empty" in replies[0].body


@pytest.mark.parametrize(
    "intent, expected",
    [
        ("login", True),
        ("registration_step_password", True),
        ("password_reset_step_new_password", True),
        ("verify_otp", True),
        ("login_step_email", False),
        ("track_order", False),
    ],
)
def test_is_sensitive(intent, expected):
    """Test which intents keep their text out of the audit log."""
    assert is_sensitive(intent) is expected
