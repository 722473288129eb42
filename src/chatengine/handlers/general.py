"""Greeting, help, logout and fallback handlers."""

import logging

from chatengine.flows.context import clear_flow
from chatengine.flows.definitions import FlowName
from chatengine.flows.resolver import EMAIL_FAILED_KEY, OTP_WAIT_KEY, REGISTRATION_KEY
from chatengine.handlers.base import TurnContext, handles
from chatengine.session.state import ConversationState

logger = logging.getLogger(__name__)

COMMANDS_TEXT = (
    "You can also type:\n"
    "• medicines / doctors / tests\n"
    "• cart, checkout, track <order id>\n"
    "• add <number> <qty>, remove <number>\n"
    "• next / prev to change page\n"
    "• logout"
)

UNAUTHENTICATED_FLOWS = (FlowName.REGISTRATION, FlowName.LOGIN, FlowName.PASSWORD_RESET)


def main_menu(ctx: TurnContext, body: str) -> None:
    """Add the numeric main menu as a list message."""
    rows = [(f"menu_{item.key}", item.label[:24]) for item in ctx.config.menu]
    if not rows:
        ctx.reply.text(body)
        return
    ctx.reply.menu(body, "Menu", rows)


def welcome_buttons(ctx: TurnContext, body: str) -> None:
    ctx.reply.buttons(
        body,
        [
            ("show_login_prompt", "Login"),
            ("show_register_prompt", "Register"),
            ("show_help_menu", "Help"),
        ],
    )


@handles("greeting")
async def greeting(ctx: TurnContext) -> None:
    if ctx.sessions.is_authenticated(ctx.session, ctx.now):
        main_menu(ctx, "Welcome back! What would you like to do today?")
        return
    welcome_buttons(
        ctx,
        "Hello! I can help you buy medicines, find doctors, book appointments "
        "and track orders. Please log in or register to get started.",
    )


@handles("help")
async def help_menu(ctx: TurnContext) -> None:
    lines = [f"{item.key}. {item.label}" for item in ctx.config.menu]
    body = "Reply with a number or pick from the menu:\n" + "\n".join(lines)
    main_menu(ctx, f"{body}\n\n{COMMANDS_TEXT}")


@handles("unknown")
async def unknown(ctx: TurnContext) -> None:
    ctx.reply.buttons(
        "Sorry, I didn't understand that. Type 'help' to see what I can do.",
        [("show_help_menu", "Main Menu")],
    )


@handles("logout")
async def logout(ctx: TurnContext) -> None:
    if ctx.session.token is None:
        ctx.reply.text("You are not logged in.")
        return
    ctx.sessions.logout(ctx.session)
    ctx.audit.log_session_event("logged_out")
    ctx.reply.text("You have been logged out. Send 'hi' any time to start again.")


@handles("cancel_flow")
async def cancel_flow(ctx: TurnContext) -> None:
    clear_flow(ctx.session)
    flow = ctx.params.get("flow")
    if flow in {f.value for f in UNAUTHENTICATED_FLOWS} and ctx.session.token is None:
        ctx.session.discard_data(OTP_WAIT_KEY, EMAIL_FAILED_KEY, REGISTRATION_KEY)
        ctx.session.state = ConversationState.NEW
    ctx.reply.text("Cancelled. Type 'help' to see what else I can do.")


@handles("stale_reply")
async def stale_reply(ctx: TurnContext) -> None:
    ctx.reply.text("That option is no longer available. Type 'help' to see the menu.")


@handles("voice_message")
async def voice_message(ctx: TurnContext) -> None:
    ctx.reply.text("Voice notes aren't supported yet. Please type your message instead.")


@handles("unsupported_message")
async def unsupported_message(ctx: TurnContext) -> None:
    ctx.reply.text("Sorry, I can't handle that type of message. Please send text.")
