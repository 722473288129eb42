"""Live customer support chat."""

import logging

from chatengine.handlers.base import TurnContext, handles
from chatengine.services.models import SupportUnavailableError
from chatengine.session.state import ConversationState

logger = logging.getLogger(__name__)

SUPPORT_TICKET_KEY = "support_ticket"


def _leave_support(ctx: TurnContext) -> None:
    ctx.session.discard_data(SUPPORT_TICKET_KEY)
    ctx.session.state = ConversationState.LOGGED_IN


@handles("customer_support")
async def customer_support(ctx: TurnContext) -> None:
    try:
        ticket = await ctx.services.support.start(ctx.user_id, ctx.session.sender_id)
    except SupportUnavailableError as e:
        logger.warning("Support unavailable (sender_id=%s): %s", ctx.session.sender_id, e)
        ctx.reply.buttons(
            "Our support team is unavailable right now. Please try again later.",
            [("show_help_menu", "Main Menu")],
        )
        return

    ctx.session.state = ConversationState.SUPPORT_CHAT
    ctx.session.update_data(**{SUPPORT_TICKET_KEY: ticket})
    ctx.reply.text(
        f"You're now connected to customer support (ticket {ticket}). "
        "Type your message and an agent will reply here.\n\n"
        "Type 'close' to end the chat."
    )


@handles("support_message")
async def support_message(ctx: TurnContext) -> None:
    ticket = ctx.session.data.get(SUPPORT_TICKET_KEY)
    if not ticket:
        _leave_support(ctx)
        ctx.reply.text("Your support chat has ended. Type 'support' to start a new one.")
        return
    try:
        await ctx.services.support.forward(ticket, ctx.value)
    except SupportUnavailableError as e:
        logger.warning("Support forward failed (ticket=%s): %s", ticket, e)
        _leave_support(ctx)
        ctx.reply.text(
            "We lost the connection to support and your chat has been closed. "
            "Type 'support' to try again."
        )


@handles("end_support")
async def end_support(ctx: TurnContext) -> None:
    ticket = ctx.session.data.get(SUPPORT_TICKET_KEY)
    if ticket:
        try:
            await ctx.services.support.end(ticket)
        except SupportUnavailableError as e:
            logger.warning("Failed to close support ticket %s: %s", ticket, e)
    _leave_support(ctx)
    ctx.reply.buttons(
        "Your support chat has ended. Thanks for reaching out!",
        [("show_help_menu", "Main Menu")],
    )
