"""Checkout, payment links and order tracking."""

import logging

from chatengine.flows.context import advance_flow, clear_flow, get_flow, start_flow
from chatengine.flows.definitions import FlowName
from chatengine.flows.resolver import flow_marker
from chatengine.handlers.account import phone_digits
from chatengine.handlers.base import TurnContext, handles
from chatengine.handlers.listing import money
from chatengine.nlp.orders import is_valid_order_id
from chatengine.services.models import CatalogError, Order
from chatengine.services.submission import SubmissionStatus

logger = logging.getLogger(__name__)

MIN_ADDRESS_LENGTH = 10
CASH = "cash"
DEFAULT_PROVIDER = "flutterwave"

PAYMENT_OPTIONS = (
    ("flutterwave", "Flutterwave"),
    ("paystack", "Paystack"),
    (CASH, "Cash on Delivery"),
)

ADDRESS_PROMPT = (
    "Where should we deliver your order? Share your location or type the full address."
)
PHONE_PROMPT = "What phone number should the rider call on delivery?"
LOCAL_ONLY_NOTE = (
    "Note: we couldn't reach our order system just now. Your order is saved "
    "and will be confirmed shortly."
)


def payment_choice(value: str) -> str | None:
    """Map "1"-"3" or a provider name to a payment method."""
    value = value.strip().lower()
    if value.isdigit():
        index = int(value)
        if 1 <= index <= len(PAYMENT_OPTIONS):
            return PAYMENT_OPTIONS[index - 1][0]
        return None
    for method, title in PAYMENT_OPTIONS:
        if value in (method, title.lower()):
            return method
    return None


def _payment_buttons(ctx: TurnContext, body: str) -> None:
    ctx.reply.buttons(
        body,
        [
            (flow_marker(FlowName.CHECKOUT, "payment", method), title)
            for method, title in PAYMENT_OPTIONS
        ],
    )


def _order_summary(order: Order) -> str:
    lines = [f"Order #{order.id}"]
    lines.extend(
        f"• {item.quantity}x {item.name} - {money(item.subtotal)}" for item in order.items
    )
    lines.append(f"Total: {money(order.total)}")
    return "\n".join(lines)


@handles("place_order")
async def place_order(ctx: TurnContext) -> None:
    cart = await ctx.services.catalog.get_cart(ctx.user_id)
    if not cart:
        ctx.reply.buttons(
            "Your cart is empty. Search for medicines to add something first.",
            [("show_help_menu", "Main Menu")],
        )
        return

    total = sum(line.subtotal for line in cart)
    address = ctx.params.get("delivery_address", "")
    if len(address) >= MIN_ADDRESS_LENGTH:
        start_flow(ctx.session, FlowName.CHECKOUT, draft={"address": address}, step="phone")
        ctx.reply.text(f"Checkout ({money(total)})\nDelivering to: {address}\n\n{PHONE_PROMPT}")
        return

    start_flow(ctx.session, FlowName.CHECKOUT)
    ctx.reply.location_request(f"Checkout ({money(total)})\n\n{ADDRESS_PROMPT}")


@handles("checkout_step_address")
async def checkout_address(ctx: TurnContext) -> None:
    address = " ".join(ctx.value.split())
    if len(address) < MIN_ADDRESS_LENGTH:
        ctx.reply.text(
            f"Please give the full delivery address (at least {MIN_ADDRESS_LENGTH} characters)."
        )
        return
    advance_flow(ctx.session, "phone", address=address)
    ctx.reply.text(PHONE_PROMPT)


@handles("checkout_step_phone")
async def checkout_phone(ctx: TurnContext) -> None:
    digits = phone_digits(ctx.value)
    if digits is None:
        ctx.reply.text("Please enter a valid phone number (at least 10 digits).")
        return
    advance_flow(ctx.session, "payment", phone=digits)
    _payment_buttons(ctx, "How would you like to pay?\n1. Flutterwave\n2. Paystack\n3. Cash")


@handles("checkout_step_payment")
async def checkout_payment(ctx: TurnContext) -> None:
    method = payment_choice(ctx.value)
    if method is None:
        _payment_buttons(ctx, "Please choose a payment option (1-3).")
        return

    context = get_flow(ctx.session)
    draft = context.draft if context else {}
    cart = await ctx.services.catalog.get_cart(ctx.user_id)
    try:
        order = await ctx.services.orders.place_order(
            ctx.user_id, cart, draft.get("address", ""), draft.get("phone", ""), method
        )
    except CatalogError as e:
        clear_flow(ctx.session)
        ctx.reply.text(str(e))
        return

    await ctx.services.catalog.clear_cart(ctx.user_id)
    clear_flow(ctx.session)

    lines = ["Your order has been placed!", "", _order_summary(order)]
    if method == CASH:
        lines.append("\nPayment: cash on delivery.")
    else:
        link = await ctx.services.payments.payment_link(order, method)
        lines.append(f"\nComplete your payment here:\n{link}")
    if order.sync_status == SubmissionStatus.LOCAL_ONLY.value:
        lines.append(f"\n{LOCAL_ONLY_NOTE}")
    lines.append(f"\nTrack it any time with 'track {order.id}'.")
    ctx.reply.text("\n".join(lines))


@handles("payment")
async def payment(ctx: TurnContext) -> None:
    order_id = ctx.params.get("order_id")
    if not order_id:
        ctx.reply.text("Which order would you like to pay for? Reply 'pay <order number>'.")
        return
    order = await ctx.services.orders.track(ctx.user_id, order_id)
    if order is None:
        ctx.reply.text(f"Order {order_id} not found.")
        return

    provider = ctx.params.get("payment_provider") or (
        order.payment_method if order.payment_method != CASH else DEFAULT_PROVIDER
    )
    link = await ctx.services.payments.payment_link(order, provider)
    ctx.reply.text(f"Pay {money(order.total)} for order #{order.id} here:\n{link}")


@handles("track_order")
async def track_order(ctx: TurnContext) -> None:
    order_id = ctx.params.get("order_id")
    if not order_id:
        ctx.reply.text("Please include your order number, e.g. 'track 10001'.")
        return
    if not is_valid_order_id(order_id):
        ctx.reply.text("That order number doesn't look right. Check it and try again.")
        return

    order = await ctx.services.orders.track(ctx.user_id, order_id)
    if order is None:
        ctx.reply.text(f"Order {order_id} not found.")
        return

    lines = [
        _order_summary(order),
        f"Status: {order.status.value}",
        f"Placed: {order.created_at:%d %b %Y, %H:%M}",
    ]
    if order.prescriptions:
        lines.append(f"Prescriptions attached: {len(order.prescriptions)}")
    ctx.reply.text("\n".join(lines))
