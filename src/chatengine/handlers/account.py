"""Registration, OTP verification, login and password reset."""

import logging
import re
from typing import Any

from chatengine.auth.otp import OtpFailure, OtpPurpose, OtpVerificationError
from chatengine.flows.context import advance_flow, clear_flow, get_flow, start_flow
from chatengine.flows.definitions import FLOW_STEPS, FlowName, next_step
from chatengine.flows.resolver import (
    EMAIL_FAILED_KEY,
    OTP_WAIT_KEY,
    REGISTRATION_KEY,
    RESEND_PATTERN,
)
from chatengine.handlers.base import TurnContext, handles
from chatengine.handlers.general import main_menu
from chatengine.services.memory import MIN_PASSWORD_LENGTH
from chatengine.services.models import AccountError
from chatengine.session.state import ConversationState

logger = logging.getLogger(__name__)


EMAIL_PATTERN = re.compile(r"^[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.\w{2,}$")
OTP_PATTERN = re.compile(r"^\d{4}$")
MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 15

OTP_FAILURE_TEXT = {
    OtpFailure.INVALID: "That code is not valid. Check it and try again, or reply 'resend'.",
    OtpFailure.USED: "That code has already been used. Reply 'resend' for a new one.",
    OtpFailure.EXPIRED: "That code has expired. Reply 'resend' for a new one.",
}

PROMPTS = {
    (FlowName.REGISTRATION, "email"): "Let's create your account. What is your email address?",
    (FlowName.REGISTRATION, "name"): "What is your full name?",
    (FlowName.REGISTRATION, "phone"): "What is your phone number?",
    (FlowName.REGISTRATION, "password"): (
        f"Choose a password (at least {MIN_PASSWORD_LENGTH} characters)."
    ),
    (FlowName.LOGIN, "email"): "Please enter your email address.",
    (FlowName.LOGIN, "password"): "Please enter your password.",
    (FlowName.PASSWORD_RESET, "email"): "Enter the email address of your account.",
    (FlowName.PASSWORD_RESET, "otp"): (
        "If an account exists for that email, we sent it a 4-digit code. "
        "Reply with the code, or 'resend'."
    ),
    (FlowName.PASSWORD_RESET, "new_password"): (
        f"Code verified. Enter your new password (at least {MIN_PASSWORD_LENGTH} characters)."
    ),
}

CANCEL_HINT = "\n\nReply 'cancel' to stop."


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value))


def phone_digits(value: str) -> str | None:
    """Digits of a phone number, or None if it has too few or too many."""
    digits = re.sub(r"\D", "", value)
    if MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
        return digits
    return None


def _prompt(ctx: TurnContext, flow: FlowName, step: str, error: str | None = None) -> None:
    text = PROMPTS[(flow, step)]
    if error:
        text = f"{error}\n\n{text}"
    ctx.reply.text(text + CANCEL_HINT)


def _already_logged_in(ctx: TurnContext) -> bool:
    if ctx.sessions.is_authenticated(ctx.session, ctx.now):
        ctx.reply.text("You are already logged in. Type 'logout' to switch accounts.")
        return True
    return False


async def _complete_login(ctx: TurnContext, user_id: str, name: str) -> None:
    ctx.sessions.authenticate(ctx.session, user_id, ctx.now)
    ctx.audit.log_session_event("authenticated")
    main_menu(ctx, f"Welcome, {name}! What would you like to do today?")


async def _send_otp(ctx: TurnContext, email: str, purpose: OtpPurpose) -> bool:
    """Issue and email a code. Returns False if the email could not be sent."""
    record = ctx.services.otp.issue(email, purpose, ctx.now)
    try:
        await ctx.services.email.send_otp(email, record.code, purpose.value)
    except Exception as e:
        logger.warning("Failed to send OTP email (purpose=%s): %s", purpose.value, e)
        return False
    return True


async def _begin_verification(ctx: TurnContext, pending: dict[str, Any]) -> None:
    """Hold registration details and wait for the emailed code."""
    sent = await _send_otp(ctx, pending["email"], OtpPurpose.REGISTRATION)
    clear_flow(ctx.session)
    ctx.session.state = ConversationState.REGISTERING
    ctx.session.update_data(
        **{REGISTRATION_KEY: pending, OTP_WAIT_KEY: True, EMAIL_FAILED_KEY: not sent}
    )
    if sent:
        ctx.reply.text(
            f"We sent a 4-digit code to {pending['email']}. "
            "Reply with the code to verify your account, or 'resend' for a new one."
        )
    else:
        ctx.reply.text(
            f"We couldn't send the code to {pending['email']} right now. "
            "Reply 'resend' to try again."
        )


def _missing_registration_step(draft: dict[str, Any]) -> str | None:
    for step in FLOW_STEPS[FlowName.REGISTRATION]:
        if not draft.get(step):
            return step
    return None


@handles("register")
async def register(ctx: TurnContext) -> None:
    if _already_logged_in(ctx):
        return

    draft: dict[str, Any] = {}
    email = ctx.params.get("email")
    if email:
        if not is_valid_email(email):
            ctx.reply.text(
                "That email address doesn't look right. "
                "Use: register Your Name your@email.com yourpassword"
            )
            return
        if await ctx.services.accounts.exists(email):
            ctx.reply.buttons(
                "An account with this email already exists.",
                [("show_login_prompt", "Login"), ("show_password_reset_prompt", "Reset Password")],
            )
            return
        draft["email"] = email
    if ctx.params.get("name"):
        draft["name"] = ctx.params["name"]
    password = ctx.params.get("password")
    if password:
        if len(password) < MIN_PASSWORD_LENGTH:
            ctx.reply.text(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
            return
        draft["password"] = password

    # One-shot registration skips the phone step
    if draft.keys() >= {"email", "name", "password"}:
        await _begin_verification(ctx, draft)
        return

    step = _missing_registration_step(draft) or "email"
    start_flow(ctx.session, FlowName.REGISTRATION, draft=draft, step=step)
    ctx.session.state = ConversationState.REGISTERING
    _prompt(ctx, FlowName.REGISTRATION, step)


async def _advance_registration(ctx: TurnContext, step: str, **fields: Any) -> None:
    context = get_flow(ctx.session)
    draft = {**(context.draft if context else {}), **fields}
    following = next_step(FlowName.REGISTRATION, step)
    while following and draft.get(following):
        following = next_step(FlowName.REGISTRATION, following)
    if following is None:
        await _begin_verification(ctx, draft)
        return
    advance_flow(ctx.session, following, **fields)
    _prompt(ctx, FlowName.REGISTRATION, following)


@handles("registration_step_email")
async def registration_email(ctx: TurnContext) -> None:
    email = ctx.value.lower()
    if not is_valid_email(email):
        _prompt(ctx, FlowName.REGISTRATION, "email", "That email address doesn't look right.")
        return
    if await ctx.services.accounts.exists(email):
        clear_flow(ctx.session)
        ctx.session.state = ConversationState.NEW
        ctx.reply.buttons(
            "An account with this email already exists.",
            [("show_login_prompt", "Login"), ("show_password_reset_prompt", "Reset Password")],
        )
        return
    await _advance_registration(ctx, "email", email=email)


@handles("registration_step_name")
async def registration_name(ctx: TurnContext) -> None:
    name = " ".join(ctx.value.split())
    if len(name) < 2:
        _prompt(ctx, FlowName.REGISTRATION, "name", "Please enter your name.")
        return
    await _advance_registration(ctx, "name", name=name)


@handles("registration_step_phone")
async def registration_phone(ctx: TurnContext) -> None:
    digits = phone_digits(ctx.value)
    if digits is None:
        _prompt(ctx, FlowName.REGISTRATION, "phone", "Please enter a valid phone number.")
        return
    await _advance_registration(ctx, "phone", phone=digits)


@handles("registration_step_password")
async def registration_password(ctx: TurnContext) -> None:
    password = ctx.value
    if len(password) < MIN_PASSWORD_LENGTH:
        _prompt(ctx, FlowName.REGISTRATION, "password", "That password is too short.")
        return
    await _advance_registration(ctx, "password", password=password)


@handles("verify_otp")
async def verify_otp(ctx: TurnContext) -> None:
    pending = ctx.session.data.get(REGISTRATION_KEY)
    if not pending:
        ctx.session.discard_data(OTP_WAIT_KEY, EMAIL_FAILED_KEY)
        ctx.reply.text("There is nothing to verify. Type 'register' to create an account.")
        return

    code = str(ctx.params.get("code", ctx.message.text)).strip()
    try:
        record = ctx.services.otp.verify(pending["email"], code, OtpPurpose.REGISTRATION, ctx.now)
    except OtpVerificationError as e:
        logger.info("OTP rejected (sender_id=%s, reason=%s)", ctx.session.sender_id, e.reason.value)
        ctx.reply.text(OTP_FAILURE_TEXT[e.reason])
        return

    try:
        account = await ctx.services.accounts.register(
            pending["name"], pending["email"], pending["password"], pending.get("phone")
        )
    except AccountError as e:
        ctx.services.otp.release(record)
        ctx.reply.text(f"We couldn't create your account: {e}. Reply with the same code to retry.")
        return

    await _complete_login(ctx, account.user_id, account.name)


@handles("resend_otp")
async def resend_otp(ctx: TurnContext) -> None:
    pending = ctx.session.data.get(REGISTRATION_KEY)
    if not pending:
        ctx.session.discard_data(OTP_WAIT_KEY, EMAIL_FAILED_KEY)
        ctx.reply.text("There is no pending verification. Type 'register' to start.")
        return
    await _begin_verification(ctx, pending)


@handles("login")
async def login(ctx: TurnContext) -> None:
    if _already_logged_in(ctx):
        return

    email = ctx.params.get("email")
    password = ctx.params.get("password")
    if email and password:
        await _attempt_login(ctx, email, password)
        return

    draft = {"email": email} if email and is_valid_email(email) else {}
    step = "password" if draft else "email"
    start_flow(ctx.session, FlowName.LOGIN, draft=draft, step=step)
    ctx.session.state = ConversationState.LOGGING_IN
    _prompt(ctx, FlowName.LOGIN, step)


async def _attempt_login(ctx: TurnContext, email: str, password: str) -> bool:
    try:
        account = await ctx.services.accounts.authenticate(email, password)
    except AccountError:
        logger.info("Login failed (sender_id=%s)", ctx.session.sender_id)
        ctx.reply.buttons(
            "Invalid email or password.",
            [
                ("show_login_prompt", "Try Again"),
                ("show_password_reset_prompt", "Reset Password"),
                ("show_register_prompt", "Register"),
            ],
        )
        clear_flow(ctx.session)
        ctx.session.state = ConversationState.NEW
        return False
    await _complete_login(ctx, account.user_id, account.name)
    return True


@handles("login_step_email")
async def login_email(ctx: TurnContext) -> None:
    email = ctx.value.lower()
    if not is_valid_email(email):
        _prompt(ctx, FlowName.LOGIN, "email", "That email address doesn't look right.")
        return
    advance_flow(ctx.session, "password", email=email)
    _prompt(ctx, FlowName.LOGIN, "password")


@handles("login_step_password")
async def login_password(ctx: TurnContext) -> None:
    context = get_flow(ctx.session)
    email = context.draft.get("email") if context else None
    if not email:
        advance_flow(ctx.session, "email")
        _prompt(ctx, FlowName.LOGIN, "email")
        return
    await _attempt_login(ctx, email, ctx.value)


@handles("password_reset")
async def password_reset(ctx: TurnContext) -> None:
    if _already_logged_in(ctx):
        return
    start_flow(ctx.session, FlowName.PASSWORD_RESET)
    _prompt(ctx, FlowName.PASSWORD_RESET, "email")


@handles("password_reset_step_email")
async def password_reset_email(ctx: TurnContext) -> None:
    email = ctx.value.lower()
    if not is_valid_email(email):
        _prompt(ctx, FlowName.PASSWORD_RESET, "email", "That email address doesn't look right.")
        return
    # The reply is the same whether or not the account exists
    if await ctx.services.accounts.exists(email):
        await _send_otp(ctx, email, OtpPurpose.PASSWORD_RESET)
    advance_flow(ctx.session, "otp", email=email)
    _prompt(ctx, FlowName.PASSWORD_RESET, "otp")


@handles("password_reset_step_otp")
async def password_reset_otp(ctx: TurnContext) -> None:
    context = get_flow(ctx.session)
    email = context.draft.get("email", "") if context else ""
    value = ctx.value

    if RESEND_PATTERN.match(value):
        if await ctx.services.accounts.exists(email):
            await _send_otp(ctx, email, OtpPurpose.PASSWORD_RESET)
        _prompt(ctx, FlowName.PASSWORD_RESET, "otp")
        return
    if not OTP_PATTERN.match(value):
        _prompt(ctx, FlowName.PASSWORD_RESET, "otp", "The code is 4 digits.")
        return

    try:
        ctx.services.otp.verify(email, value, OtpPurpose.PASSWORD_RESET, ctx.now)
    except OtpVerificationError as e:
        ctx.reply.text(OTP_FAILURE_TEXT[e.reason] + CANCEL_HINT)
        return

    advance_flow(ctx.session, "new_password", verified=True)
    _prompt(ctx, FlowName.PASSWORD_RESET, "new_password")


@handles("password_reset_step_new_password")
async def password_reset_new_password(ctx: TurnContext) -> None:
    context = get_flow(ctx.session)
    if context is None or not context.draft.get("verified"):
        clear_flow(ctx.session)
        ctx.reply.text("Your reset request has expired. Type 'forgot password' to start again.")
        return

    password = ctx.value
    if len(password) < MIN_PASSWORD_LENGTH:
        _prompt(ctx, FlowName.PASSWORD_RESET, "new_password", "That password is too short.")
        return

    try:
        await ctx.services.accounts.reset_password(context.draft["email"], password)
    except AccountError as e:
        clear_flow(ctx.session)
        ctx.reply.text(f"We couldn't reset your password: {e}")
        return

    clear_flow(ctx.session)
    ctx.session.state = ConversationState.NEW
    ctx.reply.buttons(
        "Your password has been updated. You can now log in.",
        [("show_login_prompt", "Login")],
    )
