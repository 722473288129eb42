"""Doctor search and appointment booking."""

import logging
from datetime import datetime
from typing import Any

from chatengine.flows.context import advance_flow, clear_flow, get_flow, start_flow
from chatengine.flows.definitions import FlowName
from chatengine.flows.resolver import flow_marker
from chatengine.handlers.base import TurnContext, handles
from chatengine.handlers.listing import DOCTOR_SPECIALTIES, show_page
from chatengine.nlp.dates import FORMAT_HINT, validate_appointment_datetime
from chatengine.nlp.fuzzy import best_match, normalize_text
from chatengine.pagination.cursor import ListNamespace, clear_cursors, get_cursor
from chatengine.services.models import CatalogError, Doctor
from chatengine.services.submission import SubmissionStatus

logger = logging.getLogger(__name__)

YES_WORDS = frozenset({"yes", "y", "confirm", "ok", "okay"})
NO_WORDS = frozenset({"no", "n"})

DATETIME_PROMPT = f"When would you like to see the doctor?\n{FORMAT_HINT}."


async def show_specialties(ctx: TurnContext, body: str = "Choose a Specialty") -> None:
    await show_page(
        ctx, ListNamespace.SPECIALTIES, body, footer="Reply with a number or a specialty name."
    )


async def choose_specialty(ctx: TurnContext, specialty: str) -> None:
    """Show the doctors for a specialty and wait for a doctor choice."""
    context = get_flow(ctx.session)
    if context is None or context.flow != FlowName.APPOINTMENT:
        start_flow(ctx.session, FlowName.APPOINTMENT)

    cursor = await show_page(
        ctx,
        ListNamespace.DOCTORS,
        f"Doctors: {specialty.title()}",
        query={"specialty": specialty.lower()},
        footer="Reply with a number to choose a doctor.",
    )
    if cursor is None:
        advance_flow(ctx.session, "specialty")
        await show_specialties(
            ctx, f"No {specialty.title()} doctors are available. Choose another specialty"
        )
        return
    advance_flow(ctx.session, "doctor", specialty=specialty.lower())


def choose_doctor(ctx: TurnContext, doctor: dict[str, Any]) -> None:
    """Record the chosen doctor and ask for a time."""
    context = get_flow(ctx.session)
    if context is None or context.flow != FlowName.APPOINTMENT:
        start_flow(ctx.session, FlowName.APPOINTMENT)
    clear_cursors(ctx.session)
    advance_flow(ctx.session, "datetime", doctor=doctor, specialty=doctor["specialty"])
    ctx.reply.text(f"You chose {doctor['name']}.\n\n{DATETIME_PROMPT}")


@handles("search_doctors")
async def search_doctors(ctx: TurnContext) -> None:
    specialty = ctx.params.get("doctor_specialty")
    if specialty:
        cursor = await show_page(
            ctx,
            ListNamespace.DOCTORS,
            f"Doctors: {specialty.title()}",
            query={"specialty": specialty},
            footer="Reply with a number to book an appointment.",
        )
        if cursor is not None:
            return
        await show_specialties(ctx, f"No {specialty.title()} doctors found. Choose a specialty")
        return
    await show_specialties(ctx)


@handles("book_appointment")
async def book_appointment(ctx: TurnContext) -> None:
    start_flow(ctx.session, FlowName.APPOINTMENT)
    specialty = ctx.params.get("doctor_specialty")
    if specialty:
        await choose_specialty(ctx, specialty)
        return
    await show_specialties(ctx, "Book an Appointment: choose a specialty")


@handles("appointment_step_specialty")
async def appointment_specialty(ctx: TurnContext) -> None:
    match = best_match(normalize_text(ctx.value), [s.lower() for s in DOCTOR_SPECIALTIES])
    if match is None:
        await show_specialties(ctx, "I don't know that specialty. Choose one")
        return
    await choose_specialty(ctx, match)


@handles("appointment_step_doctor")
async def appointment_doctor(ctx: TurnContext) -> None:
    cursor = get_cursor(ctx.session, ListNamespace.DOCTORS)
    if cursor is None:
        advance_flow(ctx.session, "specialty")
        await show_specialties(ctx)
        return

    names = [normalize_text(item["name"]) for item in cursor.items]
    match = best_match(normalize_text(ctx.value), names)
    if match is None:
        ctx.reply.text("Reply with the doctor's number from the list, or 'cancel'.")
        return
    choose_doctor(ctx, cursor.items[names.index(match)])


@handles("appointment_step_datetime")
async def appointment_datetime(ctx: TurnContext) -> None:
    validation = validate_appointment_datetime(ctx.value, ctx.now)
    if not validation.valid or validation.value is None:
        ctx.reply.text(f"{validation.error}\n\nReply 'cancel' to stop booking.")
        return

    context = get_flow(ctx.session)
    doctor = context.draft.get("doctor", {}) if context else {}
    advance_flow(ctx.session, "confirm", scheduled_at=validation.value.isoformat())

    lines = [
        "Please confirm your appointment:",
        f"Doctor: {doctor.get('name', 'Unknown')}",
        f"When: {validation.value:%A %d %b %Y, %H:%M}",
    ]
    lines.extend(f"Note: {warning}" for warning in validation.warnings)
    ctx.reply.buttons(
        "\n".join(lines),
        [
            (flow_marker(FlowName.APPOINTMENT, "confirm", "yes"), "Confirm"),
            (flow_marker(FlowName.APPOINTMENT, "confirm", "no"), "Cancel"),
        ],
    )


@handles("appointment_step_confirm")
async def appointment_confirm(ctx: TurnContext) -> None:
    answer = normalize_text(ctx.value)
    if answer in NO_WORDS:
        clear_flow(ctx.session)
        ctx.reply.text("Booking cancelled.")
        return
    if answer not in YES_WORDS:
        ctx.reply.text("Reply 'yes' to confirm or 'no' to cancel.")
        return

    context = get_flow(ctx.session)
    draft = context.draft if context else {}
    if not draft.get("doctor") or not draft.get("scheduled_at"):
        clear_flow(ctx.session)
        ctx.reply.text("Your booking details were lost. Type 'book appointment' to start again.")
        return

    doctor = Doctor(**draft["doctor"])
    scheduled_at = datetime.fromisoformat(draft["scheduled_at"])
    try:
        appointment = await ctx.services.appointments.book(ctx.user_id, doctor, scheduled_at)
    except CatalogError as e:
        advance_flow(ctx.session, "datetime")
        ctx.reply.text(f"{e}. Please choose another time.\n{FORMAT_HINT}.")
        return

    clear_flow(ctx.session)
    text = (
        f"Your appointment is booked!\n\n"
        f"Doctor: {appointment.doctor_name}\n"
        f"When: {appointment.scheduled_at:%A %d %b %Y, %H:%M}\n"
        f"Reference: {appointment.id}"
    )
    if appointment.sync_status == SubmissionStatus.LOCAL_ONLY.value:
        text += "\n\nWe'll confirm the booking with the clinic shortly."
    ctx.reply.text(text)


@handles("view_appointments")
async def view_appointments(ctx: TurnContext) -> None:
    appointments = await ctx.services.appointments.list_appointments(ctx.user_id)
    if not appointments:
        ctx.reply.buttons(
            "You have no appointments yet.", [("show_help_menu", "Main Menu")]
        )
        return
    lines = ["Your appointments:"]
    for index, appointment in enumerate(
        sorted(appointments, key=lambda a: a.scheduled_at), start=1
    ):
        lines.append(
            f"{index}. {appointment.doctor_name} ({appointment.specialty.title()}), "
            f"{appointment.scheduled_at:%d %b %Y %H:%M} - {appointment.status}"
        )
    ctx.reply.text("\n".join(lines))
