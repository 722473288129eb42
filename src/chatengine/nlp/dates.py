"""Appointment date/time parsing and validation."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta

ISO_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})\s+(\d{2}):(\d{2})$")
SLASH_PATTERN = re.compile(r"^(\d{2})/(\d{2})/(\d{4})\s+(\d{2}):(\d{2})$")
NATURAL_PATTERN = re.compile(
    r"^(today|tomorrow|next\s+(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday))"
    r"\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?$",
    re.IGNORECASE,
)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

BUSINESS_HOURS = (8, 18)
MIN_LEAD_TIME = timedelta(hours=1)
MAX_ADVANCE_DAYS = 92

FORMAT_HINT = (
    "Use YYYY-MM-DD HH:MM or DD/MM/YYYY HH:MM, "
    'or natural language like "tomorrow 2pm" or "next monday 3:30pm"'
)


@dataclass
class DateTimeValidation:
    """Outcome of validating a requested appointment time."""

    valid: bool
    value: datetime | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


def _build(year: int, month: int, day: int, hour: int, minute: int) -> datetime | None:
    try:
        return datetime(year, month, day, hour, minute)
    except ValueError:
        return None


def parse_appointment_datetime(text: str | None, now: datetime | None = None) -> datetime | None:
    """Parse an appointment date and time.

    Supported shapes:
        "2025-03-14 09:30"      ISO date and 24h time
        "14/03/2025 09:30"      day/month/year and 24h time
        "tomorrow 2pm"          relative day, 12h or 24h time
        "next monday 3:30pm"    next occurrence of a weekday; the same
                                weekday as today rolls a full week ahead

    Returns:
        The parsed datetime, or None if the text matches no shape or
        names an impossible date.
    """
    if not text:
        return None
    value = " ".join(text.split())
    now = now or datetime.now()

    match = ISO_PATTERN.match(value)
    if match:
        year, month, day, hour, minute = (int(g) for g in match.groups())
        return _build(year, month, day, hour, minute)

    match = SLASH_PATTERN.match(value)
    if match:
        day, month, year, hour, minute = (int(g) for g in match.groups())
        return _build(year, month, day, hour, minute)

    match = NATURAL_PATTERN.match(value)
    if not match:
        return None

    day_spec, hour_text, minute_text, meridiem = match.groups()
    day_spec = day_spec.lower()
    target = now
    if day_spec == "tomorrow":
        target = now + timedelta(days=1)
    elif day_spec.startswith("next"):
        weekday = WEEKDAYS.index(day_spec.split()[1])
        days_ahead = weekday - now.weekday()
        if days_ahead <= 0:
            days_ahead += 7
        target = now + timedelta(days=days_ahead)

    hour = int(hour_text)
    minute = int(minute_text) if minute_text else 0
    if meridiem:
        meridiem = meridiem.lower()
        if meridiem == "pm" and hour != 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0

    if hour > 23 or minute > 59:
        return None
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


def validate_appointment_datetime(
    text: str | None, now: datetime | None = None
) -> DateTimeValidation:
    """Parse and check a requested appointment time.

    Errors: unparseable, in the past, less than an hour ahead, or more than
    three months ahead. Weekends and times outside business hours are
    accepted with a warning.
    """
    now = now or datetime.now()
    value = parse_appointment_datetime(text, now)
    if value is None:
        return DateTimeValidation(valid=False, error=f"Invalid date/time. {FORMAT_HINT}")

    if value <= now:
        return DateTimeValidation(valid=False, error="Appointment date must be in the future")
    if value < now + MIN_LEAD_TIME:
        return DateTimeValidation(valid=False, error="Appointment must be at least 1 hour from now")
    if value > now + timedelta(days=MAX_ADVANCE_DAYS):
        return DateTimeValidation(
            valid=False, error="Cannot book appointments more than 3 months in advance"
        )

    warnings: list[str] = []
    if not BUSINESS_HOURS[0] <= value.hour < BUSINESS_HOURS[1]:
        warnings.append("Outside normal business hours (8 AM - 6 PM). It may be rescheduled.")
    if value.weekday() >= 5:
        warnings.append("Falls on a weekend. Availability may be limited.")

    return DateTimeValidation(valid=True, value=value, warnings=warnings)
