"""Order id extraction from free text and media captions."""

import logging
import re

logger = logging.getLogger(__name__)

CAPTION_PATTERN = re.compile(
    r"(?:\brx\b|\border\b|\bprescription\b)\s*#?([A-Za-z0-9_-]{2,50})", re.IGNORECASE
)
REFERENCE_PATTERN = re.compile(r"drugsng[-_]([0-9]+)(?:[-_][0-9]+)?", re.IGNORECASE)
TRACKING_PATTERN = re.compile(
    r"(?:\btrack\b|\bstatus\b)\s*#?([A-Za-z0-9_-]{2,50})", re.IGNORECASE
)
NUMERIC_TOKEN = re.compile(r"\b\d{3,}\b")
ALPHANUMERIC_TOKEN = re.compile(r"[A-Za-z0-9_-]{3,50}")

NUMERIC_ID = re.compile(r"^[0-9]{1,12}$")
ALPHANUMERIC_ID = re.compile(r"^[A-Za-z0-9_-]{3,50}$")

# Words the alphanumeric fallback must not mistake for an id
STOP_WORDS = frozenset({"track", "status", "order", "rx", "prescription", "my", "the", "for"})


def is_valid_order_id(value: str | None) -> bool:
    """Check an order id against the accepted shapes.

    Accepts 1 to 12 digits, or 3 to 50 characters of letters, digits,
    underscore and hyphen.
    """
    if not value:
        return False
    return bool(NUMERIC_ID.match(value) or ALPHANUMERIC_ID.match(value))


def parse_order_id(text: str | None, fallback: bool = True) -> str | None:
    """Find the order id a user is referring to.

    Tried in order, first hit wins:

    1. ``rx``, ``order`` or ``prescription`` followed by an id
    2. ``drugsng-<digits>`` references, optionally suffixed with a timestamp
    3. ``track`` or ``status`` followed by an id
    4. the longest bare numeric token of three or more digits
    5. the first alphanumeric token of 3 to 50 characters (if ``fallback``)

    Examples:
        "rx 12345" -> "12345"
        "order #A-77" -> "A-77"
        "drugsng-12345-1700000000" -> "12345"
        "where is 12 or 123456" -> "123456"

    Args:
        text: Message text or media caption.
        fallback: Whether to use the alphanumeric fallback (step 5).

    Returns:
        The order id, or None if nothing plausible is present.
    """
    if not text:
        return None

    for pattern in (CAPTION_PATTERN, REFERENCE_PATTERN, TRACKING_PATTERN):
        match = pattern.search(text)
        if match and match.group(1).lower() not in STOP_WORDS:
            return match.group(1)

    numbers = NUMERIC_TOKEN.findall(text)
    if numbers:
        return max(numbers, key=len)

    if fallback:
        for token in ALPHANUMERIC_TOKEN.findall(text):
            if token.lower() not in STOP_WORDS:
                return token

    return None
