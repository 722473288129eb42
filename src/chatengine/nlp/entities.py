"""Pattern and vocabulary based entity extraction."""

import logging
import re
from typing import Any

from chatengine.config.intents import VocabularyConfig
from chatengine.nlp.fuzzy import DEFAULT_THRESHOLD, fuzzy_match, normalize_text
from chatengine.nlp.orders import parse_order_id

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.\w+")
PHONE_PATTERN = re.compile(r"(?:\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
ADDRESS_PATTERN = re.compile(
    r"\b\d+\s+[a-z0-9\s]+?\b(?:street|st|avenue|ave|road|rd|drive|lane|ln|boulevard|blvd"
    r"|close|crescent)\b[^,;]*"
)
QUANTITY_PATTERN = re.compile(
    r"\b(\d+)\s*(?:quantity|qty|units?|pcs|tablets?|pills?|boxes?|packs?)\b"
)
DATE_PATTERN = re.compile(
    r"\b(?:today|tomorrow|next\s+(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday)"
    r"|\d{4}-\d{2}-\d{2}|\d{1,2}[-/]\d{1,2}(?:[-/]\d{4})?)\b"
)
TIME_PATTERN = re.compile(
    r"\b(?:morning|afternoon|evening|\d{1,2}:\d{2}\s*(?:am|pm)?|\d{1,2}\s*(?:am|pm))\b"
)
DOCTOR_NAME_PATTERN = re.compile(r"\bdr\.?\s+([a-z][a-z'-]+)")
PRODUCT_CLAUSE_PATTERN = re.compile(
    r"(?:want|need|looking for|find|buy|search for)\s+(?:to\s+(?:buy|get|find)\s+)?"
    r"(?:a\s+|an\s+|some\s+)?"
    r"([a-z\s]+?)(?:\s+\d+\s*(?:quantity|qty|units|pcs))?(?:\.|,|$)"
)

MIN_PRODUCT_TEXT = 3


class EntityExtractor:
    """Extracts domain values from normalized free text.

    Vocabularies come from the immutable intent table, so the extractor
    holds no mutable state and can be shared across turns.
    """

    def __init__(
        self,
        vocabulary: VocabularyConfig | None = None,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> None:
        """Initialize the extractor.

        Args:
            vocabulary: Closed vocabularies; defaults to the built-in lists.
            threshold: Fuzzy threshold for known product names.
        """
        self._vocabulary = vocabulary or VocabularyConfig()
        self._threshold = threshold

    @property
    def vocabulary(self) -> VocabularyConfig:
        """Get the vocabularies in use."""
        return self._vocabulary

    def extract(self, text: str) -> dict[str, Any]:
        """Extract every entity present in the text.

        Args:
            text: User text; normalized before matching.

        Returns:
            Mapping of entity name to value. Absent entities are omitted.
        """
        text = normalize_text(text)
        if not text:
            return {}

        entities: dict[str, Any] = {
            "email": self._search(EMAIL_PATTERN, text),
            "phone": self.extract_phone(text),
            "delivery_address": self._search(ADDRESS_PATTERN, text),
            "order_id": parse_order_id(text, fallback=False),
            "doctor_specialty": self.extract_specialty(text),
            "doctor_name": self._group(DOCTOR_NAME_PATTERN, text),
            "quantity": self.extract_quantity(text),
            "product_name": self.extract_product_name(text),
            "preferred_date": self._search(DATE_PATTERN, text),
            "preferred_time": self._search(TIME_PATTERN, text),
            "test_type": self._contained(text, self._vocabulary.diagnostic_tests),
            "category": self._contained(text, self._vocabulary.healthcare_categories),
            "payment_provider": self._contained(text, self._vocabulary.payment_providers),
        }
        return {name: value for name, value in entities.items() if value is not None}

    def extract_specialty(self, text: str) -> str | None:
        """Get the first vocabulary specialty contained in the text."""
        return self._contained(normalize_text(text), self._vocabulary.specialties)

    def extract_quantity(self, text: str) -> int | None:
        """Get a number written next to a unit word, e.g. "2 tablets"."""
        match = QUANTITY_PATTERN.search(normalize_text(text))
        return int(match.group(1)) if match else None

    def extract_phone(self, text: str) -> str | None:
        """Get a phone number reduced to its digits and leading plus."""
        match = PHONE_PATTERN.search(text)
        if match is None:
            return None
        raw = match.group(0).strip()
        digits = re.sub(r"\D", "", raw)
        return f"+{digits}" if raw.startswith("+") else digits

    def extract_product_name(self, text: str) -> str | None:
        """Get a product name.

        Known products are matched fuzzily against the whole text first.
        Otherwise the clause after a verb like "want" or "buy" is used.
        """
        text = normalize_text(text)
        if len(text) >= MIN_PRODUCT_TEXT:
            for product in self._vocabulary.products:
                if fuzzy_match(text, product, self._threshold) > self._threshold:
                    return product

        match = PRODUCT_CLAUSE_PATTERN.search(text)
        if match:
            name = match.group(1).strip()
            return name or None
        return None

    @staticmethod
    def _contained(text: str, vocabulary: tuple[str, ...]) -> str | None:
        for term in vocabulary:
            if term in text:
                return term
        return None

    @staticmethod
    def _search(pattern: re.Pattern[str], text: str) -> str | None:
        match = pattern.search(text)
        return match.group(0).strip() if match else None

    @staticmethod
    def _group(pattern: re.Pattern[str], text: str) -> str | None:
        match = pattern.search(text)
        return match.group(1) if match else None
