"""Text understanding: fuzzy matching, entities, rules and intent scoring."""

from chatengine.nlp.classifier import IntentClassifier
from chatengine.nlp.dates import (
    DateTimeValidation,
    parse_appointment_datetime,
    validate_appointment_datetime,
)
from chatengine.nlp.entities import EntityExtractor
from chatengine.nlp.fuzzy import best_match, fuzzy_match, levenshtein_distance, normalize_text
from chatengine.nlp.orders import is_valid_order_id, parse_order_id
from chatengine.nlp.results import UNKNOWN_INTENT, IntentResult, ResolutionSource
from chatengine.nlp.rules import RuleMatcher, parse_credentials

__all__ = [
    "IntentClassifier",
    "IntentResult",
    "ResolutionSource",
    "UNKNOWN_INTENT",
    "RuleMatcher",
    "parse_credentials",
    "EntityExtractor",
    "normalize_text",
    "levenshtein_distance",
    "fuzzy_match",
    "best_match",
    "parse_order_id",
    "is_valid_order_id",
    "parse_appointment_datetime",
    "validate_appointment_datetime",
    "DateTimeValidation",
]
