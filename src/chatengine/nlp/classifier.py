"""Rule-first intent classifier with weighted lexical scoring."""

import logging

from chatengine.config.intents import (
    ENTITY_WEIGHT,
    KEYWORD_WEIGHT,
    PATTERN_WEIGHT,
    IntentDefinition,
    IntentsConfig,
)
from chatengine.nlp.entities import EntityExtractor
from chatengine.nlp.fuzzy import DEFAULT_THRESHOLD, fuzzy_match, normalize_text
from chatengine.nlp.results import IntentResult, ResolutionSource
from chatengine.nlp.rules import RuleMatcher

logger = logging.getLogger(__name__)

KEYWORD_BOOST = 1.5
MIN_TOKEN_LENGTH = 3


class IntentClassifier:
    """Maps free text to an intent.

    The rule tier runs first. Otherwise every scored intent is evaluated:

    - +2 for each pattern contained in the text
    - +3 for each keyword fuzzily matching the text or one of its tokens
    - +4 for each required entity that was extracted
    - x1.5 if any keyword matched

    The highest score wins; a later intent must score strictly higher to
    replace an earlier one. Confidence is ``min(score / max_score, 1)``.
    """

    def __init__(
        self,
        config: IntentsConfig,
        extractor: EntityExtractor | None = None,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> None:
        """Initialize the classifier.

        Args:
            config: Intent table, rules and vocabularies.
            extractor: Entity extractor; built from the table's vocabulary
                if not provided.
            threshold: Fuzzy threshold for keyword matches.
        """
        self._config = config
        self._extractor = extractor or EntityExtractor(config.vocabulary, threshold)
        self._threshold = threshold
        self._rules = RuleMatcher(config)

    @property
    def config(self) -> IntentsConfig:
        """Get the intent table in use."""
        return self._config

    @property
    def extractor(self) -> EntityExtractor:
        """Get the entity extractor in use."""
        return self._extractor

    @property
    def threshold(self) -> float:
        """Get the fuzzy keyword threshold."""
        return self._threshold

    def classify(self, text: str, pending_attachment: bool = False) -> IntentResult:
        """Classify a message.

        Args:
            text: Raw message text.
            pending_attachment: Whether a prescription is waiting for an
                order id.

        Returns:
            The resolved intent. Never raises; failures degrade to "unknown".
        """
        try:
            return self._classify(text, pending_attachment)
        except Exception as e:
            logger.warning("Classification failed, treating as unknown: %s", e)
            return IntentResult.unknown()

    def _classify(self, text: str, pending_attachment: bool) -> IntentResult:
        normalized = normalize_text(text)
        if not normalized:
            return IntentResult.unknown()

        ruled = self._rules.match(text, pending_attachment=pending_attachment)
        if ruled is not None:
            logger.debug("Rule match (intent=%s)", ruled.intent)
            return ruled

        entities = self._extractor.extract(normalized)
        tokens = [t for t in normalized.split() if len(t) >= MIN_TOKEN_LENGTH]

        best: IntentDefinition | None = None
        best_score = 0.0
        for intent in self._config.intents:
            score = self.score(intent, normalized, tokens, entities)
            if score > best_score:
                best, best_score = intent, score

        if best is None:
            logger.debug("No intent scored for message")
            return IntentResult.unknown()

        confidence = min(best_score / best.max_score, 1.0) if best.max_score else 0.0
        logger.debug(
            "Scored match (intent=%s, score=%.2f, confidence=%.3f)",
            best.name,
            best_score,
            confidence,
        )
        return IntentResult.resolved(
            best.name,
            ResolutionSource.CLASSIFIER,
            confidence=confidence,
            parameters=entities,
        )

    def score(
        self,
        intent: IntentDefinition,
        text: str,
        tokens: list[str],
        entities: dict,
    ) -> float:
        """Score one intent against normalized text.

        Args:
            intent: The intent to score.
            text: Normalized message text.
            tokens: Message tokens long enough for keyword matching.
            entities: Entities extracted from the text.

        Returns:
            The weighted score; 0 means no evidence.
        """
        score = 0.0
        score += PATTERN_WEIGHT * sum(1 for pattern in intent.patterns if pattern in text)

        keyword_hits = sum(
            1 for keyword in intent.keywords if self._keyword_matches(keyword, text, tokens)
        )
        score += KEYWORD_WEIGHT * keyword_hits

        score += ENTITY_WEIGHT * sum(1 for name in intent.required_entities if name in entities)

        if keyword_hits:
            score *= KEYWORD_BOOST
        return score

    def _keyword_matches(self, keyword: str, text: str, tokens: list[str]) -> bool:
        if fuzzy_match(text, keyword, self._threshold) > self._threshold:
            return True
        return any(
            fuzzy_match(token, keyword, self._threshold) > self._threshold for token in tokens
        )
