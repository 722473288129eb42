"""Resolved intent type shared by the classifier, resolver and dispatcher."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chatengine.auth.policy import requires_auth

UNKNOWN_INTENT = "unknown"


class ResolutionSource(str, Enum):
    """Which stage of the pipeline produced an intent."""

    RULE = "rule"
    MENU = "menu"
    CLASSIFIER = "classifier"
    FLOW = "flow"
    INTERRUPT = "interrupt"
    PAGINATION = "pagination"
    SUPPORT = "support"
    INTERACTIVE = "interactive"
    MEDIA = "media"
    LOCATION = "location"
    FALLBACK = "fallback"


@dataclass
class IntentResult:
    """The action resolved for one turn.

    Attributes:
        intent: Intent tag, e.g. "track_order" or "checkout_step_address".
        confidence: Confidence in [0, 1].
        parameters: Values extracted for the handler.
        requires_auth: Whether the guard must see an authenticated session.
        source: Pipeline stage that produced the result.
    """

    intent: str
    confidence: float = 1.0
    parameters: dict[str, Any] = field(default_factory=dict)
    requires_auth: bool = True
    source: ResolutionSource = ResolutionSource.CLASSIFIER

    @classmethod
    def resolved(
        cls,
        intent: str,
        source: ResolutionSource,
        confidence: float = 1.0,
        parameters: dict[str, Any] | None = None,
    ) -> "IntentResult":
        """Build a result with the auth requirement derived from the intent."""
        return cls(
            intent=intent,
            confidence=confidence,
            parameters=parameters or {},
            requires_auth=requires_auth(intent),
            source=source,
        )

    @classmethod
    def unknown(cls, source: ResolutionSource = ResolutionSource.CLASSIFIER) -> "IntentResult":
        """Build the result for input nothing could interpret."""
        return cls.resolved(UNKNOWN_INTENT, source, confidence=0.0)

    @property
    def is_unknown(self) -> bool:
        """Whether nothing could interpret the input."""
        return self.intent == UNKNOWN_INTENT
