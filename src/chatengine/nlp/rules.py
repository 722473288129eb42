"""Deterministic classification tier.

Rules run before scoring and always win when they match. Matching is done on
normalized text; credentials are taken from the raw text so passwords keep
their case.
"""

import logging
import re
from typing import Any

from chatengine.config.intents import IntentsConfig
from chatengine.nlp.fuzzy import fuzzy_match, normalize_text
from chatengine.nlp.orders import parse_order_id
from chatengine.nlp.results import IntentResult, ResolutionSource

logger = logging.getLogger(__name__)

REGISTER_PATTERN = re.compile(
    r"^(?:register|signup|sign up|create account|new account|sign me up)\b", re.IGNORECASE
)
LOGIN_PATTERN = re.compile(
    r"^(?:login|signin|sign in|log in|authenticate|log me in)\b", re.IGNORECASE
)
PASSWORD_RESET_PATTERN = re.compile(r"^(?:forgot|reset|change)\b.*\bpassword\b")
MENU_KEY_PATTERN = re.compile(r"^[0-9]$")
TRACK_PATTERN = re.compile(r"^(?:track|status)\b")
ADD_PATTERN = re.compile(r"^add\s+(\d+)(?:\s+(\d+))?$")
REMOVE_PATTERN = re.compile(r"^remove\s+(\d+)$")
PAY_PATTERN = re.compile(r"^pay\b")
ATTACH_PATTERN = re.compile(r"^(?:rx|attach|link)\s+#?([a-z0-9_-]+)$")

HELP_FUZZY_THRESHOLD = 0.85
HELP_MAX_TOKENS = 3
GREETING_MAX_TOKENS = 3


def parse_credentials(text: str) -> dict[str, str]:
    """Split "<name?> <email> <password?>" into parts.

    The email is the first token containing "@". Tokens before it form the
    name and tokens after it form the password. Missing parts are omitted.

    Examples:
        "Ada Lovelace ada@example.com s3cret" ->
            {"name": "Ada Lovelace", "email": "ada@example.com", "password": "s3cret"}
        "ada@example.com" -> {"email": "ada@example.com"}
    """
    tokens = text.split()
    email_index = next((i for i, token in enumerate(tokens) if "@" in token), None)
    if email_index is None:
        name = " ".join(tokens)
        return {"name": name} if name else {}

    params = {"email": tokens[email_index].lower()}
    name = " ".join(tokens[:email_index])
    password = " ".join(tokens[email_index + 1 :])
    if name:
        params["name"] = name
    if password:
        params["password"] = password
    return params


class RuleMatcher:
    """Matches greetings, help, commands and shorthand syntax."""

    def __init__(self, config: IntentsConfig) -> None:
        self._config = config

    def match(
        self, raw_text: str, pending_attachment: bool = False
    ) -> IntentResult | None:
        """Resolve text through the rule table.

        Args:
            raw_text: Text as the user sent it.
            pending_attachment: Whether the session holds a prescription
                waiting to be attached; enables the "rx <id>" shorthand.

        Returns:
            The resolved intent, or None if no rule applies.
        """
        text = normalize_text(raw_text)
        if not text:
            return None
        raw = " ".join(raw_text.split())
        rules = self._config.rules

        if self._is_greeting(text):
            return self._result("greeting")
        if text in rules.logout:
            return self._result("logout")
        if self._is_help(text):
            return self._result("help")

        match = REGISTER_PATTERN.match(raw)
        if match:
            return self._result("register", parse_credentials(raw[match.end() :]))
        match = LOGIN_PATTERN.match(raw)
        if match:
            credentials = parse_credentials(raw[match.end() :])
            credentials.pop("name", None)
            return self._result("login", credentials)
        if PASSWORD_RESET_PATTERN.match(text):
            return self._result("password_reset")

        if MENU_KEY_PATTERN.match(text):
            intent = self._config.menu_intent(text)
            if intent:
                return IntentResult.resolved(intent, ResolutionSource.MENU)

        if pending_attachment:
            match = ATTACH_PATTERN.match(text)
            if match:
                return self._result("attach_prescription", {"order_id": match.group(1)})

        match = ADD_PATTERN.match(text)
        if match:
            params: dict[str, Any] = {"index": int(match.group(1)), "quantity": 1}
            if match.group(2):
                params["quantity"] = int(match.group(2))
            return self._result("add_to_cart", params)
        match = REMOVE_PATTERN.match(text)
        if match:
            return self._result("remove_from_cart", {"index": int(match.group(1))})

        if TRACK_PATTERN.match(text):
            return self._result("track_order", self._order_params(text))
        if PAY_PATTERN.match(text):
            params = self._order_params(text)
            for provider in self._config.vocabulary.payment_providers:
                if provider in text:
                    params["payment_provider"] = provider
                    break
            return self._result("payment", params)

        intent = rules.command_for(text)
        if intent:
            return self._result(intent)
        return None

    def _is_greeting(self, text: str) -> bool:
        if text in self._config.rules.greetings:
            return True
        if len(text.split()) > GREETING_MAX_TOKENS:
            return False
        return any(text.startswith(f"{greeting} ") for greeting in self._config.rules.greetings)

    def _is_help(self, text: str) -> bool:
        phrases = self._config.rules.help
        if text in phrases:
            return True
        if len(text.split()) > HELP_MAX_TOKENS:
            return False
        return any(
            fuzzy_match(text, phrase, HELP_FUZZY_THRESHOLD) > 0
            for phrase in phrases
            if len(phrase) >= 4
        )

    @staticmethod
    def _order_params(text: str) -> dict[str, Any]:
        order_id = parse_order_id(text, fallback=False)
        return {"order_id": order_id} if order_id else {}

    @staticmethod
    def _result(intent: str, params: dict[str, Any] | None = None) -> IntentResult:
        return IntentResult.resolved(intent, ResolutionSource.RULE, parameters=params)
