"""Intent table loader and Pydantic models.

The intent table, rule phrases, numeric menu and vocabularies are loaded once
from YAML into frozen models and passed by reference to the classifier and
entity extractor. Reloading builds a new instance; nothing mutates in place.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from chatengine.config.settings import get_settings

PATTERN_WEIGHT = 2
KEYWORD_WEIGHT = 3
ENTITY_WEIGHT = 4

Phrase = Annotated[str, Field(min_length=1, max_length=200)]


def _lowercase(values: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(v.strip().lower() for v in values)


class IntentDefinition(BaseModel):
    """A scored intent: substring patterns, fuzzy keywords and required entities."""

    model_config = ConfigDict(frozen=True)

    name: Annotated[str, Field(min_length=1, max_length=100)]
    patterns: tuple[Phrase, ...] = ()
    keywords: tuple[Phrase, ...] = ()
    required_entities: tuple[str, ...] = ()
    description: Annotated[str, Field(max_length=1000)] = ""

    @field_validator("patterns", "keywords")
    @classmethod
    def phrases_lowercase(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Ensure phrases are lowercase to match normalized input."""
        return _lowercase(v)

    @property
    def max_score(self) -> int:
        """Score reached when every pattern, keyword and entity matches."""
        return (
            len(self.patterns) * PATTERN_WEIGHT
            + len(self.keywords) * KEYWORD_WEIGHT
            + len(self.required_entities) * ENTITY_WEIGHT
        )


class CommandRule(BaseModel):
    """Exact phrases that resolve straight to an intent."""

    model_config = ConfigDict(frozen=True)

    intent: Annotated[str, Field(min_length=1, max_length=100)]
    phrases: Annotated[tuple[Phrase, ...], Field(min_length=1)]

    @field_validator("phrases")
    @classmethod
    def phrases_lowercase(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Ensure phrases are lowercase to match normalized input."""
        return _lowercase(v)


class RuleConfig(BaseModel):
    """Phrase lists for the deterministic classification tier."""

    model_config = ConfigDict(frozen=True)

    greetings: tuple[Phrase, ...] = (
        "hello",
        "hi",
        "hey",
        "greetings",
        "good morning",
        "good afternoon",
        "good evening",
        "start",
        "begin",
    )
    help: tuple[Phrase, ...] = (
        "help",
        "menu",
        "what can you do",
        "capabilities",
        "features",
        "?",
        "options",
    )
    logout: tuple[Phrase, ...] = (
        "logout",
        "log out",
        "sign out",
        "exit",
        "bye",
        "goodbye",
        "quit",
    )
    commands: tuple[CommandRule, ...] = ()

    @field_validator("greetings", "help", "logout")
    @classmethod
    def phrases_lowercase(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Ensure phrases are lowercase to match normalized input."""
        return _lowercase(v)

    def command_for(self, text: str) -> str | None:
        """Get the intent whose exact phrase equals the normalized text."""
        for command in self.commands:
            if text in command.phrases:
                return command.intent
        return None


class MenuItem(BaseModel):
    """A numeric main-menu shortcut."""

    model_config = ConfigDict(frozen=True)

    key: Annotated[str, Field(pattern=r"^[0-9]$")]
    intent: Annotated[str, Field(min_length=1, max_length=100)]
    label: Annotated[str, Field(min_length=1, max_length=60)]


class VocabularyConfig(BaseModel):
    """Closed vocabularies used by the entity extractor."""

    model_config = ConfigDict(frozen=True)

    specialties: tuple[Phrase, ...] = (
        "cardiologist",
        "pediatrician",
        "dermatologist",
        "neurologist",
        "gynecologist",
        "urologist",
        "orthopedic",
        "ophthalmologist",
        "dentist",
        "psychiatrist",
        "general practitioner",
        "pulmonologist",
        "gastroenterologist",
    )
    products: tuple[Phrase, ...] = (
        "paracetamol",
        "aspirin",
        "amoxicillin",
        "ibuprofen",
        "insulin",
        "vitamin c",
        "panadol",
        "chloroquine",
        "augmentin",
        "flagyl",
        "antihistamine",
        "antibiotics",
        "pain relief",
        "fever reducer",
    )
    diagnostic_tests: tuple[Phrase, ...] = (
        "blood test",
        "malaria test",
        "covid test",
        "x-ray",
        "ultrasound",
        "urinalysis",
        "lipid profile",
        "full blood count",
    )
    healthcare_categories: tuple[Phrase, ...] = (
        "first aid",
        "personal care",
        "baby care",
        "medical devices",
        "supplements",
        "skincare",
    )
    payment_providers: tuple[Phrase, ...] = ("flutterwave", "paystack")

    @field_validator(
        "specialties",
        "products",
        "diagnostic_tests",
        "healthcare_categories",
        "payment_providers",
    )
    @classmethod
    def phrases_lowercase(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Ensure vocabulary is lowercase to match normalized input."""
        return _lowercase(v)


class IntentsConfig(BaseModel):
    """Root configuration for intent classification."""

    model_config = ConfigDict(frozen=True)

    intents: Annotated[tuple[IntentDefinition, ...], Field(min_length=1)]
    rules: RuleConfig = Field(default_factory=RuleConfig)
    menu: tuple[MenuItem, ...] = ()
    vocabulary: VocabularyConfig = Field(default_factory=VocabularyConfig)

    @model_validator(mode="after")
    def validate_unique_names(self) -> "IntentsConfig":
        """Validate that intent names and menu keys are unique."""
        names = [intent.name for intent in self.intents]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate intent names: {duplicates}")

        keys = [item.key for item in self.menu]
        duplicate_keys = sorted({k for k in keys if keys.count(k) > 1})
        if duplicate_keys:
            raise ValueError(f"Duplicate menu keys: {duplicate_keys}")
        return self

    def get_intent(self, name: str) -> IntentDefinition | None:
        """Get a scored intent by name."""
        for intent in self.intents:
            if intent.name == name:
                return intent
        return None

    def menu_intent(self, key: str) -> str | None:
        """Get the intent behind a numeric menu key."""
        for item in self.menu:
            if item.key == key:
                return item.intent
        return None


class ConfigLoadError(Exception):
    """Raised when configuration loading fails."""

    pass


def _validate_config_path(path: Path, allowed_dirs: list[str]) -> Path:
    """Validate and canonicalize config path to prevent path traversal.

    Args:
        path: The path to validate.
        allowed_dirs: List of allowed directory prefixes.

    Returns:
        Canonicalized (resolved) path.

    Raises:
        ConfigLoadError: If path is outside allowed directories.
    """
    resolved = path.resolve()

    for allowed_dir in allowed_dirs:
        allowed_resolved = Path(allowed_dir).resolve()
        try:
            resolved.relative_to(allowed_resolved)
            return resolved
        except ValueError:
            continue

    raise ConfigLoadError(
        f"Configuration path '{resolved}' is outside allowed directories: {allowed_dirs}"
    )


# /tmp is allowed for tests; deployments mount the table under /config
ALLOWED_CONFIG_DIRS = ["/config", "/app/config", "/tmp", "config", "."]


def load_intents_config(config_path: str | Path | None = None) -> IntentsConfig:
    """Load and validate the intent table from a YAML file.

    Args:
        config_path: Path to the YAML file. If None, uses settings.

    Returns:
        Validated IntentsConfig instance.

    Raises:
        ConfigLoadError: If the file cannot be read, validation fails, or
            the path is outside the allowed directories.
    """
    if config_path is None:
        config_path = get_settings().config_path

    path = _validate_config_path(Path(config_path), ALLOWED_CONFIG_DIRS)

    if not path.exists():
        raise ConfigLoadError(f"Configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigLoadError(f"Failed to read {path}: {e}") from e

    if raw_config is None:
        raise ConfigLoadError(f"Empty configuration file: {path}")

    try:
        return IntentsConfig.model_validate(raw_config)
    except ValueError as e:
        raise ConfigLoadError(f"Configuration validation failed: {e}") from e


@lru_cache
def get_intents_config() -> IntentsConfig:
    """Get cached intent table instance."""
    return load_intents_config()


def clear_intents_config_cache() -> None:
    """Clear the cached intent table.

    Call this before reloading so fresh data is read from disk.
    """
    get_intents_config.cache_clear()
