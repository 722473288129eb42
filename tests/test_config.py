"""Test intent table loading, validation and settings."""

from pathlib import Path
from tempfile import NamedTemporaryFile

import pytest

from chatengine.config import (
    CommandRule,
    ConfigLoadError,
    IntentDefinition,
    IntentsConfig,
    MenuItem,
    RuleConfig,
    Settings,
    get_intents_config,
    load_intents_config,
)
from chatengine.config.intents import ALLOWED_CONFIG_DIRS, _validate_config_path


def write_yaml(content: str) -> str:
    with NamedTemporaryFile(mode="w", suffix=".yaml", dir="/tmp", delete=False) as f:
        f.write(content)
        return f.name


class TestIntentDefinition:
    """Test IntentDefinition model."""

    def test_phrases_lowercased(self):
        """Test patterns and keywords are lowercased and stripped."""
        intent = IntentDefinition(
            name="track_order", patterns=[" Where Is My Order "], keywords=["ORDER"]
        )
        assert intent.patterns == ("where is my order",)
        assert intent.keywords == ("order",)

    def test_max_score(self):
        """Test the score when everything matches."""
        intent = IntentDefinition(
            name="track_order",
            patterns=["track", "where is"],
            keywords=["order"],
            required_entities=["order_id"],
        )
        assert intent.max_score == 2 * 2 + 3 + 4

    def test_name_required(self):
        """Test an empty name is rejected."""
        with pytest.raises(ValueError):
            IntentDefinition(name="")


class TestRuleConfig:
    """Test RuleConfig model."""

    def test_defaults(self):
        """Test the built-in phrase lists."""
        rules = RuleConfig()
        assert "hello" in rules.greetings
        assert "menu" in rules.help
        assert "bye" in rules.logout
        assert rules.commands == ()

    def test_command_for(self):
        """Test exact command lookup on normalized text."""
        rules = RuleConfig(
            commands=[CommandRule(intent="view_cart", phrases=["Cart", "My Cart"])]
        )
        assert rules.command_for("my cart") == "view_cart"
        assert rules.command_for("my cart please") is None

    def test_command_needs_phrases(self):
        """Test a command without phrases is rejected."""
        with pytest.raises(ValueError):
            CommandRule(intent="view_cart", phrases=[])


class TestIntentsConfig:
    """Test IntentsConfig model."""

    def test_minimal_config(self):
        """Test one intent is enough."""
        config = IntentsConfig(intents=[{"name": "greeting"}])
        assert config.get_intent("greeting").name == "greeting"
        assert config.get_intent("missing") is None
        assert config.menu_intent("1") is None

    def test_intents_required(self):
        """Test an empty intent list is rejected."""
        with pytest.raises(ValueError):
            IntentsConfig(intents=[])

    def test_duplicate_intent_names(self):
        """Test intent names are unique."""
        with pytest.raises(ValueError, match="Duplicate intent names"):
            IntentsConfig(intents=[{"name": "a"}, {"name": "a"}])

    def test_duplicate_menu_keys(self):
        """Test menu keys are unique."""
        with pytest.raises(ValueError, match="Duplicate menu keys"):
            IntentsConfig(
                intents=[{"name": "a"}],
                menu=[
                    {"key": "1", "intent": "a", "label": "A"},
                    {"key": "1", "intent": "a", "label": "Again"},
                ],
            )

    def test_menu_key_is_one_digit(self):
        """Test menu keys are single digits."""
        with pytest.raises(ValueError):
            MenuItem(key="10", intent="a", label="A")

    def test_frozen(self):
        """Test the table cannot be mutated in place."""
        config = IntentsConfig(intents=[{"name": "a"}])
        with pytest.raises(ValueError):
            config.menu = ()


class TestLoadIntentsConfig:
    """Test load_intents_config function."""

    def test_load_shipped_table(self, intents_config):
        """Test the bundled intent table loads and wires the menu."""
        assert intents_config.menu_intent("1") == "search_products"
        assert intents_config.menu_intent("8") == "healthcare_products"
        assert intents_config.get_intent("track_order") is not None
        assert "cardiologist" in intents_config.vocabulary.specialties

    def test_load_minimal_config(self):
        """Test loading a small table from disk."""
        path = write_yaml(
            """
intents:
  - name: greeting
    patterns: [hello]
menu:
  - {key: "1", intent: greeting, label: Say hi}
"""
        )
        try:
            config = load_intents_config(path)
            assert config.menu_intent("1") == "greeting"
        finally:
            Path(path).unlink()

    def test_load_nonexistent_file(self):
        """Test loading a missing file."""
        with pytest.raises(ConfigLoadError, match="not found"):
            load_intents_config("/tmp/nonexistent-intents.yaml")

    def test_load_invalid_yaml(self):
        """Test loading broken YAML."""
        path = write_yaml("intents: [unclosed")
        try:
            with pytest.raises(ConfigLoadError, match="Invalid YAML"):
                load_intents_config(path)
        finally:
            Path(path).unlink()

    def test_load_empty_file(self):
        """Test loading an empty file."""
        path = write_yaml("")
        try:
            with pytest.raises(ConfigLoadError, match="Empty configuration"):
                load_intents_config(path)
        finally:
            Path(path).unlink()

    def test_load_invalid_schema(self):
        """Test loading a table that fails validation."""
        path = write_yaml("intents:\n  - patterns: [hello]\n")
        try:
            with pytest.raises(ConfigLoadError, match="validation failed"):
                load_intents_config(path)
        finally:
            Path(path).unlink()

    def test_path_outside_allowed_dirs(self):
        """Test paths outside the allowed directories are refused."""
        with pytest.raises(ConfigLoadError, match="outside allowed directories"):
            load_intents_config("/etc/passwd")

    def test_validate_config_path(self):
        """Test an allowed path resolves."""
        resolved = _validate_config_path(Path("/tmp/intents.yaml"), ALLOWED_CONFIG_DIRS)
        assert resolved == Path("/tmp/intents.yaml").resolve()

    def test_default_path_from_settings(self, test_config_path):
        """Test the cached loader reads ENGINE_CONFIG_PATH."""
        config = get_intents_config()
        assert config is get_intents_config()
        assert config.menu_intent("5") == "view_cart"


class TestSettings:
    """Test environment settings."""

    def test_defaults(self, monkeypatch):
        """Test default values."""
        monkeypatch.delenv("ENGINE_CONFIG_PATH", raising=False)
        settings = Settings()
        assert settings.config_path == "config/intents.yaml"
        assert settings.session_idle_timeout_min == 20
        assert settings.page_size == 5
        assert settings.whatsapp_enabled is False

    def test_env_prefix(self, monkeypatch):
        """Test values are read from ENGINE_ variables."""
        monkeypatch.setenv("ENGINE_SESSION_IDLE_TIMEOUT_MIN", "45")
        monkeypatch.setenv("ENGINE_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("ENGINE_HOT_RELOAD_ENABLED", "false")

        settings = Settings()

        assert settings.session_idle_timeout_min == 45
        assert settings.log_level.value == "DEBUG"
        assert settings.hot_reload_enabled is False

    def test_whatsapp_enabled(self, monkeypatch):
        """Test the Graph API needs both the token and the phone number id."""
        monkeypatch.setenv("ENGINE_WHATSAPP_ACCESS_TOKEN", "token")
        assert Settings().whatsapp_enabled is False

        monkeypatch.setenv("ENGINE_WHATSAPP_PHONE_NUMBER_ID", "123")
        assert Settings().whatsapp_enabled is True
