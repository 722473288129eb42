"""Configuration module for the session engine."""

from chatengine.config.intents import (
    CommandRule,
    ConfigLoadError,
    IntentDefinition,
    IntentsConfig,
    MenuItem,
    RuleConfig,
    VocabularyConfig,
    clear_intents_config_cache,
    get_intents_config,
    load_intents_config,
)
from chatengine.config.reloader import ConfigReloader
from chatengine.config.settings import LogLevel, Settings, get_settings
from chatengine.config.watcher import ConfigWatcher

__all__ = [
    "CommandRule",
    "ConfigLoadError",
    "ConfigReloader",
    "ConfigWatcher",
    "IntentDefinition",
    "IntentsConfig",
    "LogLevel",
    "MenuItem",
    "RuleConfig",
    "Settings",
    "VocabularyConfig",
    "clear_intents_config_cache",
    "get_intents_config",
    "get_settings",
    "load_intents_config",
]
