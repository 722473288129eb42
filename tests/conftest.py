"""Pytest configuration and fixtures."""

from pathlib import Path
from tempfile import NamedTemporaryFile

import pytest

from chatengine.config.intents import IntentsConfig, load_intents_config
from chatengine.dispatcher import Dispatcher
from chatengine.nlp.classifier import IntentClassifier
from chatengine.services.container import Services, build_in_memory_services
from chatengine.session.manager import SessionManager
from chatengine.session.store import InMemorySessionStore
from chatengine.whatsapp.client import LoggingMessenger
from chatengine.whatsapp.models import InboundMessage

INTENTS_YAML = Path(__file__).resolve().parent.parent / "config" / "intents.yaml"

SENDER = "2348012345678"


@pytest.fixture(autouse=True)
def test_config_path(monkeypatch):
    """Copy the intent table to a temp file and set ENGINE_CONFIG_PATH for all tests."""
    with NamedTemporaryFile(mode="w", suffix=".yaml", dir="/tmp", delete=False) as f:
        f.write(INTENTS_YAML.read_text(encoding="utf-8"))
        f.flush()
        config_path = f.name

    monkeypatch.setenv("ENGINE_CONFIG_PATH", config_path)

    # Clear the lru_cache for settings and the intent table
    from chatengine.config.intents import get_intents_config
    from chatengine.config.settings import get_settings

    get_settings.cache_clear()
    get_intents_config.cache_clear()

    yield config_path

    # Cleanup
    Path(config_path).unlink(missing_ok=True)
    get_settings.cache_clear()
    get_intents_config.cache_clear()


@pytest.fixture
def intents_config(test_config_path) -> IntentsConfig:
    return load_intents_config(test_config_path)


@pytest.fixture
def services() -> Services:
    return build_in_memory_services()


@pytest.fixture
def sessions() -> SessionManager:
    return SessionManager(InMemorySessionStore(), idle_timeout_minutes=20)


@pytest.fixture
def messenger() -> LoggingMessenger:
    return LoggingMessenger()


@pytest.fixture
def dispatcher(intents_config, services, sessions, messenger) -> Dispatcher:
    return Dispatcher(
        sessions=sessions,
        classifier=IntentClassifier(intents_config),
        services=services,
        messenger=messenger,
        audit_enabled=False,
    )


@pytest.fixture
def say(dispatcher):
    """Send a text message as SENDER and return the replies."""

    async def _say(text, sender=SENDER, now=None):
        return await dispatcher.handle(InboundMessage.text_message(sender, text), now=now)

    return _say


@pytest.fixture
async def logged_in(services, sessions):
    """Register an account and log SENDER in."""
    account = await services.accounts.register(
        "Jane Doe", "jane@example.com", "mypassword123", "08012345678"
    )
    session, _ = sessions.get_or_create(SENDER)
    sessions.authenticate(session, account.user_id)
    sessions.save(session)
    return account


def bodies(messages) -> list[str]:
    """Body text of every outbound message."""
    return [message.body for message in messages]


def joined(messages) -> str:
    return "\n".join(bodies(messages))
