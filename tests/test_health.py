"""Test health, root and admin endpoints."""

import asyncio
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from chatengine import main
from chatengine.config.settings import Settings, get_settings
from chatengine.main import app

from conftest import INTENTS_YAML


@asynccontextmanager
async def lifespan_wrapper(app):
    """Wrap app lifespan for testing."""
    async with app.router.lifespan_context(app):
        yield


@pytest.fixture
def config_dir(monkeypatch):
    """A private directory holding the intent table, wired into the app settings."""
    tmpdir = Path(tempfile.mkdtemp(dir="/tmp"))
    config_path = tmpdir / "intents.yaml"
    shutil.copy(INTENTS_YAML, config_path)

    monkeypatch.setenv("ENGINE_CONFIG_PATH", str(config_path))
    monkeypatch.setenv("ENGINE_HOT_RELOAD_ENABLED", "true")
    get_settings.cache_clear()
    monkeypatch.setattr(main, "settings", get_settings())

    yield tmpdir

    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
async def client(config_dir):
    """Create async test client with lifespan."""
    async with lifespan_wrapper(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac


async def test_root(client: AsyncClient):
    """Test root endpoint returns API metadata."""
    response = await client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "conversational-session-engine"
    assert "version" in data


async def test_liveness(client: AsyncClient):
    """Test liveness probe returns ok."""
    response = await client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_readiness(client: AsyncClient):
    """Test readiness probe returns ok."""
    response = await client.get("/health/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_reload_config(client: AsyncClient):
    """Test the admin endpoint reloads the intent table."""
    response = await client.post("/admin/reload-config")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["intent_count"] == len(app.state.intents_config.intents)
    assert data["reload_count"] >= 1


async def test_reload_config_failure(client: AsyncClient, config_dir: Path):
    """Test a broken table is reported and the running one kept."""
    previous = app.state.intents_config
    (config_dir / "intents.yaml").write_text("intents: [unclosed")

    response = await client.post("/admin/reload-config")

    assert response.status_code == 500
    assert response.json()["status"] == "error"
    assert app.state.intents_config is previous

    ready = await client.get("/health/ready")
    assert ready.status_code == 200


async def test_not_ready_without_intent_table(config_dir: Path):
    """Test readiness fails when the table cannot be loaded at startup."""
    (config_dir / "intents.yaml").unlink()

    async with lifespan_wrapper(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["reason"] == "intent table not loaded"


async def test_cleanup_survives_a_failed_pass():
    """Test the background cleanup keeps running after an exception."""
    sessions = MagicMock()
    sessions.cleanup.side_effect = [RuntimeError("store offline"), 2, 0, 0, 0, 0]
    services = MagicMock()
    services.otp.cleanup_expired.return_value = 0
    settings = Settings(session_gc_interval_s=0.01)

    task = asyncio.create_task(main.collect_garbage(sessions, services, settings))
    try:
        for _ in range(100):
            if sessions.cleanup.call_count >= 2:
                break
            await asyncio.sleep(0.01)
    finally:
        task.cancel()

    assert sessions.cleanup.call_count >= 2
    with pytest.raises(asyncio.CancelledError):
        await task
