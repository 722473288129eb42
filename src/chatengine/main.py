"""FastAPI application entry point for the conversational session engine."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from chatengine import __version__
from chatengine.config.intents import ConfigLoadError, load_intents_config
from chatengine.config.reloader import ConfigReloader
from chatengine.config.settings import Settings, get_settings
from chatengine.dispatcher import Dispatcher
from chatengine.nlp.classifier import IntentClassifier
from chatengine.observability.audit import configure_audit_logging
from chatengine.services.backend import BackendClient
from chatengine.services.container import Services, build_in_memory_services
from chatengine.services.retry import RetryConfig
from chatengine.session.manager import SessionManager
from chatengine.session.store import InMemorySessionStore
from chatengine.whatsapp.client import LoggingMessenger, WhatsAppClient
from chatengine.whatsapp.endpoint import webhook_router

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.value),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_messenger(settings: Settings) -> WhatsAppClient | LoggingMessenger:
    """Use the Graph API when credentials are configured, else log replies."""
    if settings.whatsapp_enabled:
        return WhatsAppClient(
            phone_number_id=settings.whatsapp_phone_number_id,
            access_token=settings.whatsapp_access_token,
            api_url=settings.whatsapp_api_url,
            api_version=settings.whatsapp_api_version,
            timeout=settings.messaging_timeout_s,
        )
    logger.warning("WhatsApp credentials not set, replies will only be logged")
    return LoggingMessenger()


async def collect_garbage(
    sessions: SessionManager, services: Services, settings: Settings
) -> None:
    """Periodically drop long idle sessions and expired codes."""
    while True:
        await asyncio.sleep(settings.session_gc_interval_s)
        try:
            removed = sessions.cleanup(settings.session_gc_idle_min)
            codes = services.otp.cleanup_expired()
        except Exception:
            logger.exception("Cleanup pass failed, retrying next interval")
            continue
        if removed or codes:
            logger.info("Cleanup removed %d sessions and %d codes", removed, codes)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting conversational-session-engine v%s", __version__)
    logger.info("Intent table path: %s", settings.config_path)
    configure_audit_logging(settings.audit_log_level)

    # Load the intent table
    try:
        intents_config = load_intents_config(settings.config_path)
        app.state.intents_config = intents_config
        app.state.config_loaded = True
        logger.info(
            "Loaded intent table with %d intents and %d menu entries",
            len(intents_config.intents),
            len(intents_config.menu),
        )
    except ConfigLoadError as e:
        logger.error("Failed to load intent table: %s", e)
        app.state.intents_config = None
        app.state.config_loaded = False

    # Backend synchronization for orders and appointments
    backend = None
    if settings.backend_base_url:
        backend = BackendClient(
            base_url=settings.backend_base_url,
            timeout=settings.backend_timeout_s,
            api_key=settings.backend_api_key or None,
        )
        logger.info("Backend sync enabled (%s)", settings.backend_base_url)
    else:
        logger.info("No backend configured, submissions are confirmed locally")
    app.state.backend = backend

    retry_config = RetryConfig(
        max_retries=settings.retry_attempts,
        base_delay_ms=settings.retry_base_delay_ms,
        backoff_multiplier=settings.retry_backoff_multiplier,
        jitter_factor=settings.retry_jitter_factor,
    )
    services = build_in_memory_services(
        backend=backend,
        retry_config=retry_config,
        otp_validity_minutes=settings.otp_validity_min,
    )
    sessions = SessionManager(
        InMemorySessionStore(),
        idle_timeout_minutes=settings.session_idle_timeout_min,
        token_expiry_minutes=settings.token_expiry_min,
        token_refresh_threshold_minutes=settings.token_refresh_threshold_min,
    )
    messenger = build_messenger(settings)
    app.state.messenger = messenger

    if app.state.config_loaded:
        app.state.dispatcher = Dispatcher(
            sessions=sessions,
            classifier=IntentClassifier(intents_config, threshold=settings.fuzzy_threshold),
            services=services,
            messenger=messenger,
            page_size=settings.page_size,
            audit_enabled=settings.audit_enabled,
        )
        logger.info("Dispatcher initialized")
    else:
        app.state.dispatcher = None

    # Initialize intent table hot-reload watcher
    if settings.hot_reload_enabled and app.state.config_loaded:
        config_reloader = ConfigReloader(
            app=app,
            config_path=settings.config_path,
            debounce_seconds=settings.hot_reload_debounce_seconds,
        )
        config_reloader.start()
        app.state.config_reloader = config_reloader
    else:
        app.state.config_reloader = None
        if not settings.hot_reload_enabled:
            logger.info("Intent table hot-reload disabled")

    gc_task = asyncio.create_task(collect_garbage(sessions, services, settings))

    yield

    # Cleanup
    gc_task.cancel()
    if app.state.config_reloader:
        app.state.config_reloader.stop()
    await messenger.close()
    if backend is not None:
        await backend.close()
    logger.info("Shutting down conversational-session-engine")


app = FastAPI(
    title="Conversational Session Engine",
    description=(
        "WhatsApp session engine that resolves messages to intents and runs "
        "authenticated multi-step flows"
    ),
    version=__version__,
    lifespan=lifespan,
)

app.include_router(webhook_router)


@app.get("/", response_class=JSONResponse)
async def root() -> dict:
    """API metadata endpoint."""
    return {
        "name": "conversational-session-engine",
        "version": __version__,
        "description": "Conversational session engine for WhatsApp",
    }


@app.get("/health/live", response_class=JSONResponse)
async def liveness() -> dict:
    """Kubernetes liveness probe endpoint."""
    return {"status": "ok"}


@app.get("/health/ready", response_class=JSONResponse)
async def readiness() -> JSONResponse:
    """Kubernetes readiness probe endpoint."""
    if not getattr(app.state, "config_loaded", False):
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "reason": "intent table not loaded"},
        )
    if getattr(app.state, "dispatcher", None) is None:
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "reason": "dispatcher not initialized"},
        )
    return JSONResponse(content={"status": "ok"})


@app.post("/admin/reload-config", response_class=JSONResponse)
async def reload_config() -> JSONResponse:
    """Manually trigger an intent table reload."""
    config_reloader = getattr(app.state, "config_reloader", None)

    if config_reloader is None:
        # Hot reload not enabled, use a one-off reloader
        temp_reloader = ConfigReloader(app=app, config_path=settings.config_path)
        success = temp_reloader.reload()
    else:
        success = config_reloader.reload()

    if not success:
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": "Failed to reload intent table. Check logs for details.",
            },
        )

    intents_config = getattr(app.state, "intents_config", None)
    return JSONResponse(
        content={
            "status": "ok",
            "message": "Intent table reloaded successfully",
            "intent_count": len(intents_config.intents) if intents_config else 0,
            "reload_count": config_reloader.reload_count if config_reloader else 1,
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chatengine.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.value.lower(),
    )
