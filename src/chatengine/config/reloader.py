"""Intent table hot-reload orchestrator.

Reloads the intent table from disk and swaps the dispatcher's classifier
to the new immutable configuration.
"""

import logging
import threading
from typing import TYPE_CHECKING

from chatengine.config.intents import (
    ConfigLoadError,
    clear_intents_config_cache,
    load_intents_config,
)
from chatengine.config.watcher import ConfigWatcher

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("chatengine.audit")


class ConfigReloader:
    """Orchestrates hot-reloading of the intent table.

    A reload clears the config cache, loads and validates the new table,
    then replaces the reference held by app.state and the dispatcher.
    A failed load leaves the running configuration untouched.

    Thread-safe: uses a lock to prevent concurrent reloads.
    """

    def __init__(
        self,
        app: "FastAPI",
        config_path: str,
        debounce_seconds: float = 1.0,
    ) -> None:
        """Initialize the config reloader.

        Args:
            app: The FastAPI application instance.
            config_path: Path to the intent table to watch.
            debounce_seconds: Minimum time between reload triggers.
        """
        self._app = app
        self._config_path = config_path
        self._debounce_seconds = debounce_seconds
        self._watcher: ConfigWatcher | None = None
        self._reload_lock = threading.Lock()
        self._reload_count = 0

    def start(self) -> None:
        """Start watching the intent table for changes."""
        if self._watcher is not None:
            logger.warning("Config reloader already started")
            return

        self._watcher = ConfigWatcher(
            config_path=self._config_path,
            on_change=self._on_config_change,
            debounce_seconds=self._debounce_seconds,
        )
        self._watcher.start()
        logger.info("Intent table hot-reload enabled")

    def stop(self) -> None:
        """Stop watching the intent table."""
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
            logger.info("Intent table hot-reload disabled")

    def reload(self) -> bool:
        """Manually trigger a reload.

        Returns:
            True if reload succeeded, False otherwise.
        """
        return self._on_config_change()

    def _on_config_change(self) -> bool:
        if not self._reload_lock.acquire(blocking=False):
            logger.info("Intent table reload already in progress, skipping")
            return False

        try:
            return self._perform_reload()
        finally:
            self._reload_lock.release()

    def _perform_reload(self) -> bool:
        logger.info("Reloading intent table from %s", self._config_path)
        clear_intents_config_cache()

        try:
            new_config = load_intents_config(self._config_path)
        except ConfigLoadError as e:
            logger.error("Failed to load new intent table: %s", e)
            audit_logger.error(
                '{"event": "config_reload_failed", "reason": "load_error", "error": "%s"}',
                str(e)[:200],
            )
            return False

        dispatcher = getattr(self._app.state, "dispatcher", None)
        if dispatcher is not None:
            dispatcher.update_config(new_config)

        self._app.state.intents_config = new_config
        self._app.state.config_loaded = True
        self._reload_count += 1

        logger.info(
            "Intent table reloaded (reload #%d): %d intents, %d menu entries",
            self._reload_count,
            len(new_config.intents),
            len(new_config.menu),
        )
        audit_logger.info(
            '{"event": "config_reload_success", "reload_count": %d, "intent_count": %d}',
            self._reload_count,
            len(new_config.intents),
        )
        return True

    @property
    def reload_count(self) -> int:
        """Get the number of successful reloads."""
        return self._reload_count

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._watcher is not None and self._watcher.is_running
