"""File watcher that reloads the intent table when it changes on disk.

Events are coalesced with a trailing debounce: every matching event restarts
the timer, and the callback fires once the file has been quiet for the
debounce period. Editors that write via temp file and rename, and volume
mounts that swap a symlink, both produce bursts that collapse to one reload.
"""

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class IntentTableEventHandler(FileSystemEventHandler):
    """Debounces filesystem events that touch the intent table."""

    def __init__(
        self,
        config_path: Path,
        on_change: Callable[[], object],
        debounce_seconds: float = 1.0,
    ) -> None:
        super().__init__()
        self._config_path = config_path.resolve()
        self._on_change = on_change
        self._debounce_seconds = debounce_seconds
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    def matches(self, event: FileSystemEvent) -> bool:
        """Check whether an event concerns the watched file.

        Symlink-swapped mounts surface as events on ``..data`` entries, so
        those count as long as the target file still exists.
        """
        if event.is_directory:
            return False

        paths = [event.src_path, getattr(event, "dest_path", "") or ""]
        for raw in paths:
            if not raw:
                continue
            path = Path(raw)
            if path.name == self._config_path.name:
                return True
            if path.name.startswith("..") and self._config_path.exists():
                return True
        return False

    def schedule(self) -> None:
        """Restart the debounce timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._debounce_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        logger.info("Intent table change detected, reloading")
        try:
            self._on_change()
        except Exception:
            logger.exception("Intent table reload callback failed")

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle created, modified and moved events for the table."""
        if event.event_type not in ("created", "modified", "moved"):
            return
        if self.matches(event):
            logger.debug("Intent table %s event: %s", event.event_type, event.src_path)
            self.schedule()

    @property
    def pending(self) -> bool:
        """Whether a reload is scheduled but has not fired yet."""
        with self._lock:
            return self._timer is not None

    def cancel_pending(self) -> None:
        """Cancel a scheduled reload."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class ConfigWatcher:
    """Runs a watchdog observer on the intent table's directory."""

    def __init__(
        self,
        config_path: str | Path,
        on_change: Callable[[], object],
        debounce_seconds: float = 1.0,
    ) -> None:
        self._config_path = Path(config_path).resolve()
        self._on_change = on_change
        self._debounce_seconds = debounce_seconds
        self._observer: Observer | None = None
        self._handler: IntentTableEventHandler | None = None

    def start(self) -> None:
        """Start the observer. Does nothing if the directory is missing."""
        if self._observer is not None:
            logger.warning("Config watcher already started")
            return

        watch_dir = self._config_path.parent
        if not watch_dir.exists():
            logger.warning("Config directory does not exist, watcher not started: %s", watch_dir)
            return

        self._handler = IntentTableEventHandler(
            config_path=self._config_path,
            on_change=self._on_change,
            debounce_seconds=self._debounce_seconds,
        )
        self._observer = Observer()
        self._observer.schedule(self._handler, str(watch_dir), recursive=True)
        self._observer.start()
        logger.info(
            "Watching intent table %s (debounce %.1fs)",
            self._config_path,
            self._debounce_seconds,
        )

    def stop(self) -> None:
        """Stop the observer and drop any scheduled reload."""
        if self._handler is not None:
            self._handler.cancel_pending()
            self._handler = None

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
            logger.info("Config watcher stopped")

    @property
    def is_running(self) -> bool:
        """Check if the observer thread is alive."""
        return self._observer is not None and self._observer.is_alive()
