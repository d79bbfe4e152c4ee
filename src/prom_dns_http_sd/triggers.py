"""Refresh triggers: a fixed interval timer and a config file watcher."""

from __future__ import annotations

import logging
import os
import threading
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .engine import RefreshEngine
from .errors import ClientError, ConfigError

logger = logging.getLogger(__name__)


# =============================================================================
# Interval Trigger
# =============================================================================


class IntervalTrigger:
    """Loads the config once, then recomputes targets every `interval` seconds."""

    def __init__(self, engine: RefreshEngine, interval: float):
        self.engine = engine
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run(self) -> None:
        try:
            self.engine.reconfigure()
        except (ConfigError, ClientError) as e:
            logger.error(f"Failed to update config and client: {e}")

        self._tick()
        while not self._stop.wait(self.interval):
            self._tick()

    def _tick(self) -> None:
        try:
            self.engine.recompute()
        except Exception as e:
            logger.error(f"Targets update failed: {e}", exc_info=True)

    def start(self) -> None:
        self._thread = threading.Thread(target=self.run, name="interval-trigger", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)


# =============================================================================
# Config File Trigger
# =============================================================================


class _ConfigFileHandler(FileSystemEventHandler):
    """Reconfigures the engine when the watched config file is written."""

    def __init__(self, trigger: "ConfigFileTrigger"):
        self._trigger = trigger

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._trigger.handle_change(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._trigger.handle_change(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Editors and ConfigMap updates replace the file by renaming over it.
        if not event.is_directory:
            self._trigger.handle_change(event.dest_path)


class ConfigFileTrigger:
    """Watches the config file and reconfigures the engine on change.

    The parent directory is watched so that files replaced by rename are
    still picked up. Failures are logged and never propagated.
    """

    def __init__(self, engine: RefreshEngine, *, recompute_on_change: bool = False):
        self.engine = engine
        self.path = os.path.abspath(engine.config_path)
        self.recompute_on_change = recompute_on_change
        self._observer: Optional[Observer] = None

    def matches(self, path: str) -> bool:
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        return os.path.abspath(path) == self.path

    def handle_change(self, path: str) -> None:
        if not self.matches(path):
            return

        logger.info(f"Config file modified: {self.path}")
        try:
            if self.recompute_on_change:
                self.engine.reload()
            else:
                self.engine.reconfigure()
        except (ConfigError, ClientError) as e:
            logger.error(f"Failed to update config and client: {e}")
            logger.warning("Continuing with previous configuration")

    def start(self) -> bool:
        """Start watching. Returns False when file events are unavailable."""
        observer = Observer()
        observer.schedule(_ConfigFileHandler(self), path=os.path.dirname(self.path), recursive=False)
        try:
            observer.start()
        except OSError as e:
            logger.warning(
                f"Config file watching unavailable ({e}); relying on interval refresh only"
            )
            return False

        self._observer = observer
        logger.info(f"Config watch: enabled for {self.path}")
        return True

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
