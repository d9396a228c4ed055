from __future__ import annotations

import enum
import logging
import threading
from pathlib import Path
from typing import Callable, Iterable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.15


class SchedulerState(enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    REBUILDING = "rebuilding"


class RebuildScheduler:
    """Coalesce bursts of change notifications into single, non-overlapping rebuilds."""

    def __init__(self, build: Callable[[], object], debounce: float = DEBOUNCE_SECONDS):
        self.build = build
        self.debounce = debounce
        self.state = SchedulerState.IDLE
        self.dropped = 0
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()
        self._closed = False

    def notify(self, reason: str) -> None:
        with self._lock:
            if self._closed:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce, self._fire, args=(reason,))
            self._timer.daemon = True
            if self.state is SchedulerState.IDLE:
                self.state = SchedulerState.PENDING
            self._timer.start()

    def _fire(self, reason: str) -> None:
        with self._lock:
            # A newer notification re-armed the timer after this one started.
            if threading.current_thread() is not self._timer:
                return
            self._timer = None
            if self.state is SchedulerState.REBUILDING:
                self.dropped += 1
                logger.debug("[preview] rebuild in flight, dropping trigger from %s", reason)
                return
            self.state = SchedulerState.REBUILDING
        try:
            self.build()
            logger.info("[preview] rebuilt due to %s", reason)
        except Exception:
            logger.exception("[preview] rebuild failed")
        finally:
            with self._lock:
                self.state = SchedulerState.IDLE

    def close(self) -> None:
        with self._lock:
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class RebuildHandler(FileSystemEventHandler):
    def __init__(self, scheduler: RebuildScheduler, target: Path, only: str | None = None):
        super().__init__()
        self.scheduler = scheduler
        self.target = target
        self.only = only

    def matches(self, event: FileSystemEvent) -> bool:
        if self.only is None:
            return True
        paths = [event.src_path, getattr(event, "dest_path", "")]
        return any(path and Path(str(path)).name == self.only for path in paths)

    def trigger(self, event: FileSystemEvent) -> None:
        if not self.matches(event):
            return
        if self.only is not None:
            reason = self.only
        else:
            try:
                reason = f"{self.target.name}/{Path(str(event.src_path)).relative_to(self.target).as_posix()}"
            except ValueError:
                reason = self.target.name
        self.scheduler.notify(reason)

    # Opened/closed events fire on every read the build itself performs, so only writes count.
    def on_created(self, event: FileSystemEvent) -> None:
        self.trigger(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self.trigger(event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self.trigger(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        self.trigger(event)


def watch_targets(scheduler: RebuildScheduler, targets: Iterable[Path]) -> Observer:
    observer = Observer()
    observer.start()
    for target in targets:
        try:
            if target.is_dir():
                observer.schedule(RebuildHandler(scheduler, target), str(target), recursive=True)
            else:
                handler = RebuildHandler(scheduler, target, only=target.name)
                observer.schedule(handler, str(target.parent), recursive=False)
        except OSError as exc:
            logger.warning("[preview] cannot watch %s: %s", target, exc)
            continue
        logger.info("[preview] watching %s", target)
    return observer
