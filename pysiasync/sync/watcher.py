"""Continuous watching of a sync folder.

Filesystem events are collected by a watchdog observer into a queue and
consumed by a single loop thread, so events for one folder are handled
strictly one at a time and in arrival order.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..exceptions import SiaSyncError
from .events import SyncEventKind

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver, ObservedWatch

    from .engine import SyncEngine

logger = logging.getLogger(__name__)

# Queue item asking the loop to stop
_CLOSE = object()


class EventKind(str, Enum):
    """Filesystem changes the engine reacts to."""

    CREATE = "create"
    WRITE = "write"
    REMOVE = "remove"


@dataclass(frozen=True)
class WatchEvent:
    """A filesystem change below the sync root."""

    kind: EventKind
    path: Path
    is_directory: bool = False


class _QueueingHandler(FileSystemEventHandler):
    """Translates watchdog events into WatchEvents on a queue."""

    def __init__(self, events: queue.Queue):
        super().__init__()
        self._events = events

    def dispatch(self, event: FileSystemEvent) -> None:
        try:
            super().dispatch(event)
        except Exception as e:
            # Runs on the observer thread, hand the fault to the loop
            self._events.put(e)

    def _put(self, kind: EventKind, path: Union[str, bytes], is_directory: bool) -> None:
        self._events.put(WatchEvent(kind, Path(os.fsdecode(path)), is_directory))

    def on_created(self, event: FileSystemEvent) -> None:
        self._put(EventKind.CREATE, event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        # Directory mtime changes carry no information of their own
        if not event.is_directory:
            self._put(EventKind.WRITE, event.src_path, False)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._put(EventKind.REMOVE, event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._put(EventKind.REMOVE, event.src_path, event.is_directory)
        self._put(EventKind.CREATE, event.dest_path, event.is_directory)


class DirectoryWatcher:
    """Filesystem watch primitive backed by a watchdog observer.

    Directories are registered one by one with ``add`` while the observer
    runs. Watches are recursive, so a directory below an already scheduled
    one is only recorded; this keeps one observer thread per sync root
    instead of one per directory.
    """

    def __init__(self, observer: Optional[BaseObserver] = None):
        """Initialize the watcher.

        Args:
            observer: watchdog observer to use (a platform default if None)
        """
        self._observer = observer if observer is not None else Observer()
        self._events: queue.Queue = queue.Queue()
        self._handler = _QueueingHandler(self._events)
        self._watched: set[Path] = set()
        self._scheduled: dict[Path, ObservedWatch] = {}
        self._lock = threading.Lock()
        self._started = False
        self.closed = False

    def is_watching(self, path: Path) -> bool:
        """Return True if the directory has been registered."""
        with self._lock:
            return path in self._watched

    def add(self, path: Path) -> bool:
        """Register a directory.

        Returns:
            True if the directory was not registered before

        Raises:
            OSError: If the backend cannot watch the directory
        """
        with self._lock:
            if path in self._watched:
                return False
            covered = any(root in path.parents for root in self._scheduled)
            if not covered:
                logger.debug(f"Scheduling watch for directory: {path}")
                self._scheduled[path] = self._observer.schedule(
                    self._handler, str(path), recursive=True
                )
            self._watched.add(path)
            return True

    def discard(self, path: Path) -> None:
        """Forget a directory and everything registered below it."""
        with self._lock:
            self._watched = {
                p for p in self._watched if p != path and path not in p.parents
            }
            watch = self._scheduled.pop(path, None)
        if watch is not None:
            try:
                self._observer.unschedule(watch)
            except KeyError:
                logger.debug(f"Watch for {path} was already removed")

    def start(self) -> None:
        """Start delivering events."""
        if not self._started:
            self._observer.start()
            self._started = True

    def put(self, item: Any) -> None:
        """Queue an item for the consumer (events, faults or the close marker)."""
        self._events.put(item)

    def get(self, timeout: Optional[float] = None) -> Any:
        """Block until the next queued item is available."""
        return self._events.get(timeout=timeout)

    def close(self) -> None:
        """Stop the observer and release its watches."""
        if self.closed:
            return
        self.closed = True
        if self._started:
            self._observer.stop()
            self._observer.join()


class ChangeWatcher:
    """Applies filesystem events to a sync engine.

    The loop runs in its own thread and is the only code touching the
    engine's file records once watching has started. It is either
    watching or closed; closing is cooperative, a request to the remote
    store in flight is allowed to finish.
    """

    def __init__(self, engine: SyncEngine, watcher: DirectoryWatcher):
        self.engine = engine
        self.watcher = watcher
        self._closing = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def closed(self) -> bool:
        return self.watcher.closed

    def start(self) -> None:
        """Run the event loop in a background thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self.run, name="pysiasync-watcher", daemon=True
        )
        self._thread.start()

    def run(self) -> None:
        """Consume queued events until closed."""
        logger.info(f"Watching for changes to {self.engine.root}")
        while not self._closing.is_set():
            item = self.watcher.get()
            if item is _CLOSE or self._closing.is_set():
                break
            if isinstance(item, BaseException):
                # Backend faults never stop the loop
                self.engine.emit(
                    SyncEventKind.WATCH_ERROR, str(self.engine.root), error=item
                )
                continue
            self.handle_event(item)
        self.watcher.close()
        logger.debug("Change watcher closed")

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop the loop and close the watch handle."""
        self._closing.set()
        if self._thread is None or not self._thread.is_alive():
            self.watcher.close()
            return
        self.watcher.put(_CLOSE)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    def handle_event(self, event: WatchEvent) -> None:
        """Apply a single event, reporting failures instead of raising."""
        try:
            self._dispatch(event)
        except (SiaSyncError, OSError) as e:
            self.engine.emit(
                SyncEventKind.FAILED,
                str(event.path),
                message=f"{event.kind.value} event",
                error=e,
            )
        finally:
            self.engine.flush_state()

    def _dispatch(self, event: WatchEvent) -> None:
        path = event.path
        engine = self.engine

        if event.kind == EventKind.REMOVE and (
            event.is_directory or self.watcher.is_watching(path)
        ):
            self.watcher.discard(path)
            return

        if path.is_dir():
            self._register_tree(path)
            return

        if not engine.file_filter.eligible(path):
            return

        if event.kind == EventKind.WRITE:
            engine.handle_write(path)
        elif event.kind == EventKind.REMOVE:
            if engine.options.archive:
                engine.forget(path)
            else:
                logger.info(f"File removal detected, removing file: {path}")
                engine.remove(path)
        elif event.kind == EventKind.CREATE:
            self._handle_create(path)

    def _handle_create(self, path: Path) -> None:
        engine = self.engine
        if engine.is_current(path):
            logger.debug(f"Ignoring create event for inventoried file: {path}")
        elif path in engine.files:
            # Replaced in place, e.g. renamed over by an atomic save
            logger.info(f"File replacement detected, updating file: {path}")
            engine.handle_write(path)
        else:
            logger.info(f"File creation detected, uploading file: {path}")
            engine.upload_retry(path)

    def _register_tree(self, directory: Path) -> None:
        """Watch a new directory and pick up files already inside it."""
        try:
            if not self.watcher.add(directory):
                return
        except OSError as e:
            self.engine.emit(SyncEventKind.WATCH_ERROR, str(directory), error=e)
            return
        self.engine.emit(SyncEventKind.DIRECTORY_WATCHED, str(directory))

        for item in sorted(directory.iterdir()):
            if item.is_dir() and not item.is_symlink():
                self._register_tree(item)
            elif item.is_file() and self.engine.file_filter.eligible(item):
                self._handle_create(item)
