"""Structured events emitted by the sync engine and watcher."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SyncEventKind(str, Enum):
    """What happened to a path."""

    UPLOADED = "uploaded"
    DELETED = "deleted"
    CHANGED = "changed"
    SKIPPED = "skipped"
    RETRYING = "retrying"
    FAILED = "failed"
    ABANDONED = "abandoned"
    DIRECTORY_WATCHED = "directory_watched"
    WATCH_ERROR = "watch_error"


@dataclass(frozen=True)
class SyncEvent:
    """A single observable step of the sync engine."""

    kind: SyncEventKind
    path: str
    """Local or remote path the event is about"""

    message: str = ""
    error: Optional[BaseException] = None
    dry_run: bool = False


EventSink = Callable[[SyncEvent], None]

_LEVELS = {
    SyncEventKind.UPLOADED: logging.INFO,
    SyncEventKind.DELETED: logging.INFO,
    SyncEventKind.CHANGED: logging.INFO,
    SyncEventKind.SKIPPED: logging.DEBUG,
    SyncEventKind.RETRYING: logging.WARNING,
    SyncEventKind.FAILED: logging.ERROR,
    SyncEventKind.ABANDONED: logging.ERROR,
    SyncEventKind.DIRECTORY_WATCHED: logging.DEBUG,
    SyncEventKind.WATCH_ERROR: logging.ERROR,
}


def log_event(event: SyncEvent) -> None:
    """Default sink, writes events to the module logger."""
    parts = [event.kind.value, event.path]
    if event.dry_run:
        parts.insert(0, "(dry run)")
    if event.message:
        parts.append(f"- {event.message}")
    if event.error is not None:
        parts.append(f": {event.error}")
    logger.log(_LEVELS.get(event.kind, logging.INFO), " ".join(parts))


class EventRecorder:
    """Sink that keeps every event, optionally forwarding to another sink."""

    def __init__(self, forward: Optional[EventSink] = None):
        self.events: list[SyncEvent] = []
        self.forward = forward

    def __call__(self, event: SyncEvent) -> None:
        self.events.append(event)
        if self.forward is not None:
            self.forward(event)

    def of_kind(self, kind: SyncEventKind) -> list[SyncEvent]:
        """Return recorded events of one kind."""
        return [e for e in self.events if e.kind == kind]
