"""Sync engine for pysiasync - mirrors a local folder into a remote store."""

from .comparator import FileComparator, SyncAction, SyncDecision
from .engine import SyncEngine
from .events import EventRecorder, EventSink, SyncEvent, SyncEventKind, log_event
from .filters import ExtensionFilter, parse_extensions
from .fingerprint import fingerprint, sha256_file
from .options import FingerprintMode, SyncOptions
from .pair import SyncPair
from .scanner import DirectoryScanner, fetch_remote
from .state import IdentifierStateManager
from .watcher import ChangeWatcher, DirectoryWatcher, EventKind, WatchEvent

__all__ = [
    "SyncEngine",
    "SyncOptions",
    "SyncPair",
    "FingerprintMode",
    "FileComparator",
    "SyncAction",
    "SyncDecision",
    "DirectoryScanner",
    "fetch_remote",
    "ExtensionFilter",
    "parse_extensions",
    "fingerprint",
    "sha256_file",
    "SyncEvent",
    "SyncEventKind",
    "EventSink",
    "EventRecorder",
    "log_event",
    "IdentifierStateManager",
    "ChangeWatcher",
    "DirectoryWatcher",
    "EventKind",
    "WatchEvent",
]
