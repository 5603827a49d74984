"""Core sync engine keeping a local directory mirrored to a remote store."""

import logging
import time
from pathlib import Path
from typing import Callable, Optional, Union

from ..api import RemoteStore
from ..exceptions import (
    SiaAlreadyExistsError,
    SiaConfigError,
    SiaNotFoundError,
    SiaPathError,
    SiaSyncError,
)
from ..models import RemoteObject
from .comparator import FileComparator, SyncAction, SyncDecision
from .events import EventSink, SyncEvent, SyncEventKind, log_event
from .filters import ExtensionFilter
from .fingerprint import fingerprint
from .options import SyncOptions
from .pair import SyncPair
from .scanner import DirectoryScanner, fetch_remote
from .state import IdentifierStateManager
from .watcher import ChangeWatcher, DirectoryWatcher

logger = logging.getLogger(__name__)


class SyncEngine:
    """Keeps one local directory mirrored into a remote prefix.

    Constructing the engine attaches the change watcher to the root (unless
    running sync-only) and then walks the directory, fingerprinting every
    file. ``reconcile`` runs the one-shot pass against the remote listing and
    ``start_watching`` hands the engine to a ChangeWatcher thread.

    The file records and the pending upload set are owned by whichever
    thread drives the engine: the caller until ``start_watching``, the
    watcher loop afterwards.

    Examples:
        >>> client = SiaClient(password="secret")
        >>> with SyncEngine(Path("/data"), client, SyncOptions()) as engine:
        ...     stats = engine.reconcile()
        ...     engine.start_watching()
    """

    def __init__(
        self,
        root: Union[str, Path],
        store: RemoteStore,
        options: Optional[SyncOptions] = None,
        sink: Optional[EventSink] = None,
        state: Optional[IdentifierStateManager] = None,
        watcher: Optional[DirectoryWatcher] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the engine and build the local inventory.

        Args:
            root: Local directory to sync
            store: Remote store client
            options: Sync options (defaults if None)
            sink: Receives every SyncEvent (logged if None)
            state: Persists remote identifiers for stores that return them
            watcher: Filesystem watch primitive (created if None and not sync-only)
            sleep: Used for the retry backoff

        Raises:
            SiaConfigError: If root is not an existing directory
            SiaStateError: If persisted state cannot be used
            OSError: If the directory cannot be walked or watched
        """
        root_path = Path(root).expanduser()
        if not root_path.exists():
            raise SiaConfigError(f"Local directory does not exist: {root}")
        if not root_path.is_dir():
            raise SiaConfigError(f"Local path is not a directory: {root}")

        self.options = options or SyncOptions()
        self.pair = SyncPair(root_path.resolve(), self.options.prefix)
        self.store = store
        self.sink = sink or log_event
        self.state = state
        self.file_filter = ExtensionFilter(
            self.options.include_extensions, self.options.exclude_extensions
        )
        self.comparator = FileComparator(self.pair, self.options, self.file_filter)
        self._sleep = sleep

        self.files: dict[Path, str] = {}
        self._pending: set[Path] = set()
        self.identifiers: dict[str, str] = {}
        self._identifiers_dirty = False
        self._change_watcher: Optional[ChangeWatcher] = None

        logger.debug(f"Sync root {self.root} -> {self.options.prefix}")

        if self.state is not None:
            self.identifiers = self.state.load_identifiers(
                self.root, self.options.prefix
            )

        self.watcher: Optional[DirectoryWatcher] = None
        if not self.options.sync_only:
            self.watcher = watcher if watcher is not None else DirectoryWatcher()

        try:
            # Watch before walking so files created during the walk are seen
            if self.watcher is not None:
                self.watcher.add(self.root)
                self.watcher.start()

            scanner = DirectoryScanner(
                self.options.fingerprint_mode,
                register_directory=self.watcher.add if self.watcher else None,
            )
            self.files = scanner.scan_local(self.root)
        except OSError:
            if self.watcher is not None:
                self.watcher.close()
            raise

        logger.info(f"Found {len(self.files)} local file(s) in {self.root}")

    def __enter__(self) -> "SyncEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def root(self) -> Path:
        """Absolute path of the local sync root."""
        return self.pair.local

    @property
    def pending_uploads(self) -> frozenset[Path]:
        """Local paths whose upload has not been confirmed yet."""
        return frozenset(self._pending)

    def emit(
        self,
        kind: SyncEventKind,
        path: str,
        message: str = "",
        error: Optional[BaseException] = None,
    ) -> None:
        """Report an event to the sink."""
        self.sink(
            SyncEvent(
                kind=kind,
                path=path,
                message=message,
                error=error,
                dry_run=self.options.dry_run,
            )
        )

    # =========================
    # Reconciliation pass
    # =========================

    def _create_empty_stats(self) -> dict:
        """Create an empty statistics dictionary."""
        return {
            "uploads": 0,
            "deletes_remote": 0,
            "updates": 0,
            "skips": 0,
            "failures": 0,
        }

    def _fetch_remote(self) -> dict[str, RemoteObject]:
        """Build the remote inventory for this pass.

        Stores that cannot be listed are represented by the identifiers
        of the files this engine uploaded.
        """
        if self.store.supports_listing:
            return fetch_remote(self.store, self.options.prefix)

        remote: dict[str, RemoteObject] = {}
        for local_path, identifier in self.identifiers.items():
            try:
                remote_path = self.pair.remote_path(Path(local_path))
            except SiaPathError as e:
                logger.warning(f"Ignoring persisted identifier for {local_path}: {e}")
                continue
            remote[remote_path] = RemoteObject(remote_path, identifier=identifier)
        return remote

    def reconcile(self) -> dict:
        """Run the one-shot reconciliation pass.

        Uploads local files missing remotely, deletes remote files missing
        locally (unless in archive mode) and, in size-only mode, re-uploads
        files whose size differs from the remote copy. Failures of single
        files are reported and counted without stopping the pass.

        Returns:
            Dictionary with sync statistics

        Raises:
            SiaAPIError: If the remote inventory cannot be fetched
        """
        stats = self._create_empty_stats()

        remote_files = self._fetch_remote()
        logger.info(
            f"Reconciling {len(self.files)} local and "
            f"{len(remote_files)} remote file(s)"
        )

        decisions = self.comparator.compare_files(self.files, remote_files)
        for decision in decisions:
            self._execute_decision(decision, stats)

        self.flush_state()
        return stats

    def _execute_decision(self, decision: SyncDecision, stats: dict) -> None:
        """Execute a single decision and update stats."""
        path = decision.local_path
        try:
            if decision.action == SyncAction.UPLOAD and path is not None:
                if self.create(path):
                    stats["uploads"] += 1
                else:
                    stats["skips"] += 1
            elif decision.action == SyncAction.DELETE_REMOTE and path is not None:
                self.remove(path)
                stats["deletes_remote"] += 1
            elif (
                decision.action == SyncAction.CHECK_CHANGED
                and path is not None
                and decision.remote_object is not None
            ):
                # Adopt the remote size as baseline, a drifted local file
                # then looks like a write
                self.files[path] = str(decision.remote_object.size)
                if self.handle_write(path):
                    stats["updates"] += 1
            else:
                stats["skips"] += 1
                self.emit(
                    SyncEventKind.SKIPPED,
                    str(path or decision.remote_path),
                    message=decision.reason,
                )
        except (SiaSyncError, OSError) as e:
            stats["failures"] += 1
            self.emit(
                SyncEventKind.FAILED,
                str(path or decision.remote_path),
                message=decision.action.value,
                error=e,
            )

    # =========================
    # Single path primitives
    # =========================

    def create(self, path: Path) -> bool:
        """Upload a local file to its remote destination.

        In dry-run mode only the fingerprint is recorded. A destination
        that already exists remotely is not an error; the fingerprint is
        then only recorded if the file had no record or an unchanged one.

        Returns:
            True if the file was uploaded, False if it already existed

        Raises:
            SiaPathError: If the path is outside the sync root
            SiaAPIError: If the upload fails
            OSError: If the file cannot be read
        """
        destination = self.pair.remote_path(path)
        self._pending.add(path)
        checksum = fingerprint(path, self.options.fingerprint_mode)

        uploaded = True
        if not self.options.dry_run:
            logger.debug(f"Uploading {path} to {destination}")
            try:
                identifier = self.store.upload(
                    path, destination, self.options.redundancy
                )
            except SiaAlreadyExistsError:
                uploaded = False
            else:
                if identifier:
                    self.identifiers[str(path)] = identifier
                    self._identifiers_dirty = True

        recorded = self.files.get(path)
        if uploaded or recorded is None or recorded == checksum:
            self.files[path] = checksum
        else:
            # The remote copy predates this content, keep the old record
            logger.warning(f"Remote copy of {path} is outdated: {destination}")
        self._pending.discard(path)

        if uploaded:
            self.emit(SyncEventKind.UPLOADED, str(path), message=destination)
        else:
            self.emit(
                SyncEventKind.SKIPPED, str(path), message="already exists remotely"
            )
        return uploaded

    def remove(self, path: Path) -> None:
        """Delete the remote copy of a local path.

        The file record is dropped after the deletion (also in dry-run
        mode), or right away if the local file is gone even though the
        remote call failed.

        Raises:
            SiaPathError: If the path is outside the sync root
            SiaAPIError: If the deletion fails
        """
        destination = self.pair.remote_path(path)
        key = str(path)

        if not self.options.dry_run:
            logger.debug(f"Deleting {destination}")
            try:
                self.store.delete(destination, identifier=self.identifiers.get(key))
            except SiaNotFoundError:
                logger.debug(f"Remote file already gone: {destination}")
            except SiaSyncError:
                if not path.exists():
                    self._drop_record(path)
                raise
            if self.identifiers.pop(key, None) is not None:
                self._identifiers_dirty = True

        self.files.pop(path, None)
        if not path.exists():
            self._pending.discard(path)
        self.emit(SyncEventKind.DELETED, str(path), message=destination)

    def handle_write(self, path: Path) -> bool:
        """Re-upload a file if its fingerprint changed.

        Files without a record are ignored, their create event uploads them.
        The update deletes the old remote copy first unless in archive mode.
        The record keeps the old fingerprint until the upload succeeds, so
        if deleting or uploading fails the next write event retries the
        update. Between a successful delete and a failed upload the file is
        missing remotely.

        Returns:
            True if the file changed and was re-uploaded

        Raises:
            SiaAPIError: If deleting or uploading fails
            OSError: If the file cannot be read
        """
        checksum = fingerprint(path, self.options.fingerprint_mode)
        old_checksum = self.files.get(path)
        if old_checksum is None or old_checksum == checksum:
            return False

        self.emit(
            SyncEventKind.CHANGED, str(path), message="change detected, re-uploading"
        )
        try:
            if not self.options.archive:
                self.remove(path)
                self.files[path] = old_checksum
            return self.create(path)
        except (SiaSyncError, OSError):
            if path.exists():
                self.files[path] = old_checksum
            raise

    def forget(self, path: Path) -> None:
        """Drop the record of a removed file, keeping the remote copy."""
        self._drop_record(path)
        self.emit(
            SyncEventKind.SKIPPED, str(path), message="archived, remote copy kept"
        )

    def _drop_record(self, path: Path) -> None:
        self.files.pop(path, None)
        self._pending.discard(path)

    def is_current(self, path: Path) -> bool:
        """Return True if the file is inventoried, uploaded and unchanged."""
        recorded = self.files.get(path)
        if recorded is None or path in self._pending:
            return False
        try:
            return fingerprint(path, self.options.fingerprint_mode) == recorded
        except OSError:
            return False

    def _remote_exists(self, path: Path) -> bool:
        if self.store.supports_listing:
            return self.store.exists(self.pair.remote_path(path))
        return str(path) in self.identifiers

    def upload_retry(self, path: Path) -> bool:
        """Upload a newly created file, retrying once.

        After a failed attempt, waits ``options.retry_delay`` seconds,
        removes a stale remote copy (unless in archive mode) and tries a
        second and last time. A file failing twice is abandoned.

        Returns:
            True if one of the attempts succeeded
        """
        try:
            self.create(path)
            return True
        except (SiaSyncError, OSError) as e:
            self.emit(
                SyncEventKind.RETRYING,
                str(path),
                message=f"retrying in {self.options.retry_delay:g}s",
                error=e,
            )

        self._sleep(self.options.retry_delay)

        try:
            exists = self._remote_exists(path)
        except SiaSyncError as e:
            logger.warning(f"Could not check remote copy of {path}: {e}")
            exists = False

        if exists and not self.options.archive:
            try:
                self.remove(path)
            except SiaSyncError as e:
                logger.warning(f"Could not remove stale remote copy of {path}: {e}")

        try:
            self.create(path)
            return True
        except (SiaSyncError, OSError) as e:
            self._pending.discard(path)
            self.emit(SyncEventKind.ABANDONED, str(path), error=e)
            return False

    # =========================
    # Lifecycle
    # =========================

    def flush_state(self) -> None:
        """Persist remote identifiers if they changed."""
        if self.state is None or not self._identifiers_dirty:
            return
        try:
            self.state.save_identifiers(
                self.root, self.options.prefix, self.identifiers
            )
            self._identifiers_dirty = False
        except OSError as e:
            logger.warning(f"Failed to save sync state: {e}")

    def start_watching(self) -> ChangeWatcher:
        """Start applying filesystem events in a background thread.

        Raises:
            SiaConfigError: If the engine runs in sync-only mode
        """
        if self.watcher is None:
            raise SiaConfigError("Watching is disabled in sync-only mode")
        if self._change_watcher is None:
            self._change_watcher = ChangeWatcher(self, self.watcher)
            self._change_watcher.start()
        return self._change_watcher

    def run(self) -> dict:
        """Reconcile once, then keep watching unless sync-only."""
        stats = self.reconcile()
        if not self.options.sync_only:
            self.start_watching()
        return stats

    def close(self) -> None:
        """Stop watching and persist state."""
        if self._change_watcher is not None:
            self._change_watcher.close()
        elif self.watcher is not None:
            self.watcher.close()
        self.flush_state()
