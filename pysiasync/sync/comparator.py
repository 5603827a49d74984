"""Comparison of local and remote inventories."""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from ..exceptions import SiaPathError
from ..models import RemoteObject
from .filters import ExtensionFilter
from .options import SyncOptions
from .pair import SyncPair

logger = logging.getLogger(__name__)


class SyncAction(str, Enum):
    """Actions that can be taken during reconciliation."""

    UPLOAD = "upload"
    """Upload a local file missing from the remote prefix"""

    DELETE_REMOTE = "delete_remote"
    """Delete a remote file whose local file is gone"""

    CHECK_CHANGED = "check_changed"
    """Compare a local file against the remote size and re-upload if it drifted"""

    SKIP = "skip"
    """Path cannot be mapped between local and remote"""


@dataclass
class SyncDecision:
    """Represents a decision about how to sync a file."""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    local_path: Optional[Path]
    """Absolute local path (if it can be mapped)"""

    remote_path: Optional[str]
    """Remote path (if it can be mapped)"""

    remote_object: Optional[RemoteObject] = None
    """Remote listing entry (if the file exists remotely)"""


class FileComparator:
    """Turns a local and a remote inventory into ordered sync decisions.

    Decisions come in three stages, always in this order: uploads of
    missing files, deletions of orphaned remote files (not in archive
    mode) and size checks of files present on both sides (size-only mode).
    Files rejected by the extension filter never produce a decision.
    """

    def __init__(
        self,
        pair: SyncPair,
        options: SyncOptions,
        file_filter: ExtensionFilter,
    ):
        self.pair = pair
        self.options = options
        self.file_filter = file_filter

    def compare_files(
        self,
        local_files: dict[Path, str],
        remote_files: dict[str, RemoteObject],
    ) -> list[SyncDecision]:
        """Compare local and remote files and determine sync actions.

        Args:
            local_files: Mapping of absolute local path to fingerprint
            remote_files: Mapping of remote path to RemoteObject

        Returns:
            List of SyncDecision objects in execution order
        """
        decisions: list[SyncDecision] = []

        if self.options.upload_missing:
            decisions.extend(self._missing_remotely(local_files, remote_files))

        if self.options.should_remove_orphaned:
            decisions.extend(self._missing_locally(local_files, remote_files))

        if self.options.should_update_changed:
            decisions.extend(self._present_on_both(local_files, remote_files))

        return decisions

    def _map_local(self, path: Path) -> tuple[Optional[str], Optional[SyncDecision]]:
        try:
            return self.pair.remote_path(path), None
        except SiaPathError as e:
            logger.warning(f"Cannot map local path {path}: {e}")
            return None, SyncDecision(
                action=SyncAction.SKIP,
                reason=str(e),
                local_path=path,
                remote_path=None,
            )

    def _missing_remotely(
        self,
        local_files: dict[Path, str],
        remote_files: dict[str, RemoteObject],
    ) -> list[SyncDecision]:
        decisions = []
        for path in sorted(local_files):
            if not self.file_filter.eligible(path):
                continue
            remote_path, skip = self._map_local(path)
            if skip is not None:
                decisions.append(skip)
                continue
            if remote_path not in remote_files:
                decisions.append(
                    SyncDecision(
                        action=SyncAction.UPLOAD,
                        reason="New local file",
                        local_path=path,
                        remote_path=remote_path,
                    )
                )
        return decisions

    def _missing_locally(
        self,
        local_files: dict[Path, str],
        remote_files: dict[str, RemoteObject],
    ) -> list[SyncDecision]:
        decisions = []
        for remote_path in sorted(remote_files):
            if not self.file_filter.eligible(remote_path):
                continue
            try:
                local_path = self.pair.local_path(remote_path)
            except SiaPathError as e:
                logger.warning(f"Cannot map remote path {remote_path}: {e}")
                decisions.append(
                    SyncDecision(
                        action=SyncAction.SKIP,
                        reason=str(e),
                        local_path=None,
                        remote_path=remote_path,
                        remote_object=remote_files[remote_path],
                    )
                )
                continue
            if local_path not in local_files:
                decisions.append(
                    SyncDecision(
                        action=SyncAction.DELETE_REMOTE,
                        reason="File deleted locally",
                        local_path=local_path,
                        remote_path=remote_path,
                        remote_object=remote_files[remote_path],
                    )
                )
        return decisions

    def _present_on_both(
        self,
        local_files: dict[Path, str],
        remote_files: dict[str, RemoteObject],
    ) -> list[SyncDecision]:
        decisions = []
        for path in sorted(local_files):
            if not self.file_filter.eligible(path):
                continue
            remote_path, skip = self._map_local(path)
            if skip is not None:
                # Unmappable paths are reported by the upload stage
                continue
            remote_object = remote_files.get(remote_path)
            if remote_object is None or remote_object.size is None:
                continue
            decisions.append(
                SyncDecision(
                    action=SyncAction.CHECK_CHANGED,
                    reason=f"Remote size is {remote_object.size}",
                    local_path=path,
                    remote_path=remote_path,
                    remote_object=remote_object,
                )
            )
        return decisions
