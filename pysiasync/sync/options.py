"""Immutable options controlling a sync folder."""

from dataclasses import dataclass, field
from enum import Enum

from ..models import Redundancy
from ..utils import (
    DEFAULT_DATA_PIECES,
    DEFAULT_PARITY_PIECES,
    DEFAULT_PREFIX,
    DEFAULT_RETRY_DELAY,
    validate_remote_path,
)


class FingerprintMode(str, Enum):
    """How local files are fingerprinted for change detection."""

    CONTENT = "content"
    """SHA-256 digest of the file contents"""

    SIZE = "size"
    """File size in bytes (comparable against remote listings)"""


@dataclass(frozen=True)
class SyncOptions:
    """Configuration of one sync folder.

    Created once at startup and passed to every component, nothing reads
    process-wide settings after construction.

    Examples:
        >>> options = SyncOptions(prefix="/backup/", archive=True)
        >>> options.prefix
        'backup'
        >>> options.should_remove_orphaned
        False
    """

    prefix: str = DEFAULT_PREFIX
    """Remote folder the local root is mirrored into"""

    archive: bool = False
    """Never delete remote files because local files were removed"""

    include_extensions: frozenset[str] = field(default_factory=frozenset)
    """Only sync files with these extensions (takes precedence over exclude)"""

    exclude_extensions: frozenset[str] = field(default_factory=frozenset)
    """Skip files with these extensions"""

    fingerprint_mode: FingerprintMode = FingerprintMode.CONTENT

    sync_only: bool = False
    """Run the initial reconciliation only, without watching for changes"""

    dry_run: bool = False
    """Record what would be done without calling the remote store"""

    redundancy: Redundancy = Redundancy(DEFAULT_DATA_PIECES, DEFAULT_PARITY_PIECES)

    retry_delay: float = DEFAULT_RETRY_DELAY
    """Seconds to wait before the second upload attempt of a create event"""

    upload_missing: bool = True
    remove_orphaned: bool = True
    update_changed: bool = True

    def __post_init__(self) -> None:
        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "prefix", validate_remote_path(self.prefix))
        object.__setattr__(
            self, "include_extensions", frozenset(self.include_extensions)
        )
        object.__setattr__(
            self, "exclude_extensions", frozenset(self.exclude_extensions)
        )
        if isinstance(self.fingerprint_mode, str):
            object.__setattr__(
                self, "fingerprint_mode", FingerprintMode(self.fingerprint_mode)
            )
        if self.retry_delay < 0:
            raise ValueError("retry_delay cannot be negative")

    @property
    def size_only(self) -> bool:
        """Whether files are compared by size instead of content."""
        return self.fingerprint_mode == FingerprintMode.SIZE

    @property
    def should_remove_orphaned(self) -> bool:
        """Whether the reconciliation pass deletes remote-only files."""
        return self.remove_orphaned and not self.archive

    @property
    def should_update_changed(self) -> bool:
        """Whether the reconciliation pass re-uploads changed files.

        Only size fingerprints can be compared against a remote listing.
        """
        return self.update_changed and self.size_only
