"""Local and remote inventories for sync operations."""

import logging
from pathlib import Path
from typing import Callable, Optional

from ..api import RemoteStore
from ..exceptions import SiaNotFoundError
from ..models import RemoteObject
from ..utils import REMOTE_SEPARATOR
from .fingerprint import fingerprint
from .options import FingerprintMode

logger = logging.getLogger(__name__)


class DirectoryScanner:
    """Scans a directory tree and fingerprints every file in it.

    Examples:
        >>> scanner = DirectoryScanner(FingerprintMode.SIZE)
        >>> files = scanner.scan_local(Path("/sync/folder"))
        >>> files[Path("/sync/folder/a.txt")]
        '1024'
    """

    def __init__(
        self,
        mode: FingerprintMode = FingerprintMode.CONTENT,
        register_directory: Optional[Callable[[Path], None]] = None,
    ):
        """Initialize directory scanner.

        Args:
            mode: How files are fingerprinted
            register_directory: Called with every directory below the root,
                used to attach the change watcher (None in sync-only mode)
        """
        self.mode = mode
        self.register_directory = register_directory

    def scan_local(self, directory: Path) -> dict[Path, str]:
        """Recursively scan a local directory.

        Unlike a best-effort listing, an unreadable directory or file
        aborts the scan: a silently truncated inventory would cause
        remote files to be deleted. Files that disappear between being
        listed and being read are skipped.

        Args:
            directory: Directory to scan

        Returns:
            Mapping of absolute file path to fingerprint

        Raises:
            OSError: If a directory or file cannot be read
        """
        files: dict[Path, str] = {}

        for item in sorted(directory.iterdir()):
            if item.is_dir() and not item.is_symlink():
                if self.register_directory is not None:
                    logger.debug(f"Found sub directory, adding to watcher: {item}")
                    self.register_directory(item)
                files.update(self.scan_local(item))
            elif item.is_file():
                logger.debug(f"Calculating fingerprint for file: {item}")
                try:
                    files[item] = fingerprint(item, self.mode)
                except FileNotFoundError:
                    # Deleted while scanning
                    logger.debug(f"File vanished during scan: {item}")

        return files


def fetch_remote(store: RemoteStore, prefix: str) -> dict[str, RemoteObject]:
    """Fetch the remote inventory below a prefix.

    Entries outside ``prefix/`` are dropped even if the store returns
    them, e.g. ``siasync2/a.txt`` for the prefix ``siasync``.

    Args:
        store: Remote store to list
        prefix: Remote folder managed by the engine

    Returns:
        Mapping of remote path to RemoteObject (empty if the prefix has
        never been used)

    Raises:
        SiaAPIError: If listing fails for any other reason
    """
    try:
        objects = store.list(prefix)
    except SiaNotFoundError:
        logger.debug(f"Remote prefix {prefix} does not exist yet")
        return {}

    boundary = prefix + REMOTE_SEPARATOR
    remote: dict[str, RemoteObject] = {}
    for obj in objects:
        if not obj.remote_path.startswith(boundary):
            logger.debug(f"Ignoring remote file outside prefix: {obj.remote_path}")
            continue
        remote[obj.remote_path] = obj
    return remote
