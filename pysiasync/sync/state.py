"""Persistence of remote identifiers across restarts.

Stores that return an opaque identifier per upload (Skynet) cannot be
listed by path, so the identifier of every uploaded file is kept on disk
and reloaded at startup.
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Optional

from ..config import config
from ..exceptions import SiaStateError

logger = logging.getLogger(__name__)

PERSIST_HEADER = "Pysiasync Persistence"
PERSIST_VERSION = "v0.1.0"


class IdentifierStateManager:
    """Manages the persisted path -> remote identifier map of sync folders.

    The state is stored in a JSON file in the user's config directory,
    keyed by a hash of the local root and the remote prefix to support
    multiple sync folders.
    """

    def __init__(self, state_dir: Optional[Path] = None):
        """Initialize state manager.

        Args:
            state_dir: Directory holding the state files (``config.state_dir``
                if None)
        """
        self.state_dir = state_dir if state_dir is not None else config.state_dir
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def _get_state_key(self, local_path: Path, remote_path: str) -> str:
        """Hash the resolved root and the prefix into a file name."""
        identity = f"{local_path.resolve()}:{remote_path}"
        return hashlib.sha256(identity.encode()).hexdigest()[:16]

    def get_state_file(self, local_path: Path, remote_path: str) -> Path:
        """Get the state file path for a sync folder."""
        key = self._get_state_key(local_path, remote_path)
        return self.state_dir / f"{key}.json"

    def load_identifiers(self, local_path: Path, remote_path: str) -> dict[str, str]:
        """Load the identifier map for a sync folder.

        Args:
            local_path: Local root directory
            remote_path: Remote prefix

        Returns:
            Mapping of absolute local path to remote identifier (empty if
            nothing was persisted yet or the file is corrupt)

        Raises:
            SiaStateError: If the file belongs to another program or version
        """
        state_file = self.get_state_file(local_path, remote_path)

        if not state_file.exists():
            logger.debug(f"No sync state found at {state_file}")
            return {}

        try:
            with open(state_file, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to load sync state: {e}")
            return {}

        if data.get("header") != PERSIST_HEADER:
            raise SiaStateError(f"{state_file} is not a pysiasync state file")
        if data.get("version") != PERSIST_VERSION:
            raise SiaStateError(
                f"Unsupported state version {data.get('version')!r} in {state_file}"
            )

        identifiers = {
            entry["local_path"]: entry["remote_identifier"]
            for entry in data.get("files") or []
            if entry.get("local_path") and entry.get("remote_identifier")
        }
        logger.debug(f"Loaded {len(identifiers)} remote identifier(s) from {state_file}")
        return identifiers

    def save_identifiers(
        self,
        local_path: Path,
        remote_path: str,
        identifiers: dict[str, str],
    ) -> None:
        """Save the identifier map for a sync folder.

        Args:
            local_path: Local root directory
            remote_path: Remote prefix
            identifiers: Mapping of absolute local path to remote identifier

        Raises:
            OSError: If the state file cannot be written
        """
        data = {
            "header": PERSIST_HEADER,
            "version": PERSIST_VERSION,
            "files": [
                {"local_path": path, "remote_identifier": identifier}
                for path, identifier in sorted(identifiers.items())
            ],
        }

        state_file = self.get_state_file(local_path, remote_path)
        tmp_file = state_file.with_suffix(".json.tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        tmp_file.replace(state_file)
        logger.debug(f"Saved {len(identifiers)} remote identifier(s) to {state_file}")

    def clear_state(self, local_path: Path, remote_path: str) -> bool:
        """Forget the identifiers persisted for a sync folder.

        Returns:
            True if a state file was removed
        """
        state_file = self.get_state_file(local_path, remote_path)
        try:
            state_file.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Removed sync state {state_file}")
        return True
