"""Data models for remote store responses."""

from dataclasses import dataclass
from typing import Any, Optional

from .utils import REMOTE_SEPARATOR


@dataclass(frozen=True)
class Redundancy:
    """Erasure coding parameters handed to the renter on upload."""

    data_pieces: int
    parity_pieces: int


@dataclass
class RemoteObject:
    """A file stored under the remote prefix."""

    remote_path: str
    """Path of the object in the remote store (forward slashes, no leading slash)"""

    size: Optional[int] = None
    """Size in bytes if the store reports it"""

    fingerprint: Optional[str] = None
    """Content fingerprint if the store can report one"""

    identifier: Optional[str] = None
    """Opaque identifier for stores that address content by identifier"""

    @classmethod
    def from_sia(cls, data: dict[str, Any]) -> "RemoteObject":
        """Create a RemoteObject from a renter file info record.

        Args:
            data: File info as returned by ``/renter/dir`` or ``/renter/file``

        Returns:
            RemoteObject instance
        """
        size = data.get("filesize")
        return cls(
            remote_path=str(data.get("siapath", "")).strip(REMOTE_SEPARATOR),
            size=int(size) if size is not None else None,
        )
