"""Fingerprints standing in for the content state of local files."""

import hashlib
from pathlib import Path

from .options import FingerprintMode

# Read files in 1 MB blocks when hashing
_CHUNK_SIZE = 1024 * 1024


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of a file's contents."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def size_file(path: Path) -> str:
    """Return the size of a file in bytes as a decimal string."""
    return str(path.stat().st_size)


def fingerprint(path: Path, mode: FingerprintMode = FingerprintMode.CONTENT) -> str:
    """Fingerprint a local file.

    Args:
        path: File to fingerprint
        mode: Content digest or size

    Returns:
        Fingerprint string, comparable with other fingerprints of the same mode

    Raises:
        OSError: If the file is unreadable or vanished
    """
    if mode == FingerprintMode.SIZE:
        return size_file(path)
    return sha256_file(path)
