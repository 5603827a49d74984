"""Utility functions for pysiasync."""

from pathlib import PurePath
from typing import Union

from .exceptions import SiaPathError

# =============================================================================
# Defaults
# =============================================================================

# Address of the local siad API
DEFAULT_API_ADDRESS: str = "127.0.0.1:9980"

# siad refuses requests without this user agent
DEFAULT_USER_AGENT: str = "Sia-Agent"

# Erasure coding parameters passed through to the renter
DEFAULT_DATA_PIECES: int = 10
DEFAULT_PARITY_PIECES: int = 30

# Remote folder all synced files live under
DEFAULT_PREFIX: str = "siasync"

# Backoff between the two upload attempts of a create event (seconds)
DEFAULT_RETRY_DELAY: float = 10.0

# Transport-level retries inside the HTTP clients
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_REQUEST_RETRY_DELAY: float = 1.0

DEFAULT_PORTAL_URL: str = "https://siasky.net"

REMOTE_SEPARATOR: str = "/"


# =============================================================================
# Path utilities
# =============================================================================


def extension_of(path: Union[str, PurePath]) -> str:
    """Return the extension of a path without its leading dot.

    The extension is everything after the last dot of the final path
    component, so dot files count as an extension of their own.

    Examples:
        >>> extension_of("photos/cat.JPG")
        'JPG'
        >>> extension_of("archive.tar.gz")
        'gz'
        >>> extension_of(".bashrc")
        'bashrc'
        >>> extension_of("Makefile")
        ''
    """
    name = str(path).replace("\\", "/").rsplit("/", 1)[-1]
    index = name.rfind(".")
    if index < 0:
        return ""
    return name[index + 1 :]


def validate_remote_path(path: str) -> str:
    """Validate a remote path and return it in canonical form.

    Args:
        path: Remote path using forward slashes

    Returns:
        The path with surrounding slashes removed

    Raises:
        SiaPathError: If the path is empty or contains empty, ``.`` or
            ``..`` segments
    """
    cleaned = path.strip(REMOTE_SEPARATOR)
    if not cleaned:
        raise SiaPathError("Remote path cannot be empty")
    for segment in cleaned.split(REMOTE_SEPARATOR):
        if segment in ("", ".", ".."):
            raise SiaPathError(f"Invalid remote path: {path!r}")
    return cleaned


def join_remote_path(prefix: str, relative_path: str) -> str:
    """Join a remote prefix and a relative path.

    Examples:
        >>> join_remote_path("siasync", "docs/a.txt")
        'siasync/docs/a.txt'
    """
    relative = relative_path.replace("\\", REMOTE_SEPARATOR)
    if prefix:
        relative = f"{prefix}{REMOTE_SEPARATOR}{relative}"
    return validate_remote_path(relative)

