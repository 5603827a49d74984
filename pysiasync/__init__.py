"""pysiasync - keep a local folder synchronized with Sia renter storage."""

from .api import RemoteStore, SiaClient, SkynetClient
from .exceptions import (
    SiaAlreadyExistsError,
    SiaAPIError,
    SiaAuthenticationError,
    SiaConfigError,
    SiaInvalidResponseError,
    SiaNetworkError,
    SiaNotFoundError,
    SiaPathError,
    SiaRejectedError,
    SiaStateError,
    SiaSyncError,
)
from .models import Redundancy, RemoteObject

__version__ = "0.1.0"

__all__ = [
    "RemoteStore",
    "SiaClient",
    "SkynetClient",
    "Redundancy",
    "RemoteObject",
    "SiaSyncError",
    "SiaAPIError",
    "SiaAlreadyExistsError",
    "SiaAuthenticationError",
    "SiaConfigError",
    "SiaInvalidResponseError",
    "SiaNetworkError",
    "SiaNotFoundError",
    "SiaPathError",
    "SiaRejectedError",
    "SiaStateError",
]
