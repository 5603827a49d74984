"""Exceptions raised by pysiasync."""


class SiaSyncError(Exception):
    """Base class for all pysiasync errors."""


class SiaConfigError(SiaSyncError):
    """Configuration is missing or the node cannot be used for syncing."""


class SiaPathError(SiaSyncError):
    """A local or remote path cannot be mapped into the sync namespace."""


class SiaStateError(SiaSyncError):
    """The persisted sync state cannot be used."""


class SiaAPIError(SiaSyncError):
    """A request against the remote store failed."""


class SiaAuthenticationError(SiaAPIError):
    """The API password was rejected."""


class SiaNetworkError(SiaAPIError):
    """The remote store could not be reached."""


class SiaNotFoundError(SiaAPIError):
    """The requested file or directory does not exist remotely."""


class SiaAlreadyExistsError(SiaAPIError):
    """A file already exists at the upload destination."""


class SiaRejectedError(SiaAPIError):
    """The remote store refused the request."""


class SiaInvalidResponseError(SiaAPIError):
    """The remote store returned a response that could not be parsed."""
