"""API clients for the remote stores pysiasync syncs to."""

from __future__ import annotations

import logging
import random
import time
from pathlib import Path
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

import httpx

from .config import config
from .exceptions import (
    SiaAlreadyExistsError,
    SiaAPIError,
    SiaAuthenticationError,
    SiaConfigError,
    SiaInvalidResponseError,
    SiaNetworkError,
    SiaNotFoundError,
    SiaRejectedError,
)
from .models import Redundancy, RemoteObject
from .utils import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_RETRY_DELAY,
    DEFAULT_USER_AGENT,
    REMOTE_SEPARATOR,
)

logger = logging.getLogger(__name__)

# Fragments of siad error messages that identify benign conditions
_NOT_FOUND_MESSAGES = (
    "no file known",
    "no such file or directory",
    "path does not exist",
    "no such directory",
)
_ALREADY_EXISTS_MESSAGES = (
    "already exists",
    "path overload",
)


@runtime_checkable
class RemoteStore(Protocol):
    """Contract the sync engine needs from a remote store."""

    supports_listing: bool

    def upload(
        self, local_path: Path, destination: str, redundancy: Redundancy
    ) -> str | None: ...

    def delete(self, destination: str, identifier: str | None = None) -> None: ...

    def list(self, prefix: str) -> list[RemoteObject]: ...

    def exists(self, destination: str) -> bool: ...

    def close(self) -> None: ...


class _HTTPClient:
    """Shared request handling for the HTTP based stores."""

    def __init__(
        self,
        api_url: str,
        auth: tuple[str, str] | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_REQUEST_RETRY_DELAY,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            api_url: Base URL of the API
            auth: Optional basic auth credentials
            user_agent: User-Agent header sent with every request
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (used by tests)
        """
        if "://" not in api_url:
            api_url = f"http://{api_url}"
        self.api_url = api_url.rstrip("/")
        self.auth = auth
        self.user_agent = user_agent
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                auth=self.auth,
                headers={"User-Agent": self.user_agent},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        # Retry on network errors (transient failures)
        if isinstance(exception, SiaNetworkError):
            return True

        # Retry on server errors (5xx status codes)
        if isinstance(exception, httpx.HTTPStatusError):
            return 500 <= exception.response.status_code < 600

        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract the error message from an error response body."""
        try:
            if response.content:
                error_data = response.json()
                if isinstance(error_data, dict):
                    msg = error_data.get("message") or error_data.get("error")
                    if msg:
                        return str(msg)
        except ValueError:
            pass
        return response.text or ""

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[SiaAPIError, bool]:
        """Map an HTTP error to an exception and decide whether to retry.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code
        message = self._error_message(e.response)
        lowered = message.lower()

        if status_code == 401:
            return (
                SiaAuthenticationError("Invalid API password or unauthorized access"),
                False,
            )
        if status_code == 404 or any(m in lowered for m in _NOT_FOUND_MESSAGES):
            return SiaNotFoundError(message or "Resource not found"), False
        if any(m in lowered for m in _ALREADY_EXISTS_MESSAGES):
            return SiaAlreadyExistsError(message), False
        if 400 <= status_code < 500:
            return SiaRejectedError(message or f"Request rejected ({status_code})"), False

        error_msg = f"API request failed with status {status_code}"
        if message:
            error_msg = f"{error_msg}: {message}"
        return SiaAPIError(error_msg), self._should_retry(e, attempt)

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data, or an empty dict for empty responses

        Raises:
            SiaAPIError: If the request fails after all retries
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()

                if not response.content:
                    return {}
                try:
                    return response.json()
                except ValueError as e:
                    raise SiaInvalidResponseError(
                        f"Invalid JSON response from {endpoint}"
                    ) from e

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error
                if should_retry:
                    time.sleep(self._calculate_retry_delay(attempt))
                    continue
                raise error from e
            except httpx.RequestError as e:
                error = SiaNetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(
                        "Request to %s failed (%s), retrying in %.1fs", url, e, delay
                    )
                    time.sleep(delay)
                    continue
                raise error from e

        # If we get here, we've exhausted all retries
        if last_exception:
            raise last_exception
        raise SiaAPIError("Request failed after all retry attempts")


def _quote_path(path: str) -> str:
    return quote(path.strip(REMOTE_SEPARATOR), safe=REMOTE_SEPARATOR)


class SiaClient(_HTTPClient):
    """Client for the renter API of a Sia node (siad).

    Files are addressed by their siapath, so the store can be listed and
    probed directly.

    Examples:
        >>> client = SiaClient("127.0.0.1:9980", password="secret")
        >>> client.upload(Path("/data/a.txt"), "siasync/a.txt", Redundancy(10, 30))
    """

    supports_listing = True

    def __init__(
        self,
        address: str | None = None,
        password: str | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        **kwargs: Any,
    ):
        """Initialize the Sia client.

        Args:
            address: API address (uses config if not provided)
            password: API password (discovered via config if not provided)
            user_agent: User agent, siad requires ``Sia-Agent``
            **kwargs: Passed through to the shared HTTP client
        """
        self.password = config.find_api_password(password)
        super().__init__(
            api_url=address or config.api_address,
            auth=("", self.password),
            user_agent=user_agent,
            **kwargs,
        )

    # =========================
    # Node information
    # =========================

    def daemon_version(self) -> str:
        """Return the version of the connected siad."""
        data = self._request("GET", "/daemon/version")
        return str(data.get("version", ""))

    def check_connection(self) -> dict[str, Any]:
        """Verify that the node can accept uploads.

        Returns:
            Dictionary with the node ``version`` and the number of contracts
            that are ``good_for_upload``

        Raises:
            SiaConfigError: If the renter has no allowance or no usable contracts
        """
        version = self.daemon_version()
        logger.info(f"Connected to Sia {version}")

        renter = self._request("GET", "/renter")
        allowance = renter.get("settings", {}).get("allowance", {})
        if int(allowance.get("funds") or 0) == 0:
            raise SiaConfigError("Cannot upload: No allowance available")

        contracts = self._request("GET", "/renter/contracts")
        active = contracts.get("activecontracts") or []
        if not active:
            raise SiaConfigError("No active contracts")
        good_for_upload = sum(1 for c in active if c.get("goodforupload"))
        logger.info(f"{good_for_upload} contracts are ready for upload")

        return {"version": version, "good_for_upload": good_for_upload}

    # =========================
    # File operations
    # =========================

    def upload(
        self, local_path: Path, destination: str, redundancy: Redundancy
    ) -> str | None:
        """Upload a local file to the given siapath.

        Args:
            local_path: Absolute path of the file on the node's filesystem
            destination: Target siapath
            redundancy: Erasure coding parameters

        Returns:
            None, siad addresses files by path

        Raises:
            SiaAlreadyExistsError: If a file already exists at the siapath
        """
        params = {
            "source": str(local_path),
            "datapieces": redundancy.data_pieces,
            "paritypieces": redundancy.parity_pieces,
        }
        self._request("POST", f"/renter/upload/{_quote_path(destination)}", params=params)
        return None

    def delete(self, destination: str, identifier: str | None = None) -> None:
        """Delete the file at the given siapath.

        Raises:
            SiaNotFoundError: If no file is known at the siapath
        """
        self._request("POST", f"/renter/delete/{_quote_path(destination)}")

    def get_dir(self, siapath: str) -> dict[str, Any]:
        """Return the directory info of a siapath."""
        return self._request("GET", f"/renter/dir/{_quote_path(siapath)}")

    def get_file(self, siapath: str) -> dict[str, Any]:
        """Return the file info of a siapath."""
        data = self._request("GET", f"/renter/file/{_quote_path(siapath)}")
        return data.get("file", data)

    def list(self, prefix: str) -> list[RemoteObject]:
        """List all files nested under a siapath.

        Args:
            prefix: Siapath of the directory to list

        Returns:
            List of RemoteObject for every file below the prefix

        Raises:
            SiaNotFoundError: If the prefix directory does not exist
        """
        root = prefix.strip(REMOTE_SEPARATOR)
        objects: list[RemoteObject] = []
        pending = [root]

        while pending:
            current = pending.pop()
            try:
                data = self.get_dir(current)
            except SiaNotFoundError:
                if current == root:
                    raise
                # Removed while we were walking
                logger.debug("Directory vanished during listing: %s", current)
                continue

            for file_info in data.get("files") or []:
                objects.append(RemoteObject.from_sia(file_info))

            for dir_info in data.get("directories") or []:
                siapath = str(dir_info.get("siapath", "")).strip(REMOTE_SEPARATOR)
                # The first entry is the listed directory itself
                if siapath and siapath != current:
                    pending.append(siapath)

        logger.debug(f"Listed {len(objects)} remote file(s) under {root}")
        return objects

    def exists(self, destination: str) -> bool:
        """Check whether a file exists at the given siapath."""
        try:
            self.get_file(destination)
        except SiaNotFoundError:
            return False
        return True


class SkynetClient(_HTTPClient):
    """Client for a Skynet portal.

    Uploads return a skylink instead of being addressable by path, so the
    engine has to remember the skylink of every file it uploaded.
    """

    supports_listing = False

    def __init__(
        self,
        portal_url: str | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        **kwargs: Any,
    ):
        """Initialize the Skynet client.

        Args:
            portal_url: Portal URL (uses config if not provided)
            user_agent: User agent sent to the portal
            **kwargs: Passed through to the shared HTTP client
        """
        super().__init__(
            api_url=portal_url or config.portal_url,
            user_agent=user_agent,
            **kwargs,
        )

    def upload(
        self, local_path: Path, destination: str, redundancy: Redundancy
    ) -> str | None:
        """Upload a file and return its skylink.

        The redundancy is chosen by the portal and ignored here.
        """
        filename = destination.rsplit(REMOTE_SEPARATOR, 1)[-1]
        with open(local_path, "rb") as f:
            data = self._request(
                "POST",
                "/skynet/skyfile",
                files={"file": (filename, f)},
            )
        skylink = data.get("skylink")
        if not skylink:
            raise SiaInvalidResponseError(f"Upload response missing skylink: {data}")
        return str(skylink)

    def delete(self, destination: str, identifier: str | None = None) -> None:
        """Unpin the skylink uploaded for a destination.

        Raises:
            SiaNotFoundError: If no skylink is known for the destination
        """
        if not identifier:
            raise SiaNotFoundError(f"No skylink known for {destination}")
        self._request("POST", f"/skynet/unpin/{quote(identifier, safe='')}")

    def list(self, prefix: str) -> list[RemoteObject]:
        raise SiaRejectedError("Skynet portals cannot list uploaded files")

    def exists(self, destination: str) -> bool:
        raise SiaRejectedError("Skynet portals cannot look up files by path")
