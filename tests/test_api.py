"""Unit tests for the Sia and Skynet API clients."""

import base64
from unittest.mock import patch

import httpx
import pytest

from pysiasync.api import RemoteStore, SiaClient, SkynetClient
from pysiasync.exceptions import (
    SiaAlreadyExistsError,
    SiaAPIError,
    SiaAuthenticationError,
    SiaConfigError,
    SiaInvalidResponseError,
    SiaNetworkError,
    SiaNotFoundError,
    SiaRejectedError,
)
from pysiasync.models import Redundancy


def _sia_client(handler, **kwargs) -> SiaClient:
    kwargs.setdefault("retry_delay", 0)
    return SiaClient(
        "127.0.0.1:9980",
        password="secret",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _error(status: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"message": message})


class TestSiaClient:
    """Tests for SiaClient initialization and headers."""

    def test_scheme_added(self):
        """Test that a bare address gets an http scheme."""
        client = SiaClient("localhost:9980", password="secret")
        assert client.api_url == "http://localhost:9980"

    def test_is_remote_store(self):
        """Test that the client satisfies the store protocol."""
        assert isinstance(SiaClient(password="secret"), RemoteStore)
        assert SiaClient.supports_listing is True

    def test_password_from_config(self):
        """Test that a missing password is discovered via config."""
        with patch("pysiasync.api.config") as mock_config:
            mock_config.find_api_password.return_value = "from-file"
            mock_config.api_address = "127.0.0.1:9980"
            client = SiaClient()

        assert client.password == "from-file"
        mock_config.find_api_password.assert_called_once_with(None)

    def test_headers(self):
        """Test that requests carry basic auth and the Sia user agent."""
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            return httpx.Response(200, json={"version": "1.5.9"})

        assert _sia_client(handler).daemon_version() == "1.5.9"
        expected = base64.b64encode(b":secret").decode()
        assert seen["headers"]["Authorization"] == f"Basic {expected}"
        assert seen["headers"]["User-Agent"] == "Sia-Agent"


class TestAPIRequest:
    """Tests for the _request method."""

    def test_empty_response(self):
        """Test that an empty body gives an empty dict."""
        client = _sia_client(lambda request: httpx.Response(204))
        assert client._request("POST", "/renter/delete/a") == {}

    def test_invalid_json(self):
        """Test that a malformed body raises SiaInvalidResponseError."""
        client = _sia_client(lambda request: httpx.Response(200, content=b"{oops"))

        with pytest.raises(SiaInvalidResponseError):
            client._request("GET", "/renter")

    def test_unauthorized(self):
        """Test that 401 raises SiaAuthenticationError."""
        client = _sia_client(lambda request: _error(401, "API authentication failed"))

        with pytest.raises(SiaAuthenticationError):
            client._request("GET", "/renter")

    def test_rejected(self):
        """Test that other 4xx errors raise SiaRejectedError."""
        client = _sia_client(lambda request: _error(400, "invalid parameter"))

        with pytest.raises(SiaRejectedError, match="invalid parameter"):
            client._request("GET", "/renter")

    @patch("pysiasync.api.time.sleep")
    def test_server_error_retried(self, mock_sleep):
        """Test that 5xx responses are retried."""
        responses = [_error(500, "internal"), httpx.Response(200, json={"ok": True})]
        client = _sia_client(lambda request: responses.pop(0))

        assert client._request("GET", "/renter") == {"ok": True}
        mock_sleep.assert_called_once()

    @patch("pysiasync.api.time.sleep")
    def test_server_error_exhausted(self, mock_sleep):
        """Test that persistent 5xx responses raise after all retries."""
        calls = []

        def handler(request):
            calls.append(request)
            return _error(503, "busy")

        client = _sia_client(handler, max_retries=2)

        with pytest.raises(SiaAPIError, match="503"):
            client._request("GET", "/renter")
        assert len(calls) == 3

    @patch("pysiasync.api.time.sleep")
    def test_network_error(self, mock_sleep):
        """Test that connection failures raise SiaNetworkError after retries."""
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = _sia_client(handler, max_retries=1)

        with pytest.raises(SiaNetworkError, match="connection refused"):
            client._request("GET", "/renter")
        assert len(calls) == 2


class TestSiaFileOperations:
    """Tests for upload, delete, list and exists."""

    def test_upload(self, temp_dir):
        """Test the upload request."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        client = _sia_client(handler)
        result = client.upload(
            temp_dir / "a b.txt", "siasync/docs/a b.txt", Redundancy(10, 30)
        )

        assert result is None
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/renter/upload/siasync/docs/a b.txt"
        assert request.url.params["source"] == str(temp_dir / "a b.txt")
        assert request.url.params["datapieces"] == "10"
        assert request.url.params["paritypieces"] == "30"

    def test_upload_already_exists(self, temp_dir):
        """Test that an occupied siapath raises SiaAlreadyExistsError."""
        client = _sia_client(
            lambda request: _error(400, "[path overload]: a file already exists")
        )

        with pytest.raises(SiaAlreadyExistsError):
            client.upload(temp_dir / "a.txt", "siasync/a.txt", Redundancy(10, 30))

    def test_delete_not_found(self):
        """Test that deleting an unknown file raises SiaNotFoundError."""
        client = _sia_client(lambda request: _error(400, "no file known with that path"))

        with pytest.raises(SiaNotFoundError):
            client.delete("siasync/a.txt")

    def test_delete(self):
        """Test the delete request."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        _sia_client(handler).delete("/siasync/a.txt")

        assert seen[0].method == "POST"
        assert seen[0].url.path == "/renter/delete/siasync/a.txt"

    def test_list_walks_directories(self):
        """Test that list returns files of all nested directories."""
        tree = {
            "/renter/dir/siasync": {
                "directories": [{"siapath": "siasync"}, {"siapath": "siasync/sub"}],
                "files": [{"siapath": "siasync/a.txt", "filesize": 3}],
            },
            "/renter/dir/siasync/sub": {
                "directories": [{"siapath": "siasync/sub"}],
                "files": [{"siapath": "siasync/sub/b.txt", "filesize": 5}],
            },
        }
        client = _sia_client(lambda request: httpx.Response(200, json=tree[request.url.path]))

        objects = client.list("siasync")

        assert {(o.remote_path, o.size) for o in objects} == {
            ("siasync/a.txt", 3),
            ("siasync/sub/b.txt", 5),
        }

    def test_list_missing_root(self):
        """Test that a missing prefix raises SiaNotFoundError."""
        client = _sia_client(lambda request: _error(400, "path does not exist"))

        with pytest.raises(SiaNotFoundError):
            client.list("siasync")

    def test_list_skips_vanished_directory(self):
        """Test that a directory removed during the walk is skipped."""

        def handler(request):
            if request.url.path == "/renter/dir/siasync":
                return httpx.Response(
                    200,
                    json={
                        "directories": [{"siapath": "siasync"}, {"siapath": "siasync/gone"}],
                        "files": [{"siapath": "siasync/a.txt", "filesize": 1}],
                    },
                )
            return _error(404, "no such directory")

        objects = _sia_client(handler).list("siasync")

        assert [o.remote_path for o in objects] == ["siasync/a.txt"]

    def test_exists(self):
        """Test probing a siapath."""

        def handler(request):
            if request.url.path == "/renter/file/siasync/a.txt":
                return httpx.Response(200, json={"file": {"siapath": "siasync/a.txt"}})
            return _error(400, "no file known")

        client = _sia_client(handler)

        assert client.exists("siasync/a.txt") is True
        assert client.exists("siasync/b.txt") is False


class TestCheckConnection:
    """Tests for the node readiness check."""

    def _client(self, renter, contracts):
        routes = {
            "/daemon/version": {"version": "1.5.9"},
            "/renter": renter,
            "/renter/contracts": contracts,
        }
        return _sia_client(lambda request: httpx.Response(200, json=routes[request.url.path]))

    def test_ready(self):
        """Test a node with allowance and usable contracts."""
        client = self._client(
            {"settings": {"allowance": {"funds": "5000"}}},
            {
                "activecontracts": [
                    {"goodforupload": True},
                    {"goodforupload": False},
                ]
            },
        )

        assert client.check_connection() == {"version": "1.5.9", "good_for_upload": 1}

    def test_no_allowance(self):
        """Test that a node without allowance is rejected."""
        client = self._client({"settings": {"allowance": {"funds": "0"}}}, {})

        with pytest.raises(SiaConfigError, match="No allowance"):
            client.check_connection()

    def test_no_contracts(self):
        """Test that a node without contracts is rejected."""
        client = self._client(
            {"settings": {"allowance": {"funds": "5000"}}}, {"activecontracts": None}
        )

        with pytest.raises(SiaConfigError, match="No active contracts"):
            client.check_connection()


class TestSkynetClient:
    """Tests for SkynetClient."""

    def _client(self, handler) -> SkynetClient:
        return SkynetClient(
            "https://portal.example", transport=httpx.MockTransport(handler), retry_delay=0
        )

    def test_upload_returns_skylink(self, temp_dir):
        """Test that an upload returns the skylink."""
        path = temp_dir / "a.txt"
        path.write_text("hello")
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"skylink": "AAA_skylink"})

        skylink = self._client(handler).upload(path, "siasync/a.txt", Redundancy(10, 30))

        assert skylink == "AAA_skylink"
        assert seen[0].url.path == "/skynet/skyfile"
        assert b'filename="a.txt"' in seen[0].content
        assert b"hello" in seen[0].content

    def test_upload_without_skylink(self, temp_dir):
        """Test that a response without skylink is invalid."""
        path = temp_dir / "a.txt"
        path.write_text("hello")
        client = self._client(lambda request: httpx.Response(200, json={}))

        with pytest.raises(SiaInvalidResponseError):
            client.upload(path, "siasync/a.txt", Redundancy(10, 30))

    def test_delete_unpins(self):
        """Test that delete unpins the known skylink."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        self._client(handler).delete("siasync/a.txt", identifier="AAA_skylink")

        assert seen[0].url.path == "/skynet/unpin/AAA_skylink"

    def test_delete_without_identifier(self):
        """Test that files without skylink cannot be deleted."""
        client = self._client(lambda request: httpx.Response(204))

        with pytest.raises(SiaNotFoundError):
            client.delete("siasync/a.txt")

    def test_not_listable(self):
        """Test that listing and probing are rejected."""
        client = self._client(lambda request: httpx.Response(204))

        assert client.supports_listing is False
        with pytest.raises(SiaRejectedError):
            client.list("siasync")
        with pytest.raises(SiaRejectedError):
            client.exists("siasync/a.txt")

    def test_context_manager_closes(self):
        """Test that leaving the context closes the HTTP client."""
        with self._client(lambda request: httpx.Response(200, json={"a": 1})) as client:
            client._request("GET", "/")
            assert client._client is not None

        assert client._client is None
