"""Shared fixtures for the pysiasync tests."""

import tempfile
from pathlib import Path
from typing import Optional

import pytest

from pysiasync.exceptions import (
    SiaAlreadyExistsError,
    SiaAPIError,
    SiaNotFoundError,
    SiaRejectedError,
)
from pysiasync.models import Redundancy, RemoteObject


class MemoryStore:
    """In-memory remote store recording every call made against it."""

    def __init__(self, supports_listing: bool = True):
        self.supports_listing = supports_listing
        self.files: dict[str, RemoteObject] = {}
        self.uploads: list[str] = []
        self.deletes: list[str] = []
        self.exists_calls: list[str] = []
        self.fail_uploads = 0
        self.fail_deletes = 0
        self.closed = False
        self._counter = 0

    def add(self, remote_path: str, size: int = 0) -> None:
        """Seed a remote file."""
        self.files[remote_path] = RemoteObject(remote_path, size=size)

    def upload(
        self, local_path: Path, destination: str, redundancy: Redundancy
    ) -> Optional[str]:
        self.uploads.append(destination)
        if self.fail_uploads > 0:
            self.fail_uploads -= 1
            raise SiaAPIError("upload failed")
        if destination in self.files:
            raise SiaAlreadyExistsError(f"{destination} already exists")

        identifier = None
        if not self.supports_listing:
            self._counter += 1
            identifier = f"skylink-{self._counter}"
        self.files[destination] = RemoteObject(
            destination, size=local_path.stat().st_size, identifier=identifier
        )
        return identifier

    def delete(self, destination: str, identifier: Optional[str] = None) -> None:
        self.deletes.append(destination)
        if self.fail_deletes > 0:
            self.fail_deletes -= 1
            raise SiaAPIError("delete failed")
        if destination not in self.files:
            raise SiaNotFoundError(f"no file known with path {destination}")
        del self.files[destination]

    def list(self, prefix: str) -> list[RemoteObject]:
        if not self.supports_listing:
            raise SiaRejectedError("listing not supported")
        if not any(p.startswith(prefix + "/") for p in self.files):
            raise SiaNotFoundError(f"no such directory {prefix}")
        # Deliberately unfiltered, the caller drops foreign entries
        return list(self.files.values())

    def exists(self, destination: str) -> bool:
        self.exists_calls.append(destination)
        return destination in self.files

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def store():
    """Provide an empty in-memory remote store."""
    return MemoryStore()


@pytest.fixture
def temp_dir():
    """Create a temporary sync root."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()
