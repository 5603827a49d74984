"""Mapping between a local sync root and its remote prefix."""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Union

from ..exceptions import SiaPathError
from ..utils import REMOTE_SEPARATOR, join_remote_path, validate_remote_path


@dataclass(frozen=True)
class SyncPair:
    """A local directory mirrored into a remote prefix.

    All paths handled by the engine are descendants of ``local``; every
    conversion is fallible and raises SiaPathError instead of guessing.

    Examples:
        >>> pair = SyncPair(Path("/data"), "siasync")
        >>> pair.remote_path(Path("/data/docs/a.txt"))
        'siasync/docs/a.txt'
        >>> pair.local_path("siasync/docs/a.txt")
        PosixPath('/data/docs/a.txt')
    """

    local: Path
    remote: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "local", Path(self.local).absolute())
        object.__setattr__(self, "remote", validate_remote_path(self.remote))

    def relative_path(self, path: Union[str, Path]) -> str:
        """Return the root-relative path using forward slashes.

        Raises:
            SiaPathError: If the path is the root itself or outside of it
        """
        try:
            relative = Path(path).absolute().relative_to(self.local)
        except ValueError as e:
            raise SiaPathError(f"{path} is not inside {self.local}") from e
        if relative == Path("."):
            raise SiaPathError(f"{path} is the sync root")
        return relative.as_posix()

    def remote_path(self, path: Union[str, Path]) -> str:
        """Return the remote destination of a local path."""
        return join_remote_path(self.remote, self.relative_path(path))

    def local_path(self, remote_path: str) -> Path:
        """Return the local path a remote path mirrors.

        Raises:
            SiaPathError: If the remote path is outside the prefix
        """
        cleaned = validate_remote_path(remote_path)
        boundary = self.remote + REMOTE_SEPARATOR
        if not cleaned.startswith(boundary):
            raise SiaPathError(f"{remote_path} is outside of {self.remote}")
        relative = PurePosixPath(cleaned[len(boundary) :])
        return self.local.joinpath(*relative.parts)
