"""Configuration management for pysiasync."""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from .utils import DEFAULT_API_ADDRESS, DEFAULT_PORTAL_URL

logger = logging.getLogger(__name__)

API_PASSWORD_FILE_NAME = "apipassword"


def default_sia_dir() -> Path:
    """Return the platform specific data directory of siad."""
    if sys.platform == "win32":
        return Path(os.environ.get("LOCALAPPDATA", Path.home())) / "Sia"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "Sia"
    return Path.home() / ".sia"


class Config:
    """Ambient settings read from the environment.

    Values are read lazily so that changes to the environment (e.g. in
    tests) are picked up without re-importing the module.
    """

    @property
    def api_address(self) -> str:
        """Address of the siad API."""
        return os.environ.get("SIA_API_ADDRESS", DEFAULT_API_ADDRESS)

    @property
    def sia_dir(self) -> Path:
        """Data directory of siad, used to find the API password file."""
        env_dir = os.environ.get("SIA_DATA_DIR")
        if env_dir:
            return Path(env_dir)
        return default_sia_dir()

    @property
    def portal_url(self) -> str:
        """Skynet portal used when syncing to Skynet."""
        return os.environ.get("SKYNET_PORTAL_URL", DEFAULT_PORTAL_URL)

    @property
    def state_dir(self) -> Path:
        """Directory holding persisted sync state."""
        env_dir = os.environ.get("PYSIASYNC_STATE_DIR")
        if env_dir:
            return Path(env_dir)
        return Path.home() / ".config" / "pysiasync" / "sync_state"

    def find_api_password(self, password: Optional[str] = None) -> str:
        """Find the siad API password.

        Lookup order: the explicit value, the ``SIA_API_PASSWORD``
        environment variable, then the ``apipassword`` file in the siad
        data directory.

        Args:
            password: Password given on the command line

        Returns:
            The password, or an empty string if none could be found
        """
        if password:
            return password

        env_password = os.environ.get("SIA_API_PASSWORD")
        if env_password:
            return env_password

        password_file = self.sia_dir / API_PASSWORD_FILE_NAME
        try:
            return password_file.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning(f"Could not read API password file {password_file}: {e}")
            return ""


config = Config()
