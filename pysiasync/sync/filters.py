"""Extension based filtering of synced files."""

import logging
from collections.abc import Iterable
from pathlib import PurePath
from typing import Optional, Union

from ..utils import extension_of

logger = logging.getLogger(__name__)


def parse_extensions(value: Optional[str]) -> frozenset[str]:
    """Parse a comma separated extension list.

    Examples:
        >>> sorted(parse_extensions("jpg, .png,,"))
        ['jpg', 'png']
        >>> parse_extensions(None)
        frozenset()
    """
    if not value:
        return frozenset()
    extensions = (item.strip().lstrip(".") for item in value.split(","))
    return frozenset(ext for ext in extensions if ext)


class ExtensionFilter:
    """Decides whether a path takes part in syncing.

    A non-empty include set is authoritative and the exclude set is never
    consulted. Otherwise files with an excluded extension are skipped.
    Matching is case sensitive.

    Examples:
        >>> f = ExtensionFilter(include={"txt"}, exclude={"jpg"})
        >>> f.eligible("notes.txt"), f.eligible("a.jpg")
        (True, False)
    """

    def __init__(
        self,
        include: Optional[Iterable[str]] = None,
        exclude: Optional[Iterable[str]] = None,
    ):
        self.include = frozenset(ext.lstrip(".") for ext in include or ())
        self.exclude = frozenset(ext.lstrip(".") for ext in exclude or ())

    def eligible(self, path: Union[str, PurePath]) -> bool:
        """Return True if the path should be synced."""
        extension = extension_of(path)

        if self.include:
            if extension in self.include:
                return True
            logger.debug(f"Extension not in include list: {path}")
            return False

        if extension in self.exclude:
            logger.debug(f"Extension in exclude list: {path}")
            return False

        return True
