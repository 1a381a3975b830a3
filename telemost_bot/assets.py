# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Static asset access.

Only plain file names inside the assets directory are served. A name is
checked before anything touches the filesystem.
"""

from pathlib import Path
from typing import Callable, Optional

from telemost_bot.logging_config import get_logger


logger = get_logger(__name__)


CACHE_CONTROL = "public, max-age=31536000"

CONTENT_TYPES = {
    ".svg": "image/svg+xml",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class AssetError(Exception):
    """Base class for asset errors."""


class AssetPathError(AssetError):
    """Asset name would escape the assets directory."""


class AssetNotFoundError(AssetError):
    """Asset does not exist or cannot be read."""


def content_type(name: str) -> str:
    """Content type for an asset name, by extension."""
    return CONTENT_TYPES.get(Path(name).suffix.lower(), DEFAULT_CONTENT_TYPE)


class AssetStore:
    """Reads files from a single assets directory."""

    def __init__(self, assets_dir: str, reader: Optional[Callable[[Path], bytes]] = None):
        """
        Args:
            assets_dir: Directory holding the assets
            reader: Optional file reader (defaults to Path.read_bytes)
        """
        self.assets_dir = Path(assets_dir)
        self.reader = reader or Path.read_bytes

    @staticmethod
    def validate_name(name: str) -> None:
        """
        Raises:
            AssetPathError: If name is empty or contains "..", "/" or "\\"
        """
        if not name or ".." in name or "/" in name or "\\" in name:
            raise AssetPathError(f"Invalid asset name: {name!r}")

    def read(self, name: str) -> bytes:
        """
        Read an asset.

        Raises:
            AssetPathError: If the name is rejected (no read is attempted)
            AssetNotFoundError: If the file cannot be read
        """
        self.validate_name(name)

        try:
            return self.reader(self.assets_dir / name)
        except OSError as e:
            logger.warning("Asset not found", extra={'asset': name, 'error': str(e)})
            raise AssetNotFoundError(f"Asset not found: {name}") from e
