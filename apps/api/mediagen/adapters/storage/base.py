"""Object storage interfaces."""

from abc import ABC, abstractmethod
import mimetypes


class StorageError(Exception):
    """Raised when an asset cannot be stored or resolved."""


class AssetStorage(ABC):
    @abstractmethod
    def put(self, data: bytes, content_type: str) -> str:
        """Store ``data`` and return a new asset id."""

    @abstractmethod
    def url_for(self, asset_id: str) -> str:
        """Return a transient URL that a third party can fetch the asset from."""

    @abstractmethod
    def exists(self, asset_id: str) -> bool:
        """Return whether ``asset_id`` refers to a stored asset."""


def extension_for(content_type: str | None) -> str:
    if content_type:
        guessed = mimetypes.guess_extension(content_type.split(";")[0].strip())
        if guessed:
            return guessed
    return ".bin"


__all__ = ["AssetStorage", "StorageError", "extension_for"]
