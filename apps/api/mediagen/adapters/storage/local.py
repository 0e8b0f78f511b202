"""Filesystem-backed asset storage for development and tests."""

from __future__ import annotations

from pathlib import Path
import re
import uuid

from mediagen.adapters.storage.base import AssetStorage, StorageError, extension_for

_ASSET_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+(\.[A-Za-z0-9]+)?$")


class LocalAssetStorage(AssetStorage):
    """Stores assets as files under ``root``; URLs are served from ``base_url``."""

    def __init__(self, root: str | Path, *, base_url: str | None = None) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._base_url = (base_url or self.root.resolve().as_uri()).rstrip("/")

    def put(self, data: bytes, content_type: str) -> str:
        asset_id = f"{uuid.uuid4().hex}{extension_for(content_type)}"
        try:
            self.path_for(asset_id).write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to store asset: {exc}") from exc
        return asset_id

    def url_for(self, asset_id: str) -> str:
        self.path_for(asset_id)
        return f"{self._base_url}/{asset_id}"

    def exists(self, asset_id: str) -> bool:
        try:
            return self.path_for(asset_id).is_file()
        except StorageError:
            return False

    def read(self, asset_id: str) -> bytes:
        return self.path_for(asset_id).read_bytes()

    def path_for(self, asset_id: str) -> Path:
        if not _ASSET_ID_PATTERN.match(asset_id):
            raise StorageError("Invalid asset id")
        return self.root / asset_id


__all__ = ["LocalAssetStorage"]
