"""Asset storage adapters."""

from .base import AssetStorage, StorageError
from .local import LocalAssetStorage
from .s3 import S3AssetStorage

__all__ = ["AssetStorage", "LocalAssetStorage", "S3AssetStorage", "StorageError"]
