"""Thumbnail derivation for completed generations."""

from abc import ABC, abstractmethod


class Thumbnailer(ABC):
    @abstractmethod
    def thumbnail_for(self, *, source_asset_id: str, result_asset_id: str) -> str | None:
        """Return the asset id to use as the job thumbnail."""


class SourceImageThumbnailer(Thumbnailer):
    """Uses the input image as the thumbnail; no media decoding is performed."""

    def thumbnail_for(self, *, source_asset_id: str, result_asset_id: str) -> str | None:
        return source_asset_id


__all__ = ["SourceImageThumbnailer", "Thumbnailer"]
