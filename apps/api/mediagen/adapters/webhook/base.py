"""Webhook authenticity interfaces."""

from abc import ABC, abstractmethod
from collections.abc import Mapping


class WebhookVerificationError(Exception):
    """Raised when a callback's signature headers are missing, stale or invalid."""


class WebhookVerifier(ABC):
    @abstractmethod
    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        """Raise ``WebhookVerificationError`` unless the request is authentic."""


class PublicKeySource(ABC):
    @abstractmethod
    def public_keys(self) -> list[bytes]:
        """Return raw Ed25519 public keys that may have signed a callback."""


__all__ = ["PublicKeySource", "WebhookVerificationError", "WebhookVerifier"]
