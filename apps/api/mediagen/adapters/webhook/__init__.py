"""Provider callback verification adapters."""

from .base import PublicKeySource, WebhookVerificationError, WebhookVerifier
from .fal import FalWebhookVerifier, JwksKeySource

__all__ = [
    "FalWebhookVerifier",
    "JwksKeySource",
    "PublicKeySource",
    "WebhookVerificationError",
    "WebhookVerifier",
]
