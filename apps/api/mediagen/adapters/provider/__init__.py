"""Generation provider adapters."""

from .base import (
    ProviderError,
    ProviderGateway,
    ProviderJobState,
    ProviderRejected,
    ProviderStatus,
    ProviderTimeout,
)
from .fal import FalProviderGateway

__all__ = [
    "FalProviderGateway",
    "ProviderError",
    "ProviderGateway",
    "ProviderJobState",
    "ProviderRejected",
    "ProviderStatus",
    "ProviderTimeout",
]
