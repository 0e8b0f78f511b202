"""Generation provider interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ProviderError(Exception):
    """Raised when the provider cannot be reached or rejects a request."""


class ProviderTimeout(ProviderError):
    """The call did not finish within its deadline."""


class ProviderRejected(ProviderError):
    """The provider answered with a non-success HTTP status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProviderJobState(str, Enum):
    IN_QUEUE = "IN_QUEUE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True, slots=True)
class ProviderStatus:
    state: ProviderJobState
    error: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.state is ProviderJobState.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.state is ProviderJobState.FAILED


class ProviderGateway(ABC):
    """Provider-neutral queue API used by the orchestrator and sweeper."""

    @abstractmethod
    def submit(self, model_id: str, params: dict[str, Any], callback_url: str) -> str:
        """Queue a generation and return the provider request id."""

    @abstractmethod
    def fetch_status(self, model_id: str, request_id: str) -> ProviderStatus:
        """Return the current provider-side state of a request."""

    @abstractmethod
    def fetch_result(self, model_id: str, request_id: str) -> dict[str, Any]:
        """Return the raw result payload of a completed request."""

    @abstractmethod
    def download(self, url: str) -> tuple[bytes, str | None]:
        """Download an artifact; returns the bytes and the reported content type."""


__all__ = [
    "ProviderError",
    "ProviderGateway",
    "ProviderJobState",
    "ProviderRejected",
    "ProviderStatus",
    "ProviderTimeout",
]
