"""Authentication provider interfaces."""

from abc import ABC, abstractmethod

from mediagen.schemas.auth import AuthPrincipal


class AuthVerificationError(Exception):
    """Raised when a bearer token cannot be verified or mapped to a caller."""


class TokenVerifier(ABC):
    @abstractmethod
    def verify_token(self, token: str) -> AuthPrincipal:
        """Verify ``token`` and return the caller identity."""


__all__ = ["AuthVerificationError", "TokenVerifier"]
