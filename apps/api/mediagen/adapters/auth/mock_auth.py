"""Deterministic token verifier for local development and tests."""

from mediagen.adapters.auth.base import AuthVerificationError, TokenVerifier
from mediagen.schemas.auth import AuthPrincipal


class MockTokenVerifier(TokenVerifier):
    """Accepts ``test:<user_id>`` or ``test:<user_id>:<role>`` tokens only."""

    def __init__(self, default_role: str = "user") -> None:
        self._default_role = default_role

    def verify_token(self, token: str) -> AuthPrincipal:
        scheme, _, identity = token.partition(":")
        if scheme != "test" or not identity:
            raise AuthVerificationError("Invalid bearer token")

        user_id, _, role = identity.partition(":")
        user_id = user_id.strip()
        role = role.strip() or self._default_role
        if not user_id:
            raise AuthVerificationError("Bearer token missing user identity")
        if ":" in role:
            raise AuthVerificationError("Invalid bearer token")

        return AuthPrincipal(user_id=user_id, role=role)


__all__ = ["MockTokenVerifier"]
