"""Firebase ID token verifier."""

from __future__ import annotations

from mediagen.adapters.auth.base import AuthVerificationError, TokenVerifier
from mediagen.schemas.auth import ADMIN_ROLE, AuthPrincipal


class FirebaseTokenVerifier(TokenVerifier):
    """Verifies Firebase ID tokens; the ``admin`` custom claim grants the admin role."""

    def __init__(self, project_id: str | None, audience: str | None) -> None:
        self._project_id = project_id
        self._audience = audience

    def verify_token(self, token: str) -> AuthPrincipal:
        try:
            import firebase_admin
            from firebase_admin import auth as firebase_auth
        except ImportError as exc:  # pragma: no cover - optional "firebase" extra
            raise AuthVerificationError("Firebase auth verifier is unavailable") from exc

        if not firebase_admin._apps:
            options = {"projectId": self._project_id} if self._project_id else None
            firebase_admin.initialize_app(options=options)

        try:
            decoded = firebase_auth.verify_id_token(token, check_revoked=True)
        except Exception as exc:  # pragma: no cover - provider exception surface
            raise AuthVerificationError("Invalid bearer token") from exc

        if self._audience and decoded.get("aud") != self._audience:
            raise AuthVerificationError("Invalid bearer token audience")

        user_id = str(decoded.get("uid") or decoded.get("sub") or "").strip()
        if not user_id:
            raise AuthVerificationError("Bearer token missing user identity")

        if decoded.get("admin") is True:
            role = ADMIN_ROLE
        else:
            role = str(decoded.get("role") or "user").strip()
        return AuthPrincipal(user_id=user_id, role=role)


__all__ = ["FirebaseTokenVerifier"]
