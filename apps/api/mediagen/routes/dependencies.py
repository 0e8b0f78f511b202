"""Dependency wiring for routes."""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mediagen.adapters.auth import (
    AuthVerificationError,
    FirebaseTokenVerifier,
    MockTokenVerifier,
    TokenVerifier,
)
from mediagen.core.config import Settings, get_settings
from mediagen.core.logging_safety import safe_log_identifier
from mediagen.errors import ApiError, Forbidden
from mediagen.schemas.auth import AuthPrincipal
from mediagen.services.ledger import CreditLedger
from mediagen.services.orchestrator import JobOrchestrator
from mediagen.services.pricing import PricingService
from mediagen.services.sweeper import RecoverySweeper
from mediagen.services.webhooks import WebhookReceiver

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
logger = logging.getLogger(__name__)


def _auth_error(message: str) -> ApiError:
    return ApiError(status_code=401, code="UNAUTHORIZED", message=message)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id") or f"req-{uuid4()}"
    request.state.correlation_id = correlation_id
    return correlation_id


def get_request_correlation_id(request: Request) -> str:
    return _request_correlation_id(request)


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_token_verifier(
    request: Request,
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> TokenVerifier:
    """Resolve the verifier installed on the app, else build one from configuration."""
    installed = getattr(request.app.state, "token_verifier", None)
    if installed is not None:
        return installed
    if settings.auth_provider == "firebase":
        return FirebaseTokenVerifier(
            project_id=settings.firebase_project_id,
            audience=settings.firebase_audience,
        )
    return MockTokenVerifier()


async def get_authenticated_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> AuthPrincipal:
    """Validate the bearer token and attach the caller to the request context."""
    safe_correlation_id = safe_log_identifier(_request_correlation_id(request), prefix="cid")
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=invalid_or_missing_bearer",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error("Invalid or missing bearer token")

    try:
        principal = verifier.verify_token(credentials.credentials)
    except AuthVerificationError as exc:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=token_verification_failed",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error(str(exc) or "Invalid bearer token") from exc

    logger.debug(
        "auth.accepted correlation_id=%s principal_id=%s role=%s",
        safe_correlation_id,
        safe_log_identifier(principal.user_id, prefix="pid"),
        principal.role,
    )
    request.state.auth_principal = principal
    return principal


async def require_admin(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
) -> AuthPrincipal:
    if not principal.is_admin:
        logger.warning(
            "auth.forbidden principal_id=%s role=%s",
            safe_log_identifier(principal.user_id, prefix="pid"),
            principal.role,
        )
        raise Forbidden("Admin role required")
    return principal


def get_ledger(request: Request) -> CreditLedger:
    return request.app.state.ledger


def get_orchestrator(request: Request) -> JobOrchestrator:
    return request.app.state.orchestrator


def get_webhook_receiver(request: Request) -> WebhookReceiver:
    return request.app.state.webhook_receiver


def get_sweeper(request: Request) -> RecoverySweeper:
    return request.app.state.sweeper


def get_pricing(request: Request) -> PricingService:
    return request.app.state.pricing
