"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from datetime import timedelta
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from mediagen.adapters.auth import TokenVerifier
from mediagen.adapters.provider import FalProviderGateway, ProviderGateway
from mediagen.adapters.storage import AssetStorage, LocalAssetStorage, S3AssetStorage
from mediagen.adapters.thumbnails import Thumbnailer
from mediagen.adapters.webhook import FalWebhookVerifier, JwksKeySource, WebhookVerifier
from mediagen.core.config import Settings, get_settings
from mediagen.core.database import Database
from mediagen.core.logging_safety import configure_logging
from mediagen.errors import ApiError
from mediagen.routes import credits_router, jobs_router, models_router, pricing_router, webhooks_router
from mediagen.schemas.error import ErrorResponse
from mediagen.services.ledger import CreditLedger
from mediagen.services.orchestrator import JobOrchestrator
from mediagen.services.pricing import PricingService
from mediagen.services.sweeper import RecoverySweeper, run_periodic_sweeps
from mediagen.services.webhooks import WebhookReceiver

logger = logging.getLogger(__name__)

_UNSET = object()


def _apply_validation_response_code(schema: dict) -> None:
    """Request validation errors are rendered as 400, never FastAPI's default 422."""
    for path_item in schema.get("paths", {}).values():
        for operation in path_item.values():
            responses = operation.get("responses") if isinstance(operation, dict) else None
            if not responses or "422" not in responses:
                continue
            responses.pop("422")
            responses.setdefault("400", {"description": "Invalid request parameters"})


def build_storage(settings: Settings) -> AssetStorage:
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("s3_bucket is required when storage_backend is 's3'")
        return S3AssetStorage(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            url_expiry_seconds=settings.s3_url_expiry_seconds,
        )
    return LocalAssetStorage(settings.storage_local_path)


def build_provider(settings: Settings) -> ProviderGateway:
    return FalProviderGateway(
        api_key=settings.fal_api_key,
        queue_url=settings.fal_queue_url,
        timeout_seconds=settings.provider_timeout_seconds,
        download_timeout_seconds=settings.download_timeout_seconds,
    )


def build_webhook_verifier(settings: Settings) -> WebhookVerifier | None:
    if not settings.webhook_verification_enabled:
        return None
    key_source = JwksKeySource(
        settings.fal_jwks_url,
        cache_seconds=settings.jwks_cache_seconds,
        retry_backoff_seconds=settings.jwks_retry_backoff_seconds,
    )
    return FalWebhookVerifier(key_source, leeway_seconds=settings.webhook_timestamp_leeway_seconds)


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    provider: ProviderGateway | None = None,
    storage: AssetStorage | None = None,
    webhook_verifier: WebhookVerifier | None | object = _UNSET,
    thumbnailer: Thumbnailer | None = None,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    owns_database = database is None
    database = database or Database(settings.database_url)
    database.create_all()
    provider = provider or build_provider(settings)
    storage = storage or build_storage(settings)
    if webhook_verifier is _UNSET:
        webhook_verifier = build_webhook_verifier(settings)

    ledger = CreditLedger(database)
    pricing = PricingService(database, cache_seconds=settings.pricing_cache_seconds)
    orchestrator = JobOrchestrator(
        database=database,
        ledger=ledger,
        provider=provider,
        storage=storage,
        settings=settings,
        thumbnailer=thumbnailer,
        pricing=pricing,
    )
    sweeper = RecoverySweeper(
        database=database,
        orchestrator=orchestrator,
        provider=provider,
        stale_after=timedelta(minutes=settings.stale_job_threshold_minutes),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweep_task = None
        if settings.sweep_interval_seconds > 0:
            sweep_task = asyncio.create_task(run_periodic_sweeps(sweeper, settings.sweep_interval_seconds))
            logger.info("sweeper.started interval_seconds=%s", settings.sweep_interval_seconds)
        try:
            yield
        finally:
            if sweep_task is not None:
                sweep_task.cancel()
                with suppress(asyncio.CancelledError):
                    await sweep_task
            if owns_database:
                database.dispose()

    app = FastAPI(title="mediagen API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.ledger = ledger
    app.state.pricing = pricing
    app.state.orchestrator = orchestrator
    app.state.sweeper = sweeper
    app.state.webhook_receiver = WebhookReceiver(
        database=database,
        orchestrator=orchestrator,
        verifier=webhook_verifier,
    )
    app.state.token_verifier = token_verifier

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        payload = ErrorResponse(
            error="INVALID_PARAMETER",
            message="Invalid request parameters",
            details={"errors": errors},
        )
        return JSONResponse(status_code=400, content=payload.model_dump(mode="json", exclude_none=True))

    api_prefix = "/api/v1"
    app.include_router(webhooks_router, prefix=api_prefix)
    app.include_router(jobs_router, prefix=api_prefix)
    app.include_router(credits_router, prefix=api_prefix)
    app.include_router(pricing_router, prefix=api_prefix)
    app.include_router(models_router, prefix=api_prefix)

    def custom_openapi() -> dict:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        _apply_validation_response_code(schema)
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app
