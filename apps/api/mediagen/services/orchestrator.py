"""Generation job orchestration: charge, dispatch, complete or compensate.

Lifecycle: ``pending -> processing -> completed | failed`` plus
``pending -> failed``. A job is created together with its debit; every way a
job can fail funnels through ``fail_job`` so the refund and the terminal
transition commit together exactly once.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import time
from typing import Any

from sqlalchemy.orm import Session

from mediagen.adapters.provider.base import ProviderError, ProviderGateway
from mediagen.adapters.storage.base import AssetStorage, StorageError
from mediagen.adapters.thumbnails import SourceImageThumbnailer, Thumbnailer
from mediagen.core.config import Settings
from mediagen.core.database import Database
from mediagen.core.logging_safety import safe_log_identifier, safe_log_message
from mediagen.domain.error_classify import classify_error
from mediagen.domain.job_fsm import ensure_transition, is_terminal
from mediagen.domain.pricing import calculate_cost
from mediagen.domain.video_models import (
    DEFAULT_VIDEO_MODEL_ID,
    VIDEO_MODELS,
    VideoModel,
    catalog_entry,
    require_video_model,
    validate_and_merge_params,
)
from mediagen.errors import (
    InvalidParameter,
    JobNotFound,
    MaterializationFailure,
    MaterializationTimeout,
    ProviderSubmissionFailure,
)
from mediagen.repositories.jobs import JobRepository
from mediagen.repositories.tables import GenerationJobRow, utcnow
from mediagen.schemas.job import CostEstimate, Job, JobList, JobStatus, JobView
from mediagen.schemas.models import ModelCatalog, VideoModelInfo
from mediagen.schemas.webhook import ProviderResult
from mediagen.services.ledger import CreditLedger, RelatedEntity
from mediagen.services.pricing import PricingService

logger = logging.getLogger(__name__)

_LIST_LIMIT_DEFAULT = 20
_LIST_LIMIT_MIN = 1
_LIST_LIMIT_MAX = 100
_PLACEHOLDER_IMAGE_URL = "https://placeholder.invalid/image.png"
_DEFAULT_VIDEO_CONTENT_TYPE = "video/mp4"


@dataclass(frozen=True, slots=True)
class FailOutcome:
    """Result of ``fail_job``; ``transitioned`` is False when the job was already terminal."""

    transitioned: bool
    refunded: int | None = None


class JobOrchestrator:
    def __init__(
        self,
        *,
        database: Database,
        ledger: CreditLedger,
        provider: ProviderGateway,
        storage: AssetStorage,
        settings: Settings,
        jobs: JobRepository | None = None,
        thumbnailer: Thumbnailer | None = None,
        pricing: PricingService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._database = database
        self._ledger = ledger
        self._provider = provider
        self._storage = storage
        self._settings = settings
        self._jobs = jobs or JobRepository()
        self._thumbnailer = thumbnailer or SourceImageThumbnailer()
        self._pricing = pricing or PricingService(database, cache_seconds=settings.pricing_cache_seconds)
        self._clock = clock

    @property
    def materialization_timeout(self) -> timedelta:
        return timedelta(seconds=self._settings.materialization_timeout_seconds)

    def submit(
        self,
        *,
        owner_id: str,
        model_id: str | None,
        source_asset_id: str,
        end_asset_id: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> Job:
        model = require_video_model(model_id or DEFAULT_VIDEO_MODEL_ID)
        if not self._storage.exists(source_asset_id):
            raise InvalidParameter("Source image not found", details={"param": "sourceAssetId"})
        if end_asset_id is not None and not self._storage.exists(end_asset_id):
            raise InvalidParameter("End image not found", details={"param": "endAssetId"})

        user_params = self._with_image_urls(
            model,
            dict(params or {}),
            source_url=self._storage.url_for(source_asset_id),
            end_url=self._storage.url_for(end_asset_id) if end_asset_id is not None else None,
        )
        merged = validate_and_merge_params(model, user_params)
        cost = calculate_cost(self._pricing.rule_for(model), merged)

        safe_owner_id = safe_log_identifier(owner_id, prefix="uid")
        with self._database.transaction() as tx:
            row = self._jobs.create(
                tx,
                owner_id=owner_id,
                model_id=model.id,
                source_asset_id=source_asset_id,
                end_asset_id=end_asset_id,
                params=merged,
                cost=cost,
            )
            job_id = row.id
            if cost > 0:
                self._ledger.debit(
                    owner_id,
                    cost,
                    description=f"Video generation ({model.name})",
                    related_entity=RelatedEntity.generation_job(job_id),
                    session=tx,
                )

        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        logger.info(
            "job.created job_id=%s owner_id=%s model_id=%s cost=%s",
            safe_job_id,
            safe_owner_id,
            model.id,
            cost,
        )

        callback_url = self._settings.callback_url
        try:
            if callback_url is None:
                raise ProviderError("Public base URL is not configured")
            external_request_id = self._provider.submit(model.id, merged, callback_url)
        except Exception as exc:
            reason = f"Provider submission failed: {safe_log_message(exc)}"
            logger.warning("job.submission_failed job_id=%s reason=%s", safe_job_id, reason)
            self.fail_job(job_id, reason)
            raise ProviderSubmissionFailure(job_id) from exc

        with self._database.transaction() as tx:
            if not self._jobs.mark_processing(tx, job_id=job_id, external_request_id=external_request_id):
                # Already resolved elsewhere; keep the provider id for reconciliation.
                self._jobs.set_external_request_id(tx, job_id=job_id, external_request_id=external_request_id)
                logger.info("job.processing_skipped job_id=%s", safe_job_id)
            row = self._jobs.get(tx, job_id)
            job = self._to_job(row)

        logger.info(
            "job.submitted job_id=%s request_id=%s status=%s",
            safe_job_id,
            safe_log_identifier(external_request_id, prefix="rid"),
            job.status.value,
        )
        return job

    def fail_job(self, job_id: str, reason: str, *, session: Session | None = None) -> FailOutcome:
        """Refund and mark the job failed in one transaction; no-op once terminal."""
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        with self._database.transaction(session) as tx:
            row = self._jobs.lock(tx, job_id)
            if row is None:
                logger.warning("job.fail_missing job_id=%s", safe_job_id)
                return FailOutcome(transitioned=False)

            current = JobStatus(row.status)
            if is_terminal(current):
                logger.info("job.fail_skipped job_id=%s status=%s", safe_job_id, current.value)
                return FailOutcome(transitioned=False)
            ensure_transition(current, JobStatus.FAILED)

            refunded = self._ledger.refund_by_related_entity(
                RelatedEntity.generation_job(job_id),
                description="Refund for failed video generation",
                session=tx,
            )
            now = self._clock()
            row.status = JobStatus.FAILED.value
            row.error = reason
            row.error_type = classify_error(reason)
            row.completed_at = now
            row.updated_at = now
            row.materialization_started_at = None

        logger.info(
            "job.failed job_id=%s refunded=%s error_type=%s",
            safe_job_id,
            refunded,
            classify_error(reason),
        )
        return FailOutcome(transitioned=True, refunded=refunded)

    def materialize_result(self, job_id: str, result: ProviderResult) -> Job | None:
        """Copy the provider artifact into storage and complete the job.

        Returns ``None`` when the job was already resolved, another worker
        holds the claim, or materialization failed.
        """
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        timeout = self.materialization_timeout
        claimed_at = self._clock()
        with self._database.transaction() as tx:
            row = self._jobs.lock(tx, job_id)
            if row is None or is_terminal(JobStatus(row.status)):
                logger.info("materialize.skipped job_id=%s reason=resolved", safe_job_id)
                return None
            if row.status != JobStatus.PROCESSING.value:
                logger.info("materialize.skipped job_id=%s reason=not_submitted", safe_job_id)
                return None
            if not self._jobs.claim_materialization(
                tx,
                job_id=job_id,
                now=claimed_at,
                stale_before=claimed_at - timeout,
            ):
                logger.info("materialize.skipped job_id=%s reason=claimed", safe_job_id)
                return None
            source_asset_id = row.source_asset_id

        deadline = time.monotonic() + timeout.total_seconds()
        try:
            result_asset_id, thumbnail_asset_id = self._store_artifact(result, source_asset_id, deadline)
        except MaterializationTimeout:
            # Claim goes stale at the same deadline; the sweeper picks the job up.
            logger.warning("materialize.timed_out job_id=%s", safe_job_id)
            return None
        except MaterializationFailure as exc:
            logger.warning(
                "materialize.failed job_id=%s code=%s error=%s",
                safe_job_id,
                exc.code,
                safe_log_message(exc),
            )
            self.fail_job(job_id, f"Failed to store generated video: {safe_log_message(exc)}")
            return None

        with self._database.transaction() as tx:
            row = self._jobs.lock(tx, job_id)
            if row is None or is_terminal(JobStatus(row.status)):
                logger.info("materialize.discarded job_id=%s reason=resolved", safe_job_id)
                return None
            ensure_transition(JobStatus(row.status), JobStatus.COMPLETED)
            self._jobs.mark_completed(
                tx,
                job_id=job_id,
                result_asset_id=result_asset_id,
                thumbnail_asset_id=thumbnail_asset_id,
                provider_seed=result.seed,
                completed_at=self._clock(),
            )
            row = self._jobs.lock(tx, job_id)
            job = self._to_job(row)

        logger.info("job.completed job_id=%s", safe_job_id)
        return job

    def get_job(self, *, owner_id: str, job_id: str) -> JobView:
        with self._database.transaction() as tx:
            row = self._jobs.get_for_owner(tx, owner_id=owner_id, job_id=job_id)
            if row is None:
                raise JobNotFound()
            return self._to_view(self._to_job(row))

    def list_jobs(
        self,
        *,
        owner_id: str,
        status: JobStatus | None = None,
        limit: int = _LIST_LIMIT_DEFAULT,
        offset: int = 0,
    ) -> JobList:
        if limit < _LIST_LIMIT_MIN or limit > _LIST_LIMIT_MAX:
            raise InvalidParameter(
                f"limit must be between {_LIST_LIMIT_MIN} and {_LIST_LIMIT_MAX}",
                details={"param": "limit"},
            )
        if offset < 0:
            raise InvalidParameter("offset must be non-negative", details={"param": "offset"})

        with self._database.transaction() as tx:
            rows, total = self._jobs.list_for_owner(
                tx,
                owner_id=owner_id,
                status=status,
                limit=limit,
                offset=offset,
            )
            jobs = [self._to_job(row) for row in rows]

        return JobList(
            jobs=[self._to_view(job) for job in jobs],
            total=total,
            limit=limit,
            offset=offset,
        )

    def estimate_cost(self, *, model_id: str | None, params: dict[str, Any]) -> CostEstimate:
        model = require_video_model(model_id or DEFAULT_VIDEO_MODEL_ID)
        user_params = self._with_image_urls(
            model,
            dict(params),
            source_url=_PLACEHOLDER_IMAGE_URL,
            end_url=_PLACEHOLDER_IMAGE_URL if model.image_params.end else None,
        )
        merged = validate_and_merge_params(model, user_params, enforce_required=False)
        for image_param in (model.image_params.source, model.image_params.end):
            merged.pop(image_param, None)
        cost = calculate_cost(self._pricing.rule_for(model), merged)
        return CostEstimate(cost=cost, model_id=model.id, params=merged)

    def list_models(self) -> ModelCatalog:
        return ModelCatalog(
            default_model_id=DEFAULT_VIDEO_MODEL_ID,
            models=[VideoModelInfo.model_validate(catalog_entry(model)) for model in VIDEO_MODELS],
        )

    def _with_image_urls(
        self,
        model: VideoModel,
        params: dict[str, Any],
        *,
        source_url: str,
        end_url: str | None,
    ) -> dict[str, Any]:
        params[model.image_params.source] = source_url
        if end_url is not None:
            if model.image_params.end is None:
                raise InvalidParameter(
                    f"Model {model.id} does not accept an end image",
                    details={"param": "endAssetId"},
                )
            params[model.image_params.end] = end_url
        return params

    def _store_artifact(
        self,
        result: ProviderResult,
        source_asset_id: str,
        deadline: float,
    ) -> tuple[str, str | None]:
        """Download, store and thumbnail the result; every error becomes a ``MaterializationFailure``."""
        try:
            data, downloaded_type = self._provider.download(result.video.url)
            self._check_deadline(deadline)
            content_type = result.video.content_type or downloaded_type or _DEFAULT_VIDEO_CONTENT_TYPE
            result_asset_id = self._storage.put(data, content_type)
            self._check_deadline(deadline)
            thumbnail_asset_id = self._thumbnailer.thumbnail_for(
                source_asset_id=source_asset_id,
                result_asset_id=result_asset_id,
            )
            self._check_deadline(deadline)
        except MaterializationFailure:
            raise
        except Exception as exc:
            raise MaterializationFailure(safe_log_message(exc)) from exc
        return result_asset_id, thumbnail_asset_id

    @staticmethod
    def _check_deadline(deadline: float) -> None:
        if time.monotonic() > deadline:
            raise MaterializationTimeout("Materialization deadline exceeded")

    @staticmethod
    def _to_job(row: GenerationJobRow) -> Job:
        return Job.model_validate(row, from_attributes=True)

    def _to_view(self, job: Job) -> JobView:
        return JobView(
            **job.model_dump(),
            source_asset_url=self._asset_url(job.source_asset_id),
            end_asset_url=self._asset_url(job.end_asset_id),
            result_asset_url=self._asset_url(job.result_asset_id),
            thumbnail_asset_url=self._asset_url(job.thumbnail_asset_id),
        )

    def _asset_url(self, asset_id: str | None) -> str | None:
        if asset_id is None:
            return None
        try:
            return self._storage.url_for(asset_id)
        except StorageError:
            logger.warning("asset.url_unavailable asset_id=%s", safe_log_identifier(asset_id, prefix="aid"))
            return None


__all__ = ["FailOutcome", "JobOrchestrator"]
