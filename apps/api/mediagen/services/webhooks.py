"""Provider callback handling."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
import json
import logging

from pydantic import ValidationError

from mediagen.adapters.webhook.base import WebhookVerificationError, WebhookVerifier
from mediagen.core.database import Database
from mediagen.core.logging_safety import safe_log_identifier, safe_log_message
from mediagen.domain.job_fsm import is_terminal
from mediagen.errors import InvalidSignature, JobNotFound, MalformedPayload
from mediagen.repositories.jobs import JobRepository
from mediagen.schemas.job import JobStatus
from mediagen.schemas.webhook import FalWebhookPayload, ProviderResult, WebhookAck
from mediagen.services.orchestrator import JobOrchestrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WebhookReceipt:
    """Acknowledgement plus the work to run after the response is sent."""

    ack: WebhookAck
    background: Callable[[], object] | None = None


def parse_provider_result(payload: dict | None) -> ProviderResult | None:
    if not payload:
        return None
    try:
        result = ProviderResult.model_validate(payload)
    except ValidationError:
        return None
    return result if result.video.url else None


class WebhookReceiver:
    def __init__(
        self,
        *,
        database: Database,
        orchestrator: JobOrchestrator,
        verifier: WebhookVerifier | None,
        jobs: JobRepository | None = None,
    ) -> None:
        self._database = database
        self._orchestrator = orchestrator
        # None disables verification; settings only allow this outside production.
        self._verifier = verifier
        self._jobs = jobs or JobRepository()

    def receive(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookReceipt:
        if self._verifier is not None:
            try:
                self._verifier.verify(raw_body, headers)
            except WebhookVerificationError as exc:
                logger.warning("webhook.rejected reason=%s", safe_log_message(exc))
                raise InvalidSignature() from exc
        else:
            logger.warning("webhook.verification_skipped")

        payload = self._parse(raw_body)
        safe_request_id = safe_log_identifier(payload.request_id, prefix="rid")

        with self._database.transaction() as tx:
            row = self._jobs.get_by_external_id(tx, payload.request_id)
            if row is None:
                logger.warning("webhook.unknown_request request_id=%s", safe_request_id)
                raise JobNotFound()
            job_id = row.id
            status = JobStatus(row.status)

        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        if is_terminal(status):
            logger.info(
                "webhook.replayed request_id=%s job_id=%s status=%s",
                safe_request_id,
                safe_job_id,
                status.value,
            )
            return WebhookReceipt(ack=WebhookAck(status="already_processed"))

        result = parse_provider_result(payload.payload) if payload.status == "OK" else None
        if payload.status == "ERROR" or payload.payload_error or result is None:
            reason = self._failure_reason(payload)
            outcome = self._orchestrator.fail_job(job_id, reason)
            logger.info(
                "webhook.failed request_id=%s job_id=%s transitioned=%s",
                safe_request_id,
                safe_job_id,
                outcome.transitioned,
            )
            if not outcome.transitioned:
                return WebhookReceipt(ack=WebhookAck(status="already_processed"))
            return WebhookReceipt(ack=WebhookAck(status="failed"))

        logger.info("webhook.accepted request_id=%s job_id=%s", safe_request_id, safe_job_id)
        return WebhookReceipt(
            ack=WebhookAck(status="processing"),
            background=lambda: self._orchestrator.materialize_result(job_id, result),
        )

    @staticmethod
    def _parse(raw_body: bytes) -> FalWebhookPayload:
        try:
            return FalWebhookPayload.model_validate(json.loads(raw_body))
        except (ValueError, ValidationError) as exc:
            logger.warning("webhook.malformed error=%s", safe_log_message(exc))
            raise MalformedPayload() from exc

    @staticmethod
    def _failure_reason(payload: FalWebhookPayload) -> str:
        if payload.error:
            return payload.error
        if payload.payload_error:
            return f"Provider payload error: {payload.payload_error}"
        if payload.status == "ERROR":
            return "Provider reported an error"
        return "Provider result did not include a video"


__all__ = ["WebhookReceipt", "WebhookReceiver", "parse_provider_result"]
