"""Reconciliation of jobs whose provider callback never arrived."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging

from mediagen.adapters.provider.base import ProviderError, ProviderGateway
from mediagen.core.database import Database
from mediagen.core.logging_safety import safe_log_identifier, safe_log_message
from mediagen.domain.job_fsm import is_terminal
from mediagen.repositories.jobs import JobRepository
from mediagen.repositories.tables import utcnow
from mediagen.schemas.job import JobStatus
from mediagen.services.orchestrator import JobOrchestrator
from mediagen.services.webhooks import parse_provider_result

logger = logging.getLogger(__name__)

CALLBACK_TIMEOUT_REASON = "Timed out waiting for provider callback"


@dataclass(slots=True)
class SweepReport:
    checked: int = 0
    recovered: int = 0
    failed: int = 0
    skipped: int = 0


class RecoverySweeper:
    """Resolves stale ``pending``/``processing`` jobs; safe to run from many workers at once."""

    def __init__(
        self,
        *,
        database: Database,
        orchestrator: JobOrchestrator,
        provider: ProviderGateway,
        stale_after: timedelta,
        jobs: JobRepository | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._database = database
        self._orchestrator = orchestrator
        self._provider = provider
        self._stale_after = stale_after
        self._jobs = jobs or JobRepository()
        self._clock = clock

    def sweep(self, owner_id: str | None = None) -> SweepReport:
        report = SweepReport()
        now = self._clock()
        with self._database.transaction() as tx:
            job_ids = self._jobs.list_stale(tx, created_before=now - self._stale_after, owner_id=owner_id)

        for job_id in job_ids:
            report.checked += 1
            try:
                self._reconcile(job_id, report)
            except Exception:
                report.skipped += 1
                logger.exception("sweep.job_error job_id=%s", safe_log_identifier(job_id, prefix="jid"))

        if report.checked:
            logger.info(
                "sweep.finished checked=%s recovered=%s failed=%s skipped=%s",
                report.checked,
                report.recovered,
                report.failed,
                report.skipped,
            )
        return report

    def sweep_quietly(self, owner_id: str | None = None) -> SweepReport | None:
        """Best-effort sweep for request-triggered background tasks."""
        try:
            return self.sweep(owner_id)
        except Exception:
            logger.exception("sweep.failed owner_id=%s", safe_log_identifier(owner_id, prefix="uid"))
            return None

    def _reconcile(self, job_id: str, report: SweepReport) -> None:
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        claim_cutoff = self._clock() - self._orchestrator.materialization_timeout
        with self._database.transaction() as tx:
            row = self._jobs.get(tx, job_id)
            if row is None or is_terminal(JobStatus(row.status)):
                report.skipped += 1
                return
            claim = row.materialization_started_at
            if claim is not None and claim >= claim_cutoff:
                logger.info("sweep.skipped job_id=%s reason=materializing", safe_job_id)
                report.skipped += 1
                return
            model_id = row.model_id
            external_request_id = row.external_request_id

        if external_request_id is None:
            self._fail(job_id, "Provider submission was never confirmed", report)
            return

        try:
            status = self._provider.fetch_status(model_id, external_request_id)
        except ProviderError as exc:
            logger.warning("sweep.status_unavailable job_id=%s error=%s", safe_job_id, safe_log_message(exc))
            self._fail(job_id, CALLBACK_TIMEOUT_REASON, report)
            return

        if status.is_completed:
            try:
                raw_result = self._provider.fetch_result(model_id, external_request_id)
            except ProviderError as exc:
                logger.warning("sweep.result_unavailable job_id=%s error=%s", safe_job_id, safe_log_message(exc))
                self._fail(job_id, CALLBACK_TIMEOUT_REASON, report)
                return
            result = parse_provider_result(raw_result)
            if result is None:
                self._fail(job_id, "Provider result did not include a video", report)
                return
            if self._orchestrator.materialize_result(job_id, result) is not None:
                logger.info("sweep.recovered job_id=%s", safe_job_id)
                report.recovered += 1
            else:
                # Failed, timed out, or resolved concurrently; the job row tells which.
                report.skipped += 1
            return

        if status.is_failed:
            self._fail(job_id, status.error or "Provider reported a failure", report)
            return

        # Still queued or running past the threshold: give up and refund.
        self._fail(job_id, CALLBACK_TIMEOUT_REASON, report)

    def _fail(self, job_id: str, reason: str, report: SweepReport) -> None:
        outcome = self._orchestrator.fail_job(job_id, reason)
        if outcome.transitioned:
            report.failed += 1
        else:
            report.skipped += 1


async def run_periodic_sweeps(sweeper: RecoverySweeper, interval_seconds: float) -> None:
    """Run ``sweeper.sweep`` forever in a worker thread; cancel the task to stop."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(sweeper.sweep)
        except Exception:
            logger.exception("sweep.iteration_failed")


__all__ = ["CALLBACK_TIMEOUT_REASON", "RecoverySweeper", "SweepReport", "run_periodic_sweeps"]
