"""Generation job persistence."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from mediagen.repositories.tables import GenerationJobRow, utcnow
from mediagen.schemas.job import JobStatus

ACTIVE_STATUSES: tuple[str, ...] = (JobStatus.PENDING.value, JobStatus.PROCESSING.value)


class JobRepository:
    """Queries over ``generation_jobs``; every call runs inside the caller's session."""

    def create(
        self,
        session: Session,
        *,
        owner_id: str,
        model_id: str,
        source_asset_id: str,
        end_asset_id: str | None,
        params: dict[str, Any],
        cost: int,
    ) -> GenerationJobRow:
        row = GenerationJobRow(
            user_id=owner_id,
            model_id=model_id,
            status=JobStatus.PENDING.value,
            source_asset_id=source_asset_id,
            end_asset_id=end_asset_id,
            params=params,
            cost=cost,
        )
        session.add(row)
        session.flush()
        return row

    def get(self, session: Session, job_id: str) -> GenerationJobRow | None:
        return session.get(GenerationJobRow, job_id)

    def lock(self, session: Session, job_id: str) -> GenerationJobRow | None:
        """Re-read the row under a write lock, discarding any cached state."""
        stmt = (
            select(GenerationJobRow)
            .where(GenerationJobRow.id == job_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return session.scalars(stmt).one_or_none()

    def get_for_owner(self, session: Session, *, owner_id: str, job_id: str) -> GenerationJobRow | None:
        stmt = select(GenerationJobRow).where(
            GenerationJobRow.id == job_id,
            GenerationJobRow.user_id == owner_id,
        )
        return session.scalars(stmt).one_or_none()

    def get_by_external_id(self, session: Session, external_request_id: str) -> GenerationJobRow | None:
        stmt = select(GenerationJobRow).where(GenerationJobRow.external_request_id == external_request_id)
        return session.scalars(stmt).one_or_none()

    def list_for_owner(
        self,
        session: Session,
        *,
        owner_id: str,
        status: JobStatus | None = None,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[GenerationJobRow], int]:
        conditions = [GenerationJobRow.user_id == owner_id]
        if status is not None:
            conditions.append(GenerationJobRow.status == status.value)

        total = session.scalar(select(func.count()).select_from(GenerationJobRow).where(*conditions)) or 0
        stmt = (
            select(GenerationJobRow)
            .where(*conditions)
            .order_by(GenerationJobRow.created_at.desc(), GenerationJobRow.id)
            .limit(limit)
            .offset(offset)
        )
        return session.scalars(stmt).all(), total

    def list_stale(
        self,
        session: Session,
        *,
        created_before: datetime,
        owner_id: str | None = None,
    ) -> list[str]:
        """Ids of non-terminal jobs created before ``created_before``, oldest first."""
        stmt = select(GenerationJobRow.id).where(
            GenerationJobRow.status.in_(ACTIVE_STATUSES),
            GenerationJobRow.created_at < created_before,
        )
        if owner_id is not None:
            stmt = stmt.where(GenerationJobRow.user_id == owner_id)
        return list(session.scalars(stmt.order_by(GenerationJobRow.created_at)).all())

    def mark_processing(self, session: Session, *, job_id: str, external_request_id: str) -> bool:
        """Guarded ``pending -> processing``; False when the job already moved on."""
        result = session.execute(
            update(GenerationJobRow)
            .where(
                GenerationJobRow.id == job_id,
                GenerationJobRow.status == JobStatus.PENDING.value,
            )
            .values(
                status=JobStatus.PROCESSING.value,
                external_request_id=external_request_id,
                updated_at=utcnow(),
            )
        )
        return result.rowcount == 1

    def set_external_request_id(self, session: Session, *, job_id: str, external_request_id: str) -> None:
        session.execute(
            update(GenerationJobRow)
            .where(
                GenerationJobRow.id == job_id,
                GenerationJobRow.external_request_id.is_(None),
            )
            .values(external_request_id=external_request_id, updated_at=utcnow())
        )

    def claim_materialization(
        self,
        session: Session,
        *,
        job_id: str,
        now: datetime,
        stale_before: datetime,
    ) -> bool:
        """Stamp the materialization marker on a processing job that is not freshly claimed."""
        result = session.execute(
            update(GenerationJobRow)
            .where(
                GenerationJobRow.id == job_id,
                GenerationJobRow.status == JobStatus.PROCESSING.value,
                (GenerationJobRow.materialization_started_at.is_(None))
                | (GenerationJobRow.materialization_started_at < stale_before),
            )
            .values(materialization_started_at=now, updated_at=now)
        )
        return result.rowcount == 1

    def mark_completed(
        self,
        session: Session,
        *,
        job_id: str,
        result_asset_id: str,
        thumbnail_asset_id: str | None,
        provider_seed: int | None,
        completed_at: datetime,
    ) -> bool:
        """Guarded terminal write; False when another actor finished the job first."""
        result = session.execute(
            update(GenerationJobRow)
            .where(
                GenerationJobRow.id == job_id,
                GenerationJobRow.status == JobStatus.PROCESSING.value,
            )
            .values(
                status=JobStatus.COMPLETED.value,
                result_asset_id=result_asset_id,
                thumbnail_asset_id=thumbnail_asset_id,
                provider_seed=provider_seed,
                completed_at=completed_at,
                materialization_started_at=None,
                updated_at=completed_at,
            )
        )
        return result.rowcount == 1
