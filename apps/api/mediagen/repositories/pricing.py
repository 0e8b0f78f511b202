"""Model pricing override persistence."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from mediagen.repositories.tables import ModelPricingRow


class PricingRepository:
    def get(self, session: Session, model_id: str) -> ModelPricingRow | None:
        return session.get(ModelPricingRow, model_id)

    def list_all(self, session: Session) -> Sequence[ModelPricingRow]:
        return session.scalars(select(ModelPricingRow).order_by(ModelPricingRow.model_id)).all()

    def upsert(
        self,
        session: Session,
        *,
        model_id: str,
        rule: dict[str, Any],
        description: str | None,
        updated_by: str | None,
        now: datetime,
    ) -> ModelPricingRow:
        stmt = select(ModelPricingRow).where(ModelPricingRow.model_id == model_id).with_for_update()
        row = session.scalars(stmt).one_or_none()
        if row is None:
            row = ModelPricingRow(model_id=model_id, created_at=now)
            session.add(row)
        row.rule = rule
        row.description = description
        row.updated_by = updated_by
        row.updated_at = now
        session.flush()
        return row

    def delete(self, session: Session, model_id: str) -> bool:
        result = session.execute(delete(ModelPricingRow).where(ModelPricingRow.model_id == model_id))
        return result.rowcount == 1
