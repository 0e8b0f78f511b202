"""Per-model pricing: built-in rules with admin-managed overrides.

Each model ships a default ``PricingRule`` in the registry. An admin may store
an override in ``model_pricing``; the override wins until it is deleted.
Lookups are cached per process for ``cache_seconds`` and the cache entry is
dropped on every save or delete made through the same service.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
import logging
import threading
import time
from typing import Any

from mediagen.core.database import Database
from mediagen.core.logging_safety import safe_log_identifier
from mediagen.domain.pricing import (
    DURATION_PARAM,
    RESOLUTION_PARAM,
    PricingRule,
    calculate_cost,
    rule_from_dict,
    rule_to_dict,
)
from mediagen.domain.video_models import (
    VIDEO_MODELS,
    ParamStatus,
    VideoModel,
    require_video_model,
    validate_and_merge_params,
)
from mediagen.errors import InvalidParameter
from mediagen.repositories.pricing import PricingRepository
from mediagen.repositories.tables import ModelPricingRow, utcnow
from mediagen.schemas.pricing import (
    ModelPricing,
    PricingList,
    PricingRuleBody,
    PricingSource,
    PricingValidation,
)

logger = logging.getLogger(__name__)


def check_rule_for_model(model: VideoModel, rule: PricingRule) -> None:
    """Reject rules that cannot price every valid request for ``model``."""
    params = {param.name: param for param in model.params if param.status is not ParamStatus.DISABLED}
    if DURATION_PARAM not in params and rule.fixed_duration_seconds is None:
        raise InvalidParameter(
            f"Model {model.id} has no duration parameter; fixedDurationSeconds is required",
            details={"param": "fixedDurationSeconds"},
        )
    resolution = params.get(RESOLUTION_PARAM)
    known = {str(option) for option in resolution.options} if resolution is not None else set()
    unknown = sorted(set(rule.resolution_multipliers) - known)
    if unknown:
        raise InvalidParameter(
            f"Unknown resolutions for model {model.id}: {', '.join(unknown)}",
            details={"param": "resolutionMultipliers", "unknown": unknown},
        )


class PricingService:
    def __init__(
        self,
        database: Database,
        *,
        repository: PricingRepository | None = None,
        cache_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._database = database
        self._repository = repository or PricingRepository()
        self._cache_seconds = cache_seconds
        self._clock = clock
        self._now = now
        self._lock = threading.Lock()
        self._cache: dict[str, tuple[PricingRule | None, float]] = {}

    def rule_for(self, model: VideoModel) -> PricingRule:
        """Effective rule for ``model``: the stored override, else the built-in default."""
        override = self._cached_override(model.id)
        return override if override is not None else model.pricing

    def list_pricing(self) -> PricingList:
        with self._database.transaction() as tx:
            rows = {row.model_id: row for row in self._repository.list_all(tx)}
            return PricingList(models=[self._entry(model, rows.get(model.id)) for model in VIDEO_MODELS])

    def get_pricing(self, model_id: str) -> ModelPricing:
        model = require_video_model(model_id)
        with self._database.transaction() as tx:
            return self._entry(model, self._repository.get(tx, model.id))

    def save_rule(
        self,
        model_id: str,
        rule: PricingRule,
        *,
        description: str | None = None,
        performed_by: str | None = None,
    ) -> ModelPricing:
        model = require_video_model(model_id)
        check_rule_for_model(model, rule)
        with self._database.transaction() as tx:
            row = self._repository.upsert(
                tx,
                model_id=model.id,
                rule=rule_to_dict(rule),
                description=description,
                updated_by=performed_by,
                now=self._now(),
            )
            entry = self._entry(model, row)
        self._invalidate(model.id)
        logger.info(
            "pricing.updated model_id=%s performed_by=%s",
            model.id,
            safe_log_identifier(performed_by, prefix="pid"),
        )
        return entry

    def delete_rule(self, model_id: str, *, performed_by: str | None = None) -> ModelPricing:
        """Drop the override so the built-in rule applies again."""
        model = require_video_model(model_id)
        with self._database.transaction() as tx:
            deleted = self._repository.delete(tx, model.id)
        self._invalidate(model.id)
        logger.info(
            "pricing.reset model_id=%s deleted=%s performed_by=%s",
            model.id,
            deleted,
            safe_log_identifier(performed_by, prefix="pid"),
        )
        return self._entry(model, None)

    def validate_rule(self, model_id: str, rule: PricingRule, test_params: Mapping[str, Any]) -> PricingValidation:
        """Dry-run a rule against the model schema and price ``test_params`` with it."""
        model = require_video_model(model_id)
        try:
            check_rule_for_model(model, rule)
            merged = validate_and_merge_params(model, test_params, enforce_required=False)
            cost = calculate_cost(rule, merged)
        except InvalidParameter as exc:
            return PricingValidation(valid=False, error=exc.payload.message)
        except ValueError as exc:
            return PricingValidation(valid=False, error=str(exc))
        return PricingValidation(valid=True, test_result=cost)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def _cached_override(self, model_id: str) -> PricingRule | None:
        now = self._clock()
        with self._lock:
            cached = self._cache.get(model_id)
            if cached is not None and now - cached[1] < self._cache_seconds:
                return cached[0]
        with self._database.transaction() as tx:
            row = self._repository.get(tx, model_id)
            override = rule_from_dict(row.rule) if row is not None else None
        with self._lock:
            self._cache[model_id] = (override, now)
        return override

    def _invalidate(self, model_id: str) -> None:
        with self._lock:
            self._cache.pop(model_id, None)

    @staticmethod
    def _entry(model: VideoModel, row: ModelPricingRow | None) -> ModelPricing:
        default_rule = PricingRuleBody.from_rule(model.pricing)
        if row is None:
            return ModelPricing(
                model_id=model.id,
                model_name=model.name,
                source=PricingSource.DEFAULT,
                rule=default_rule,
                default_rule=default_rule,
            )
        return ModelPricing(
            model_id=model.id,
            model_name=model.name,
            source=PricingSource.CUSTOM,
            rule=PricingRuleBody.from_rule(rule_from_dict(row.rule)),
            default_rule=default_rule,
            description=row.description,
            updated_by=row.updated_by,
            updated_at=row.updated_at,
        )


__all__ = ["PricingService", "check_rule_for_model"]
