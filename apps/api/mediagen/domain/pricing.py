"""Deterministic credit pricing for generation requests."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import math
from typing import Any

DURATION_PARAM = "duration"
RESOLUTION_PARAM = "resolution"
AUDIO_PARAM = "generate_audio"


@dataclass(frozen=True, slots=True)
class PricingRule:
    """Per-second pricing with optional resolution and audio multipliers.

    Models without a ``duration`` parameter render a fixed-length clip and
    declare it through ``fixed_duration_seconds``.
    """

    credits_per_second: float
    fixed_duration_seconds: float | None = None
    resolution_multipliers: Mapping[str, float] = field(default_factory=dict)
    audio_multiplier: float = 1.0
    minimum: int = 1


def _duration_seconds(rule: PricingRule, params: Mapping[str, Any]) -> float:
    raw = params.get(DURATION_PARAM)
    if raw is None:
        if rule.fixed_duration_seconds is None:
            raise ValueError("Model pricing requires a duration")
        return rule.fixed_duration_seconds
    if isinstance(raw, bool):
        raise ValueError("Duration must be numeric")
    if isinstance(raw, (int, float)):
        return float(raw)
    # Some providers express duration as "8s".
    return float(str(raw).strip().removesuffix("s"))


def calculate_cost(rule: PricingRule, params: Mapping[str, Any]) -> int:
    """Return the credit cost for merged parameters. Pure and deterministic."""
    seconds = _duration_seconds(rule, params)
    multiplier = 1.0
    resolution = params.get(RESOLUTION_PARAM)
    if resolution is not None:
        multiplier *= rule.resolution_multipliers.get(str(resolution), 1.0)
    if params.get(AUDIO_PARAM) is True:
        multiplier *= rule.audio_multiplier

    cost = math.ceil(round(rule.credits_per_second * seconds * multiplier, 6))
    return max(rule.minimum, cost)


def rule_to_dict(rule: PricingRule) -> dict[str, Any]:
    """JSON-ready form of a rule, as persisted in ``model_pricing.rule``."""
    return {
        "credits_per_second": rule.credits_per_second,
        "fixed_duration_seconds": rule.fixed_duration_seconds,
        "resolution_multipliers": dict(rule.resolution_multipliers),
        "audio_multiplier": rule.audio_multiplier,
        "minimum": rule.minimum,
    }


def rule_from_dict(data: Mapping[str, Any]) -> PricingRule:
    fixed = data.get("fixed_duration_seconds")
    return PricingRule(
        credits_per_second=float(data["credits_per_second"]),
        fixed_duration_seconds=float(fixed) if fixed is not None else None,
        resolution_multipliers={str(k): float(v) for k, v in (data.get("resolution_multipliers") or {}).items()},
        audio_multiplier=float(data.get("audio_multiplier", 1.0)),
        minimum=int(data.get("minimum", 1)),
    )
