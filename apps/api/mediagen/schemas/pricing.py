"""Admin pricing API schemas."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import Field

from mediagen.domain.pricing import PricingRule
from mediagen.schemas.job import CamelModel


class PricingSource(str, Enum):
    DEFAULT = "default"
    CUSTOM = "custom"


class PricingRuleBody(CamelModel):
    credits_per_second: float = Field(gt=0)
    fixed_duration_seconds: float | None = Field(default=None, gt=0)
    resolution_multipliers: dict[str, Annotated[float, Field(gt=0)]] = Field(default_factory=dict)
    audio_multiplier: float = Field(default=1.0, gt=0)
    minimum: int = Field(default=1, ge=0)

    def to_rule(self) -> PricingRule:
        return PricingRule(
            credits_per_second=self.credits_per_second,
            fixed_duration_seconds=self.fixed_duration_seconds,
            resolution_multipliers=dict(self.resolution_multipliers),
            audio_multiplier=self.audio_multiplier,
            minimum=self.minimum,
        )

    @classmethod
    def from_rule(cls, rule: PricingRule) -> "PricingRuleBody":
        return cls(
            credits_per_second=rule.credits_per_second,
            fixed_duration_seconds=rule.fixed_duration_seconds,
            resolution_multipliers=dict(rule.resolution_multipliers),
            audio_multiplier=rule.audio_multiplier,
            minimum=rule.minimum,
        )


class PricingUpdateRequest(CamelModel):
    model_id: str = Field(min_length=1)
    rule: PricingRuleBody
    description: str | None = None


class PricingValidateRequest(CamelModel):
    model_id: str = Field(min_length=1)
    rule: PricingRuleBody
    test_params: dict[str, Any] = Field(default_factory=dict)


class PricingValidation(CamelModel):
    valid: bool
    error: str | None = None
    test_result: int | None = None


class ModelPricing(CamelModel):
    model_id: str
    model_name: str
    source: PricingSource
    rule: PricingRuleBody
    default_rule: PricingRuleBody
    description: str | None = None
    updated_by: str | None = None
    updated_at: datetime | None = None


class PricingList(CamelModel):
    models: list[ModelPricing]
