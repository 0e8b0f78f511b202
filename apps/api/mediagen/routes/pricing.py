"""Admin routes for per-model pricing overrides."""

from typing import Annotated

from fastapi import APIRouter, Depends

from mediagen.routes.dependencies import get_pricing, require_admin
from mediagen.schemas.auth import AuthPrincipal
from mediagen.schemas.error import ErrorResponse
from mediagen.schemas.pricing import (
    ModelPricing,
    PricingList,
    PricingUpdateRequest,
    PricingValidateRequest,
    PricingValidation,
)
from mediagen.services.pricing import PricingService

router = APIRouter(prefix="/admin/pricing", tags=["Admin"])

_ADMIN_ERRORS = {401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}}
_MODEL_ERRORS = {400: {"model": ErrorResponse}, **_ADMIN_ERRORS}


@router.get("", response_model=PricingList, responses=_ADMIN_ERRORS)
def list_pricing(
    _: Annotated[AuthPrincipal, Depends(require_admin)],
    pricing: Annotated[PricingService, Depends(get_pricing)],
) -> PricingList:
    return pricing.list_pricing()


@router.post("", response_model=ModelPricing, responses=_MODEL_ERRORS)
def save_pricing(
    payload: PricingUpdateRequest,
    admin: Annotated[AuthPrincipal, Depends(require_admin)],
    pricing: Annotated[PricingService, Depends(get_pricing)],
) -> ModelPricing:
    return pricing.save_rule(
        payload.model_id,
        payload.rule.to_rule(),
        description=payload.description,
        performed_by=admin.user_id,
    )


@router.post("/validate", response_model=PricingValidation, responses=_MODEL_ERRORS)
def validate_pricing(
    payload: PricingValidateRequest,
    _: Annotated[AuthPrincipal, Depends(require_admin)],
    pricing: Annotated[PricingService, Depends(get_pricing)],
) -> PricingValidation:
    return pricing.validate_rule(payload.model_id, payload.rule.to_rule(), payload.test_params)


# Model ids contain slashes, so the id is taken as the rest of the path.
@router.delete("/{model_id:path}", response_model=ModelPricing, responses=_MODEL_ERRORS)
def reset_pricing(
    model_id: str,
    admin: Annotated[AuthPrincipal, Depends(require_admin)],
    pricing: Annotated[PricingService, Depends(get_pricing)],
) -> ModelPricing:
    return pricing.delete_rule(model_id, performed_by=admin.user_id)
