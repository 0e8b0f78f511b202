"""Credit balance and admin adjustment routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from mediagen.errors import InvalidParameter
from mediagen.routes.dependencies import get_authenticated_principal, get_ledger, require_admin
from mediagen.schemas.auth import AuthPrincipal
from mediagen.schemas.credits import AdminAdjustmentRequest, BalanceResponse, CreditHistory
from mediagen.schemas.error import ErrorResponse, InsufficientCreditsError
from mediagen.services.ledger import CreditLedger

router = APIRouter(tags=["Credits"])


@router.get("/credits/balance", response_model=BalanceResponse, responses={401: {"model": ErrorResponse}})
def get_balance(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    ledger: Annotated[CreditLedger, Depends(get_ledger)],
) -> BalanceResponse:
    return BalanceResponse(balance=ledger.get_balance(principal.user_id))


@router.get("/credits", response_model=CreditHistory, responses={401: {"model": ErrorResponse}})
def get_credit_history(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    ledger: Annotated[CreditLedger, Depends(get_ledger)],
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> CreditHistory:
    return CreditHistory(
        balance=ledger.get_balance(principal.user_id),
        transactions=ledger.list_transactions(principal.user_id, limit=limit, offset=offset),
        limit=limit,
        offset=offset,
    )


@router.post(
    "/admin/credits",
    response_model=BalanceResponse,
    tags=["Admin"],
    responses={
        400: {"model": ErrorResponse},
        402: {"model": InsufficientCreditsError},
        403: {"model": ErrorResponse},
    },
)
def adjust_credits(
    payload: AdminAdjustmentRequest,
    admin: Annotated[AuthPrincipal, Depends(require_admin)],
    ledger: Annotated[CreditLedger, Depends(get_ledger)],
) -> BalanceResponse:
    if payload.amount == 0:
        raise InvalidParameter("amount must be non-zero", details={"param": "amount"})
    balance = ledger.adjust(
        payload.user_id,
        payload.amount,
        performed_by=admin.user_id,
        description=payload.description,
    )
    return BalanceResponse(balance=balance)
