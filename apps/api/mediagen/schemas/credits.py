"""Credit ledger API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from mediagen.schemas.job import CamelModel


class TransactionKind(str, Enum):
    GRANT = "grant"
    DEBIT = "debit"
    REFUND = "refund"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class RelatedEntityRef(CamelModel):
    type: str
    id: str


class CreditTransaction(CamelModel):
    id: str
    amount: int
    kind: TransactionKind
    description: str | None = None
    performed_by: str | None = None
    related_entity: RelatedEntityRef | None = None
    created_at: datetime


class BalanceResponse(CamelModel):
    balance: int


class CreditHistory(CamelModel):
    balance: int
    transactions: list[CreditTransaction]
    limit: int
    offset: int


class AdminAdjustmentRequest(CamelModel):
    user_id: str = Field(min_length=1)
    amount: int
    description: str | None = None
