"""Credit ledger: append-only transaction log plus denormalized balance.

``CreditLedger`` is the only writer of ``credit_accounts.balance``. Every
mutation inserts a transaction row and updates the balance inside the same
database transaction, so ``balance == sum(amount)`` holds at every commit.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mediagen.core.database import Database
from mediagen.core.logging_safety import safe_log_identifier
from mediagen.errors import InsufficientCredits
from mediagen.repositories.tables import CreditAccountRow, CreditTransactionRow
from mediagen.schemas.credits import CreditTransaction, RelatedEntityRef, TransactionKind

logger = logging.getLogger(__name__)

GENERATION_JOB_ENTITY = "generation_job"


@dataclass(frozen=True, slots=True)
class RelatedEntity:
    """Weak reference from a ledger entry to the business object it pays for."""

    type: str
    id: str

    @classmethod
    def generation_job(cls, job_id: str) -> "RelatedEntity":
        return cls(type=GENERATION_JOB_ENTITY, id=job_id)


class CreditLedger:
    def __init__(self, database: Database) -> None:
        self._database = database

    def grant(
        self,
        user_id: str,
        amount: int,
        *,
        kind: TransactionKind = TransactionKind.GRANT,
        description: str | None = None,
        performed_by: str | None = None,
        related_entity: RelatedEntity | None = None,
        session: Session | None = None,
    ) -> int:
        """Credit ``amount`` to the account and return the new balance."""
        if amount <= 0:
            raise ValueError("Grant amount must be positive")

        with self._database.transaction(session) as tx:
            account = self._lock_account(tx, user_id)
            self._append(
                tx,
                account,
                amount=amount,
                kind=kind,
                description=description,
                performed_by=performed_by,
                related_entity=related_entity,
            )
            new_balance = account.balance

        logger.info(
            "credits.granted user_id=%s amount=%s kind=%s",
            safe_log_identifier(user_id, prefix="uid"),
            amount,
            kind.value,
        )
        return new_balance

    def debit(
        self,
        user_id: str,
        amount: int,
        *,
        kind: TransactionKind = TransactionKind.DEBIT,
        description: str | None = None,
        related_entity: RelatedEntity | None = None,
        session: Session | None = None,
    ) -> int:
        """Charge ``amount`` and return the new balance.

        Raises ``InsufficientCredits`` before writing anything when the
        balance would go negative.
        """
        if amount <= 0:
            raise ValueError("Debit amount must be positive")

        with self._database.transaction(session) as tx:
            account = self._lock_account(tx, user_id)
            if account.balance - amount < 0:
                logger.info(
                    "credits.insufficient user_id=%s cost=%s",
                    safe_log_identifier(user_id, prefix="uid"),
                    amount,
                )
                raise InsufficientCredits(cost=amount, balance=account.balance)
            self._append(
                tx,
                account,
                amount=-amount,
                kind=kind,
                description=description,
                related_entity=related_entity,
            )
            new_balance = account.balance

        return new_balance

    def refund_by_related_entity(
        self,
        related_entity: RelatedEntity,
        *,
        description: str | None = None,
        session: Session | None = None,
    ) -> int | None:
        """Refund the debit recorded against ``related_entity`` at most once.

        Returns the refunded amount, or ``None`` when there is no debit to
        refund or a refund already exists.
        """
        with self._database.transaction(session) as tx:
            debit = self._find_entry(tx, related_entity, TransactionKind.DEBIT)
            if debit is None:
                return None
            if self._find_entry(tx, related_entity, TransactionKind.REFUND) is not None:
                return None

            refund_amount = abs(debit.amount)
            account = self._lock_account(tx, debit.user_id)
            try:
                with tx.begin_nested():
                    self._append(
                        tx,
                        account,
                        amount=refund_amount,
                        kind=TransactionKind.REFUND,
                        description=description,
                        related_entity=related_entity,
                    )
            except IntegrityError:
                # A concurrent writer inserted the refund first.
                tx.refresh(account)
                logger.info(
                    "credits.refund_replayed entity_type=%s entity_id=%s",
                    related_entity.type,
                    safe_log_identifier(related_entity.id, prefix="eid"),
                )
                return None

        logger.info(
            "credits.refunded user_id=%s amount=%s entity_type=%s entity_id=%s",
            safe_log_identifier(debit.user_id, prefix="uid"),
            refund_amount,
            related_entity.type,
            safe_log_identifier(related_entity.id, prefix="eid"),
        )
        return refund_amount

    def adjust(
        self,
        user_id: str,
        amount: int,
        *,
        performed_by: str,
        description: str | None = None,
        session: Session | None = None,
    ) -> int:
        """Manual admin correction in either direction."""
        if amount == 0:
            raise ValueError("Adjustment amount must be non-zero")

        with self._database.transaction(session) as tx:
            account = self._lock_account(tx, user_id)
            if account.balance + amount < 0:
                raise InsufficientCredits(cost=-amount, balance=account.balance)
            self._append(
                tx,
                account,
                amount=amount,
                kind=TransactionKind.ADMIN_ADJUSTMENT,
                description=description,
                performed_by=performed_by,
            )
            new_balance = account.balance

        logger.info(
            "credits.adjusted user_id=%s amount=%s performed_by=%s",
            safe_log_identifier(user_id, prefix="uid"),
            amount,
            safe_log_identifier(performed_by, prefix="uid"),
        )
        return new_balance

    def get_balance(self, user_id: str, *, session: Session | None = None) -> int:
        with self._database.transaction(session) as tx:
            return self._get_or_create_account(tx, user_id).balance

    def list_transactions(
        self,
        user_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        session: Session | None = None,
    ) -> list[CreditTransaction]:
        with self._database.transaction(session) as tx:
            rows = tx.scalars(
                select(CreditTransactionRow)
                .where(CreditTransactionRow.user_id == user_id)
                .order_by(CreditTransactionRow.created_at.desc(), CreditTransactionRow.id)
                .limit(limit)
                .offset(offset)
            ).all()
            return [_to_transaction(row) for row in rows]

    def recompute_balance(self, user_id: str, *, session: Session | None = None) -> int:
        with self._database.transaction(session) as tx:
            total = tx.scalar(
                select(func.coalesce(func.sum(CreditTransactionRow.amount), 0)).where(
                    CreditTransactionRow.user_id == user_id
                )
            )
            return int(total or 0)

    def verify_balance(self, user_id: str, *, session: Session | None = None) -> bool:
        with self._database.transaction(session) as tx:
            account = tx.get(CreditAccountRow, user_id)
            recorded = account.balance if account is not None else 0
            return recorded == self.recompute_balance(user_id, session=tx)

    def find_entry(
        self,
        related_entity: RelatedEntity,
        kind: TransactionKind,
        *,
        session: Session | None = None,
    ) -> CreditTransaction | None:
        with self._database.transaction(session) as tx:
            row = self._find_entry(tx, related_entity, kind)
            return _to_transaction(row) if row is not None else None

    def _get_or_create_account(self, tx: Session, user_id: str) -> CreditAccountRow:
        account = tx.get(CreditAccountRow, user_id)
        if account is not None:
            return account
        try:
            with tx.begin_nested():
                account = CreditAccountRow(user_id=user_id, balance=0)
                tx.add(account)
        except IntegrityError:
            # Created concurrently by another transaction.
            account = tx.get(CreditAccountRow, user_id, populate_existing=True)
            if account is None:
                raise
        return account

    def _lock_account(self, tx: Session, user_id: str) -> CreditAccountRow:
        self._get_or_create_account(tx, user_id)
        return tx.scalars(
            select(CreditAccountRow)
            .where(CreditAccountRow.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one()

    def _find_entry(
        self,
        tx: Session,
        related_entity: RelatedEntity,
        kind: TransactionKind,
    ) -> CreditTransactionRow | None:
        return tx.scalars(
            select(CreditTransactionRow).where(
                CreditTransactionRow.related_entity_type == related_entity.type,
                CreditTransactionRow.related_entity_id == related_entity.id,
                CreditTransactionRow.kind == kind.value,
            )
        ).one_or_none()

    def _append(
        self,
        tx: Session,
        account: CreditAccountRow,
        *,
        amount: int,
        kind: TransactionKind,
        description: str | None,
        performed_by: str | None = None,
        related_entity: RelatedEntity | None = None,
    ) -> CreditTransactionRow:
        row = CreditTransactionRow(
            user_id=account.user_id,
            amount=amount,
            kind=kind.value,
            description=description,
            performed_by=performed_by,
            related_entity_type=related_entity.type if related_entity else None,
            related_entity_id=related_entity.id if related_entity else None,
        )
        tx.add(row)
        account.balance += amount
        tx.flush()
        return row


def _to_transaction(row: CreditTransactionRow) -> CreditTransaction:
    related = None
    if row.related_entity_type is not None and row.related_entity_id is not None:
        related = RelatedEntityRef(type=row.related_entity_type, id=row.related_entity_id)
    return CreditTransaction(
        id=row.id,
        amount=row.amount,
        kind=TransactionKind(row.kind),
        description=row.description,
        performed_by=row.performed_by,
        related_entity=related,
        created_at=row.created_at,
    )
