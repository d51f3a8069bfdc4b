"""Ledger store: transactional reads and writes for periods, obligations,
advance credits and payments.

The store holds no business rules. Services open one `transaction()` per
caller operation and do all of their reads and writes inside it.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Sequence, Type

from sqlalchemy import func, insert, or_, select, text, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, selectinload

from src.models.advance_credit import AdvanceCredit
from src.models.billing_period import BillingPeriod
from src.models.obligation import (
    Obligation,
    ObligationColumns,
    ObligationStatus,
    SalaryObligation,
)
from src.models.payer import Payer, PayerStatus, PayerType
from src.models.payment import Payment
from src.services.config import get_settings
from src.services.errors import (
    ConflictError,
    InternalLedgerError,
    LedgerError,
    TransientStoreError,
)

logger = logging.getLogger(__name__)

# Key for pg_advisory_xact_lock serialising rollovers ("ROLL" in ASCII)
ROLLOVER_LOCK_KEY = 0x524F4C4C

OBLIGATION_MODELS: dict[PayerType, Type[ObligationColumns]] = {
    PayerType.TUITION: Obligation,
    PayerType.STAFF: SalaryObligation,
}


def obligation_model_for(payer_type: PayerType) -> Type[ObligationColumns]:
    """Tuition payers live in `obligations`, staff in `salary_obligations`."""
    return OBLIGATION_MODELS[PayerType(payer_type)]


@dataclass
class ObligationFilter:
    """Typed filter for obligation listings."""

    payer_type: PayerType = PayerType.TUITION
    status: ObligationStatus | None = None
    search: str | None = None
    department: str | None = None


@dataclass
class PayerFilter:
    """Typed filter for payer listings."""

    payer_type: PayerType | None = None
    status: PayerStatus | None = None
    search: str | None = None
    department: str | None = None


def _chunks(items: Sequence, size: int) -> Iterator[Sequence]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class LedgerStore:
    """Persistence operations scoped to one session and one transaction."""

    def __init__(
        self,
        db: Session,
        batch_size: int | None = None,
        timeout_ms: int | None = None,
    ):
        """Initialize with database session.

        Args:
            db: SQLAlchemy session owned by the caller
            batch_size: Rows per batched statement (default: ROLLOVER_BATCH_SIZE)
            timeout_ms: Lock/statement deadline (default: TRANSACTION_TIMEOUT_MS)
        """
        settings = get_settings()
        self.db = db
        self.batch_size = batch_size or settings.rollover_batch_size
        self.timeout_ms = timeout_ms or settings.transaction_timeout_ms

    @property
    def dialect(self) -> str:
        return self.db.get_bind().dialect.name

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Run the enclosed block as one all-or-nothing transaction.

        Ledger errors propagate unchanged. Database failures are classified:
        constraint violations become ConflictError, lock timeouts and lost
        connections become TransientStoreError, anything else is logged and
        surfaced as InternalLedgerError. Any other exception, cancellation
        included, rolls back and propagates.
        """
        try:
            self._apply_deadline()
            yield self.db
            self.db.commit()
        except LedgerError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Ledger transaction hit a constraint: %s", e.orig)
            raise ConflictError("The change conflicts with existing ledger data") from e
        except OperationalError as e:
            self.db.rollback()
            logger.warning("Ledger transaction aborted by the store: %s", e.orig)
            raise TransientStoreError() from e
        except DBAPIError as e:
            self.db.rollback()
            if e.connection_invalidated:
                logger.warning("Ledger connection lost: %s", e.orig)
                raise TransientStoreError() from e
            logger.exception("Unexpected store failure")
            raise InternalLedgerError() from e
        except BaseException:
            self.db.rollback()
            raise

    def _apply_deadline(self) -> None:
        if self.dialect == "postgresql":
            # SET LOCAL does not accept bind parameters; the value is an int from settings
            timeout = int(self.timeout_ms)
            self.db.execute(text(f"SET LOCAL lock_timeout = {timeout}"))
            self.db.execute(text(f"SET LOCAL statement_timeout = {timeout}"))

    def acquire_rollover_lock(self) -> None:
        """Serialise rollovers for the rest of the transaction."""
        if self.dialect == "postgresql":
            self.db.execute(select(func.pg_advisory_xact_lock(ROLLOVER_LOCK_KEY)))
        self.db.execute(
            select(BillingPeriod.id).where(BillingPeriod.is_active.is_(True)).with_for_update()
        ).all()

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    def get_period(self, period_id: int) -> BillingPeriod | None:
        return self.db.get(BillingPeriod, period_id)

    def get_period_for_update(self, period_id: int) -> BillingPeriod | None:
        return self.db.execute(
            select(BillingPeriod)
            .where(BillingPeriod.id == period_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def find_period(self, year: int, month: int) -> BillingPeriod | None:
        return self.db.execute(
            select(BillingPeriod).where(BillingPeriod.year == year, BillingPeriod.month == month)
        ).scalar_one_or_none()

    def get_active_period(self) -> BillingPeriod | None:
        return self.db.execute(
            select(BillingPeriod)
            .where(BillingPeriod.is_active.is_(True))
            .order_by(BillingPeriod.year.desc(), BillingPeriod.month.desc())
            .limit(1)
        ).scalar_one_or_none()

    def list_periods(self, limit: int | None = None) -> list[BillingPeriod]:
        stmt = select(BillingPeriod).order_by(
            BillingPeriod.year.desc(), BillingPeriod.month.desc()
        )
        if limit:
            stmt = stmt.limit(limit)
        return list(self.db.execute(stmt).scalars())

    def latest_period_before(self, year: int, month: int) -> BillingPeriod | None:
        """Most recent period strictly before (year, month)."""
        return self.db.execute(
            select(BillingPeriod)
            .where(
                or_(
                    BillingPeriod.year < year,
                    (BillingPeriod.year == year) & (BillingPeriod.month < month),
                )
            )
            .order_by(BillingPeriod.year.desc(), BillingPeriod.month.desc())
            .limit(1)
        ).scalar_one_or_none()

    def next_period_after(self, year: int, month: int) -> BillingPeriod | None:
        """Earliest period strictly after (year, month)."""
        return self.db.execute(
            select(BillingPeriod)
            .where(
                or_(
                    BillingPeriod.year > year,
                    (BillingPeriod.year == year) & (BillingPeriod.month > month),
                )
            )
            .order_by(BillingPeriod.year, BillingPeriod.month)
            .limit(1)
        ).scalar_one_or_none()

    def deactivate_all_periods(self) -> int:
        result = self.db.execute(
            update(BillingPeriod)
            .where(BillingPeriod.is_active.is_(True))
            .values(is_active=False)
        )
        return result.rowcount

    def add_period(self, year: int, month: int, is_active: bool = True) -> BillingPeriod:
        period = BillingPeriod(year=year, month=month, is_active=is_active)
        self.db.add(period)
        self.db.flush()
        return period

    def delete_period(self, period: BillingPeriod) -> None:
        self.db.delete(period)
        self.db.flush()

    def detach_credits_from_period(self, period_id: int) -> int:
        """Clear last_payment_id on credits topped up by payments of one period."""
        result = self.db.execute(
            update(AdvanceCredit)
            .where(
                AdvanceCredit.last_payment_id.in_(
                    select(Payment.id).where(Payment.period_id == period_id)
                )
            )
            .values(last_payment_id=None)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    # ------------------------------------------------------------------
    # Payers
    # ------------------------------------------------------------------

    def get_payer(self, payer_id: int) -> Payer | None:
        return self.db.get(Payer, payer_id)

    def list_billable_payers(self, payer_type: PayerType) -> list[Payer]:
        return list(
            self.db.execute(
                select(Payer)
                .where(Payer.payer_type == payer_type, Payer.status == PayerStatus.ACTIVE)
                .order_by(Payer.id)
            ).scalars()
        )

    def list_payers(
        self, filters: PayerFilter, limit: int | None = None, offset: int = 0
    ) -> list[Payer]:
        stmt = select(Payer)
        if filters.payer_type is not None:
            stmt = stmt.where(Payer.payer_type == filters.payer_type)
        if filters.status is not None:
            stmt = stmt.where(Payer.status == filters.status)
        if filters.department:
            stmt = stmt.where(Payer.department == filters.department)
        if filters.search:
            pattern = f"%{filters.search}%"
            stmt = stmt.where(or_(Payer.name.ilike(pattern), Payer.phone_number.ilike(pattern)))
        stmt = stmt.order_by(Payer.name, Payer.id).offset(offset)
        if limit:
            stmt = stmt.limit(limit)
        return list(self.db.execute(stmt).scalars())

    # ------------------------------------------------------------------
    # Obligations
    # ------------------------------------------------------------------

    def obligations_by_payer(
        self, model: Type[ObligationColumns], period_id: int, for_update: bool = False
    ) -> dict[int, ObligationColumns]:
        """Map payer_id -> obligation for one period.

        With for_update the rows stay locked until the transaction ends, so a
        payment cannot change a balance while it is being carried forward.
        """
        stmt = select(model).where(model.period_id == period_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        rows = self.db.execute(stmt).scalars()
        return {row.payer_id: row for row in rows}

    def get_obligation(
        self, model: Type[ObligationColumns], payer_id: int, period_id: int
    ) -> ObligationColumns | None:
        return self.db.execute(
            select(model).where(model.payer_id == payer_id, model.period_id == period_id)
        ).scalar_one_or_none()

    def payer_obligations(
        self, model: Type[ObligationColumns], payer_id: int
    ) -> list[ObligationColumns]:
        """All obligations of one payer, oldest period first."""
        return list(
            self.db.execute(
                select(model)
                .join(BillingPeriod, BillingPeriod.id == model.period_id)
                .where(model.payer_id == payer_id)
                .options(selectinload(model.period))
                .order_by(BillingPeriod.year, BillingPeriod.month)
            ).scalars()
        )

    def get_obligation_for_update(
        self, model: Type[ObligationColumns], payer_id: int, period_id: int
    ) -> ObligationColumns | None:
        """Read one obligation holding a row lock until the transaction ends."""
        return self.db.execute(
            select(model)
            .where(model.payer_id == payer_id, model.period_id == period_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def add_obligation(self, obligation: ObligationColumns) -> ObligationColumns:
        self.db.add(obligation)
        self.db.flush()
        return obligation

    def batch_insert_obligations(self, model: Type[ObligationColumns], rows: list[dict]) -> int:
        """Insert obligation rows in chunks inside the current transaction."""
        for chunk in _chunks(rows, self.batch_size):
            self.db.execute(insert(model), list(chunk))
        return len(rows)

    def list_obligations(self, period_id: int, filters: ObligationFilter) -> list[ObligationColumns]:
        model = obligation_model_for(filters.payer_type)
        stmt = (
            select(model)
            .join(Payer, Payer.id == model.payer_id)
            .where(model.period_id == period_id)
            .options(selectinload(model.payer))
        )
        if filters.status is not None:
            stmt = stmt.where(model.status == filters.status)
        if filters.department:
            stmt = stmt.where(Payer.department == filters.department)
        if filters.search:
            pattern = f"%{filters.search}%"
            stmt = stmt.where(or_(Payer.name.ilike(pattern), Payer.phone_number.ilike(pattern)))
        stmt = stmt.order_by(Payer.name)
        return list(self.db.execute(stmt).scalars())

    # ------------------------------------------------------------------
    # Advance credits
    # ------------------------------------------------------------------

    def open_credits_by_payer(self, payer_type: PayerType) -> dict[int, AdvanceCredit]:
        """Map payer_id -> credit with periods remaining, for active payers of one type."""
        rows = self.db.execute(
            select(AdvanceCredit)
            .join(Payer, Payer.id == AdvanceCredit.payer_id)
            .where(
                AdvanceCredit.periods_remaining > 0,
                Payer.payer_type == payer_type,
                Payer.status == PayerStatus.ACTIVE,
            )
            .with_for_update(of=AdvanceCredit)
        ).scalars()
        return {row.payer_id: row for row in rows}

    def get_credit(self, payer_id: int) -> AdvanceCredit | None:
        return self.db.execute(
            select(AdvanceCredit).where(AdvanceCredit.payer_id == payer_id)
        ).scalar_one_or_none()

    def get_credit_for_update(self, payer_id: int) -> AdvanceCredit | None:
        return self.db.execute(
            select(AdvanceCredit)
            .where(AdvanceCredit.payer_id == payer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def add_credit(self, credit: AdvanceCredit) -> AdvanceCredit:
        self.db.add(credit)
        self.db.flush()
        return credit

    def batch_decrement_credits(self, credit_ids: list[int]) -> int:
        """Consume one period from each listed credit."""
        consumed = 0
        for chunk in _chunks(credit_ids, self.batch_size):
            result = self.db.execute(
                update(AdvanceCredit)
                .where(AdvanceCredit.id.in_(list(chunk)), AdvanceCredit.periods_remaining > 0)
                .values(periods_remaining=AdvanceCredit.periods_remaining - 1)
            )
            consumed += result.rowcount
        return consumed

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def add_payment(self, payment: Payment) -> Payment:
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_payment(self, payment_id: int) -> Payment | None:
        return self.db.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .options(selectinload(Payment.line_items))
        ).scalar_one_or_none()

    def payer_payments(self, payer_id: int, limit: int | None = None) -> list[Payment]:
        """Payments of one payer with their line items, newest first."""
        stmt = (
            select(Payment)
            .where(Payment.payer_id == payer_id)
            .options(selectinload(Payment.line_items), selectinload(Payment.period))
            .order_by(Payment.created_at.desc(), Payment.id.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return list(self.db.execute(stmt).scalars())

    def count_payments(self, period_id: int) -> int:
        return self.db.execute(
            select(func.count(Payment.id)).where(Payment.period_id == period_id)
        ).scalar_one()


__all__ = [
    "LedgerStore",
    "ObligationFilter",
    "OBLIGATION_MODELS",
    "PayerFilter",
    "ROLLOVER_LOCK_KEY",
    "obligation_model_for",
]
