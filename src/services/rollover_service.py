"""Period rollover: open a billing month and seed every payer's obligation.

One rollover is one transaction. The previous period is deactivated, the new
one is created active, and each active payer gets exactly one obligation that
either carries the prior period's unpaid balance forward or is covered by a
pre-purchased advance credit. Nothing is visible until the whole rollover
commits.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Type

from src.models.advance_credit import AdvanceCredit
from src.models.audit_log import ACTION_CREATE, ENTITY_PERIOD
from src.models.billing_period import BillingPeriod
from src.models.obligation import (
    ZERO,
    Obligation,
    ObligationColumns,
    ObligationStatus,
    SalaryObligation,
)
from src.models.payer import PayerType
from src.services.audit_service import AuditService
from src.services.errors import ConflictError, InternalLedgerError, ValidationError
from src.services.ledger_store import LedgerStore
from src.services.localizer import t
from src.services.notification_service import (
    PERIOD_CREATED,
    REPORTS_UPDATED,
    NotificationService,
)

logger = logging.getLogger(__name__)

MIN_YEAR = 2000
MAX_YEAR = 2100
CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize a numeric value to cents."""
    return Decimal(value or 0).quantize(CENTS, rounding=ROUND_HALF_UP)


def was_carried_forward(obligation: ObligationColumns, successor: ObligationColumns | None) -> bool:
    """True when rollover moved the obligation's open balance into successor.

    successor is the same payer's obligation in the period right after; a
    covered tuition period carries nothing, so the debt stays where it was.
    """
    if successor is None or Decimal(obligation.outstanding) == ZERO:
        return False
    return Decimal(successor.carried_forward_amount) > ZERO


@dataclass
class RolloverResult:
    """Outcome of a committed rollover."""

    period: BillingPeriod
    message: str
    tuition_obligations: int = 0
    salary_obligations: int = 0
    credits_consumed: int = 0


def plan_tuition_obligation(
    payer_id: int,
    period_id: int,
    base_amount: Decimal,
    prior_outstanding: Decimal = ZERO,
    credit_periods_remaining: int = 0,
) -> dict:
    """Compute the new-period tuition obligation for one payer.

    An open advance credit waives the whole period: nothing is due and the
    base fee is recorded as paid. Prior debt is not merged into a covered
    period; it stays on the prior obligation. Without credit the prior
    outstanding balance is carried forward.

    Args:
        payer_id: Payer the row belongs to
        period_id: Newly created period
        base_amount: Payer fee at rollover time
        prior_outstanding: Outstanding balance of the payer's previous obligation
        credit_periods_remaining: Periods left on the payer's advance credit

    Returns:
        Column values for one `obligations` row
    """
    base = to_money(base_amount)
    row = {"payer_id": payer_id, "period_id": period_id, "base_amount": base}

    if credit_periods_remaining > 0:
        row.update(
            carried_forward_amount=ZERO,
            total_due=ZERO,
            amount_paid=base,
            outstanding=ZERO,
            status=ObligationStatus.PAID,
            advance_periods_remaining=credit_periods_remaining - 1,
        )
        return row

    carried = to_money(prior_outstanding)
    total_due = base + carried
    row.update(
        carried_forward_amount=carried,
        total_due=total_due,
        amount_paid=ZERO,
        outstanding=total_due,
        status=ObligationStatus.PAID if total_due == ZERO else ObligationStatus.UNPAID,
        advance_periods_remaining=0,
    )
    return row


def plan_salary_obligation(
    payer_id: int,
    period_id: int,
    base_amount: Decimal,
    prior_outstanding: Decimal = ZERO,
    credit_amount_per_period: Decimal = ZERO,
    credit_periods_remaining: int = 0,
) -> dict:
    """Compute the new-period salary obligation for one staff member.

    Unlike tuition, an advance only reduces the salary by the credit's
    per-period value, and an unpaid salary balance is always carried over.

    Returns:
        Column values for one `salary_obligations` row
    """
    base = to_money(base_amount)
    carried = to_money(prior_outstanding)
    consumed = credit_periods_remaining > 0
    applied = min(to_money(credit_amount_per_period), base) if consumed else ZERO

    total_due = base + carried - applied
    if total_due == ZERO:
        status = ObligationStatus.PAID
    elif applied > ZERO and carried > ZERO:
        status = ObligationStatus.PARTIAL
    elif applied > ZERO:
        status = ObligationStatus.ADVANCE_APPLIED
    elif carried > ZERO:
        status = ObligationStatus.OUTSTANDING
    else:
        status = ObligationStatus.UNPAID

    return {
        "payer_id": payer_id,
        "period_id": period_id,
        "base_amount": base,
        "carried_forward_amount": carried,
        "advance_applied_amount": applied,
        "total_due": total_due,
        "amount_paid": ZERO,
        "outstanding": total_due,
        "status": status,
        "advance_periods_remaining": credit_periods_remaining - 1 if consumed else 0,
    }


def check_planned_rows(model: Type[ObligationColumns], rows: list[dict]) -> None:
    """Raise InternalLedgerError if any planned row breaks an obligation invariant."""
    for row in rows:
        problems = model(**row).invariant_violations()
        if problems:
            logger.error(
                "Obligation invariant violated during rollover: table=%s row=%s problems=%s",
                model.__tablename__,
                row,
                problems,
            )
            raise InternalLedgerError()


class PeriodRolloverService:
    """Open billing periods and generate their obligations."""

    def __init__(self, db_session, notifier: NotificationService | None = None):
        """Initialize with database session and an optional notification sink."""
        self.db = db_session
        self.store = LedgerStore(db_session)
        self.notifier = notifier or NotificationService()

    @staticmethod
    def validate_period(year: int, month: int) -> None:
        if not isinstance(year, int) or isinstance(year, bool) or not MIN_YEAR <= year <= MAX_YEAR:
            raise ValidationError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
        if not isinstance(month, int) or isinstance(month, bool) or not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12")

    def open_period(self, year: int, month: int, actor_id: int | None = None) -> RolloverResult:
        """Open (year, month) as the single active period.

        Args:
            year: Calendar year (2000-2100)
            month: Calendar month (1-12)
            actor_id: Administrator requesting the rollover (for audit)

        Returns:
            RolloverResult with the new period and per-ledger counts

        Raises:
            ValidationError: year or month out of range
            ConflictError: a period for (year, month) already exists
            TransientStoreError: lock timeout or lost connection
            InternalLedgerError: a computed obligation broke a ledger invariant
        """
        self.validate_period(year, month)

        with self.store.transaction():
            self.store.acquire_rollover_lock()
            if self.store.find_period(year, month) is not None:
                logger.warning("Rollover rejected: period %02d/%d already exists", month, year)
                raise ConflictError(f"Period {month:02d}/{year} already exists")

            prior = self.store.latest_period_before(year, month)
            deactivated = self.store.deactivate_all_periods()
            period = self.store.add_period(year, month, is_active=True)

            tuition_count, tuition_credits = self._roll_tuition(period, prior)
            salary_count, salary_credits = self._roll_salaries(period, prior)

            AuditService.log(
                self.db,
                ENTITY_PERIOD,
                period.id,
                ACTION_CREATE,
                actor_id=actor_id,
                changes={
                    "year": year,
                    "month": month,
                    "prior_period_id": prior.id if prior else None,
                    "deactivated": deactivated,
                    "tuition_obligations": tuition_count,
                    "salary_obligations": salary_count,
                    "credits_consumed": tuition_credits + salary_credits,
                },
            )
            payload = {
                "id": period.id,
                "year": period.year,
                "month": period.month,
                "is_active": period.is_active,
                "prior_period_id": prior.id if prior else None,
            }

        result = RolloverResult(
            period=period,
            message=t("messages.period_created"),
            tuition_obligations=tuition_count,
            salary_obligations=salary_count,
            credits_consumed=tuition_credits + salary_credits,
        )
        logger.info(
            "Opened period %02d/%d (id=%s): %d tuition, %d salary obligations, %d credits consumed",
            month,
            year,
            payload["id"],
            tuition_count,
            salary_count,
            result.credits_consumed,
        )

        self.notifier.emit(PERIOD_CREATED, payload)
        self.notifier.emit(REPORTS_UPDATED, {"period_id": payload["id"]})
        return result

    def _prior_balances(
        self, model: Type[ObligationColumns], prior: BillingPeriod | None
    ) -> dict[int, ObligationColumns]:
        if prior is None:
            return {}
        return self.store.obligations_by_payer(model, prior.id, for_update=True)

    def _roll_tuition(self, period: BillingPeriod, prior: BillingPeriod | None) -> tuple[int, int]:
        payers = self.store.list_billable_payers(PayerType.TUITION)
        previous = self._prior_balances(Obligation, prior)
        credits = self.store.open_credits_by_payer(PayerType.TUITION)

        rows: list[dict] = []
        consumed: list[AdvanceCredit] = []
        for payer in payers:
            last = previous.get(payer.id)
            credit = credits.get(payer.id)
            remaining = credit.periods_remaining if credit else 0
            rows.append(
                plan_tuition_obligation(
                    payer.id,
                    period.id,
                    payer.fee_amount,
                    prior_outstanding=last.outstanding if last else ZERO,
                    credit_periods_remaining=remaining,
                )
            )
            if remaining > 0:
                consumed.append(credit)

        return self._write(Obligation, rows, consumed)

    def _roll_salaries(self, period: BillingPeriod, prior: BillingPeriod | None) -> tuple[int, int]:
        staff = self.store.list_billable_payers(PayerType.STAFF)
        previous = self._prior_balances(SalaryObligation, prior)
        credits = self.store.open_credits_by_payer(PayerType.STAFF)

        rows: list[dict] = []
        consumed: list[AdvanceCredit] = []
        for member in staff:
            last = previous.get(member.id)
            credit = credits.get(member.id)
            remaining = credit.periods_remaining if credit else 0
            rows.append(
                plan_salary_obligation(
                    member.id,
                    period.id,
                    member.fee_amount,
                    prior_outstanding=last.outstanding if last else ZERO,
                    credit_amount_per_period=credit.amount_per_period if credit else ZERO,
                    credit_periods_remaining=remaining,
                )
            )
            if remaining > 0:
                consumed.append(credit)

        return self._write(SalaryObligation, rows, consumed)

    def _write(
        self,
        model: Type[ObligationColumns],
        rows: list[dict],
        consumed: list[AdvanceCredit],
    ) -> tuple[int, int]:
        check_planned_rows(model, rows)
        inserted = self.store.batch_insert_obligations(model, rows)
        decremented = self.store.batch_decrement_credits([credit.id for credit in consumed])
        if decremented != len(consumed):
            logger.error(
                "Advance credit decrement mismatch on %s: expected=%d actual=%d credits=%s",
                model.__tablename__,
                len(consumed),
                decremented,
                [credit.id for credit in consumed],
            )
            raise InternalLedgerError()
        return inserted, decremented


__all__ = [
    "PeriodRolloverService",
    "RolloverResult",
    "check_planned_rows",
    "plan_salary_obligation",
    "plan_tuition_obligation",
    "to_money",
    "was_carried_forward",
]
