"""Payment application: validate and record one payment against an obligation.

Provides methods for:
- Applying normal, partial and advance payments (tuition and salary)
- Upserting the payer's single advance credit balance
- Building the human-readable payment notice
- Fetching payment receipts
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Type

from src.models.advance_credit import AdvanceCredit
from src.models.audit_log import ACTION_CREATE, ENTITY_PAYMENT
from src.models.billing_period import BillingPeriod
from src.models.obligation import ZERO, ObligationColumns, ObligationStatus
from src.models.payer import Payer, PayerType
from src.models.payment import LineItemType, Payment, PaymentKind, PaymentLineItem
from src.services.audit_service import AuditService
from src.services.config import get_settings
from src.services.errors import (
    ConflictError,
    InternalLedgerError,
    NotFoundError,
    ValidationError,
)
from src.services.ledger_store import LedgerStore, obligation_model_for
from src.services.locale_service import format_amount
from src.services.localizer import t
from src.services.notification_service import (
    OBLIGATION_UPDATED,
    PAYER_UPDATED,
    PAYMENT_CREATED,
    REPORTS_UPDATED,
    NotificationService,
)
from src.services.rollover_service import CENTS, to_money, was_carried_forward

logger = logging.getLogger(__name__)

NOTICE_MAX_LENGTH = 500


@dataclass
class PaymentResult:
    """Outcome of a committed payment."""

    payment: Payment
    notice_text: str
    remaining_balance: Decimal
    obligation: ObligationColumns


@dataclass
class Receipt:
    """Payment with the payer and period it was recorded against."""

    payment: Payment
    payer: Payer
    period: BillingPeriod


def parse_amount(amount) -> Decimal:
    """Convert a payment amount to Decimal cents.

    Raises:
        ValidationError: not a number, not positive, or finer than one cent
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {amount!r}")
    if value <= ZERO:
        raise ValidationError("Amount must be positive")
    if value != value.quantize(CENTS):
        raise ValidationError("Amount must not have more than two decimal places")
    return value.quantize(CENTS)


def parse_kind(kind) -> PaymentKind:
    try:
        return PaymentKind(kind)
    except ValueError:
        allowed = ", ".join(k.value for k in PaymentKind)
        raise ValidationError(f"Invalid payment kind {kind!r}. Must be one of: {allowed}")


def split_line_items(
    amount: Decimal, base_amount: Decimal, paid_before: Decimal, advance_applied: Decimal = ZERO
) -> list[PaymentLineItem]:
    """Split a settlement payment into base-fee and carried-forward portions.

    The base portion is whatever of the current period's own charge was still
    open; anything beyond it settles inherited debt. Reporting only.
    """
    base_open = max(ZERO, base_amount - advance_applied - paid_before)
    base_portion = min(amount, base_open)
    items = []
    if base_portion > ZERO:
        items.append(PaymentLineItem(item_type=LineItemType.BASE_FEE, amount=base_portion))
    if amount - base_portion > ZERO:
        items.append(
            PaymentLineItem(item_type=LineItemType.CARRIED_FORWARD, amount=amount - base_portion)
        )
    return items


def settle(obligation: ObligationColumns, amount: Decimal, kind: PaymentKind) -> None:
    """Apply a normal or partial payment to an obligation in place.

    Raises:
        ConflictError: already paid, overpayment, or a partial payment that
            would settle the obligation
    """
    outstanding = Decimal(obligation.outstanding)
    if obligation.status == ObligationStatus.PAID:
        raise ConflictError("This obligation is already fully paid")
    if kind == PaymentKind.NORMAL and amount > outstanding:
        raise ConflictError(
            f"Amount {amount} exceeds the outstanding balance of {outstanding}"
        )
    if kind == PaymentKind.PARTIAL and amount >= outstanding:
        raise ConflictError(
            f"A partial payment must be less than the outstanding balance of {outstanding}; "
            "use a normal payment to settle it"
        )

    obligation.amount_paid = Decimal(obligation.amount_paid) + amount
    obligation.outstanding = max(ZERO, Decimal(obligation.total_due) - obligation.amount_paid)
    obligation.status = (
        ObligationStatus.PAID if obligation.outstanding == ZERO else ObligationStatus.PARTIAL
    )


class PaymentApplicationService:
    """Record payments and keep obligations and advance credits consistent."""

    def __init__(self, db_session, notifier: NotificationService | None = None):
        """Initialize with database session and an optional notification sink."""
        self.db = db_session
        self.store = LedgerStore(db_session)
        self.notifier = notifier or NotificationService()

    def apply_payment(
        self,
        payer_id: int,
        period_id: int,
        amount,
        kind: PaymentKind | str = PaymentKind.NORMAL,
        advance_periods: int | None = None,
        note: str | None = None,
        collected_by: int | None = None,
    ) -> PaymentResult:
        """Validate and apply one payment in a single transaction.

        Args:
            payer_id: Payer the payment belongs to
            period_id: Period whose obligation is targeted
            amount: Positive amount, at most two decimal places
            kind: normal, partial or advance
            advance_periods: Number of future periods bought (advance only)
            note: Free-text note stored with the payment
            collected_by: Identity of the collector

        Returns:
            PaymentResult with the payment, its notice and the remaining balance

        Raises:
            ValidationError: bad amount, kind or advance_periods
            NotFoundError: unknown payer or period, or no obligation to settle
            ConflictError: suspended payer or a settlement rule was broken
            TransientStoreError: lock timeout or lost connection
            InternalLedgerError: the update would break a ledger invariant
        """
        amount = parse_amount(amount)
        kind = parse_kind(kind)
        if kind == PaymentKind.ADVANCE:
            valid = isinstance(advance_periods, int) and not isinstance(advance_periods, bool)
            if not valid or advance_periods < 1:
                raise ValidationError("Advance payments require advance_periods of at least 1")
        else:
            advance_periods = None

        with self.store.transaction():
            payer = self.store.get_payer(payer_id)
            if payer is None:
                raise NotFoundError(f"Payer {payer_id} not found")
            period = self.store.get_period(period_id)
            if period is None:
                raise NotFoundError(f"Period {period_id} not found")
            if payer.payer_type == PayerType.TUITION and payer.is_suspended:
                logger.warning("Payment rejected: payer %s is suspended", payer.id)
                raise ConflictError(f"Payer {payer.name} is suspended")

            model = obligation_model_for(payer.payer_type)
            obligation = self.store.get_obligation_for_update(model, payer.id, period.id)
            if obligation is None:
                if kind != PaymentKind.ADVANCE:
                    raise NotFoundError(
                        f"No obligation for payer {payer.id} in period {period.label}"
                    )
                obligation = self._open_obligation(model, payer, period)

            paid_before = Decimal(obligation.amount_paid)
            if kind == PaymentKind.ADVANCE:
                obligation.advance_periods_remaining = advance_periods
                if Decimal(obligation.outstanding) > ZERO:
                    obligation.status = ObligationStatus.ADVANCED
                line_items = [
                    PaymentLineItem(
                        item_type=LineItemType.ADVANCE,
                        amount=amount,
                        periods_covered=advance_periods,
                    )
                ]
                remaining = ZERO
            else:
                self._reject_carried_balance(model, payer, period, obligation)
                try:
                    settle(obligation, amount, kind)
                except ConflictError as e:
                    logger.warning(
                        "Payment rejected for payer %s period %s: %s", payer.id, period.id, e.message
                    )
                    raise
                line_items = split_line_items(
                    amount,
                    Decimal(obligation.base_amount),
                    paid_before,
                    Decimal(getattr(obligation, "advance_applied_amount", ZERO) or ZERO),
                )
                remaining = Decimal(obligation.outstanding)

            self._check_invariants(obligation)

            notice = self.build_notice(payer, period, kind, amount, remaining, advance_periods)
            payment = self.store.add_payment(
                Payment(
                    payer_id=payer.id,
                    period_id=period.id,
                    amount=amount,
                    kind=kind,
                    advance_periods=advance_periods,
                    collected_by=collected_by,
                    note=note,
                    notice_text=notice,
                    line_items=line_items,
                )
            )
            if kind == PaymentKind.ADVANCE:
                self._top_up_credit(payer, payment, amount, advance_periods)

            AuditService.log(
                self.db,
                ENTITY_PAYMENT,
                payment.id,
                ACTION_CREATE,
                actor_id=collected_by,
                changes={
                    "kind": kind.value,
                    "amount": str(amount),
                    "advance_periods": advance_periods,
                    "paid_before": str(paid_before),
                    "obligation": obligation.snapshot(),
                },
            )
            self.db.flush()
            events = self._events(payer, payment, obligation)

        logger.info(
            "Applied %s payment %s: payer=%s period=%s amount=%s remaining=%s",
            kind.value,
            events[0][1]["id"],
            payer_id,
            period_id,
            amount,
            remaining,
        )
        self.notifier.emit_many(events)
        return PaymentResult(
            payment=payment,
            notice_text=notice,
            remaining_balance=remaining,
            obligation=obligation,
        )

    def _reject_carried_balance(
        self,
        model: Type[ObligationColumns],
        payer: Payer,
        period: BillingPeriod,
        obligation: ObligationColumns,
    ) -> None:
        """Refuse to settle a balance that already lives on a later obligation."""
        following = self.store.next_period_after(period.year, period.month)
        if following is None:
            return
        successor = self.store.get_obligation(model, payer.id, following.id)
        if was_carried_forward(obligation, successor):
            logger.warning(
                "Payment rejected for payer %s period %s: balance carried to period %s",
                payer.id,
                period.id,
                following.id,
            )
            raise ConflictError(
                f"The balance for {period.label} was carried forward to {following.label}; "
                "record the payment against that period"
            )

    def _open_obligation(
        self, model: Type[ObligationColumns], payer: Payer, period: BillingPeriod
    ) -> ObligationColumns:
        """Create the obligation an advance payment targets when none exists yet."""
        base = to_money(payer.fee_amount)
        obligation = model(
            payer_id=payer.id,
            period_id=period.id,
            base_amount=base,
            carried_forward_amount=ZERO,
            total_due=base,
            amount_paid=ZERO,
            outstanding=base,
            status=ObligationStatus.UNPAID,
            advance_periods_remaining=0,
        )
        logger.info("Created obligation on demand for payer %s in period %s", payer.id, period.id)
        return self.store.add_obligation(obligation)

    def _top_up_credit(
        self, payer: Payer, payment: Payment, amount: Decimal, periods: int
    ) -> AdvanceCredit:
        """Add purchased periods to the payer's single credit row."""
        if payer.is_staff:
            per_period = to_money(amount / periods)
        else:
            per_period = to_money(payer.fee_amount)

        credit = self.store.get_credit_for_update(payer.id)
        if credit is None:
            return self.store.add_credit(
                AdvanceCredit(
                    payer_id=payer.id,
                    amount_per_period=per_period,
                    periods_paid=periods,
                    periods_remaining=periods,
                    last_payment_id=payment.id,
                )
            )

        credit.amount_per_period = per_period
        credit.periods_paid += periods
        credit.periods_remaining += periods
        credit.last_payment_id = payment.id
        return credit

    @staticmethod
    def _check_invariants(obligation: ObligationColumns) -> None:
        problems = obligation.invariant_violations()
        if problems:
            logger.error(
                "Obligation invariant violated by payment: obligation=%s problems=%s",
                obligation.snapshot(),
                problems,
            )
            raise InternalLedgerError()

    @staticmethod
    def build_notice(
        payer: Payer,
        period: BillingPeriod,
        kind: PaymentKind,
        amount: Decimal,
        remaining: Decimal,
        advance_periods: int | None = None,
    ) -> str:
        """Human-readable summary of a payment for downstream delivery."""
        prefix = "salary" if payer.is_staff else "tuition"
        school = get_settings().school_name
        if kind == PaymentKind.ADVANCE:
            text = t(
                f"notices.{prefix}_advance",
                name=payer.name,
                amount=format_amount(amount),
                periods=advance_periods,
                school=school,
            )
        else:
            text = t(
                f"notices.{prefix}_payment",
                name=payer.name,
                amount=format_amount(amount),
                period=period.label,
                school=school,
                remaining=format_amount(remaining),
            )
        return text[:NOTICE_MAX_LENGTH]

    @staticmethod
    def _events(payer: Payer, payment: Payment, obligation: ObligationColumns) -> list[tuple[str, dict]]:
        payment_payload = {
            "id": payment.id,
            "payer_id": payment.payer_id,
            "period_id": payment.period_id,
            "amount": str(payment.amount),
            "kind": payment.kind.value,
            "advance_periods": payment.advance_periods,
            "notice_text": payment.notice_text,
            "created_at": payment.created_at.isoformat() if payment.created_at else None,
        }
        payer_payload = {
            "id": payer.id,
            "payer_type": payer.payer_type.value,
            "name": payer.name,
            "status": payer.status.value,
        }
        return [
            (PAYMENT_CREATED, payment_payload),
            (OBLIGATION_UPDATED, obligation.snapshot()),
            (PAYER_UPDATED, payer_payload),
            (REPORTS_UPDATED, {"period_id": payment.period_id}),
        ]

    def get_receipt(self, payment_id: int) -> Receipt:
        """Fetch a payment with its line items, payer and period.

        Raises:
            NotFoundError: payment does not exist
        """
        payment = self.store.get_payment(payment_id)
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found")
        return Receipt(payment=payment, payer=payment.payer, period=payment.period)


__all__ = [
    "PaymentApplicationService",
    "PaymentResult",
    "Receipt",
    "parse_amount",
    "parse_kind",
    "settle",
    "split_line_items",
]
