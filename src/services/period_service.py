"""Billing period management: lookups, deletion, obligation listings and totals."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import func, select

from src.models.advance_credit import AdvanceCredit
from src.models.audit_log import ACTION_DELETE, ENTITY_PERIOD
from src.models.billing_period import BillingPeriod
from src.models.obligation import ZERO, ObligationColumns
from src.models.payer import Payer, PayerType
from src.services.audit_service import AuditService
from src.services.errors import ConflictError, NotFoundError
from src.services.ledger_store import LedgerStore, ObligationFilter, obligation_model_for
from src.services.localizer import t
from src.services.notification_service import (
    PERIOD_DELETED,
    REPORTS_UPDATED,
    NotificationService,
)
from src.services.rollover_service import to_money

logger = logging.getLogger(__name__)


@dataclass
class PeriodSummary:
    """Collection totals for one ledger of one period."""

    period_id: int
    payer_type: PayerType
    payer_count: int = 0
    total_due: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_outstanding: Decimal = ZERO
    status_counts: dict[str, int] = field(default_factory=dict)
    advance_remaining: Decimal = ZERO


class BillingPeriodService:
    """Service for billing period operations outside of rollover.

    This is the only place "the active period" is derived; ledger operations
    always receive an explicit period id.
    """

    def __init__(self, db_session, notifier: NotificationService | None = None):
        """Initialize with database session."""
        self.db = db_session
        self.store = LedgerStore(db_session)
        self.notifier = notifier or NotificationService()

    def get_by_id(self, period_id: int) -> BillingPeriod:
        """Get billing period by ID.

        Raises:
            NotFoundError: period does not exist
        """
        period = self.store.get_period(period_id)
        if period is None:
            raise NotFoundError(f"Period {period_id} not found")
        return period

    def get_active_period(self) -> BillingPeriod | None:
        return self.store.get_active_period()

    def list_periods(self, limit: int | None = None) -> list[BillingPeriod]:
        """List periods newest first."""
        return self.store.list_periods(limit)

    def delete_period(self, period_id: int, force: bool = False, actor_id: int | None = None) -> str:
        """Delete an inactive period with its obligations and payments.

        Args:
            period_id: Period to delete
            force: Also delete a period that has recorded payments
            actor_id: Administrator requesting the deletion (for audit)

        Returns:
            Confirmation message

        Raises:
            NotFoundError: period does not exist
            ConflictError: period is active, or has payments and force is False
        """
        with self.store.transaction():
            period = self.store.get_period_for_update(period_id)
            if period is None:
                raise NotFoundError(f"Period {period_id} not found")
            if period.is_active:
                logger.warning("Refusing to delete active period %s", period.label)
                raise ConflictError("The active period cannot be deleted")

            payments = self.store.count_payments(period.id)
            if payments and not force:
                logger.warning(
                    "Refusing to delete period %s with %d payments without force", period.label, payments
                )
                raise ConflictError(
                    f"Period {period.label} has {payments} recorded payments; "
                    "pass force to delete them too"
                )

            payload = {
                "id": period.id,
                "year": period.year,
                "month": period.month,
                "payments_deleted": payments,
            }
            label = period.label
            AuditService.log(
                self.db, ENTITY_PERIOD, period.id, ACTION_DELETE, actor_id=actor_id, changes=payload
            )
            detached = self.store.detach_credits_from_period(period.id) if payments else 0
            self.store.delete_period(period)

        logger.info(
            "Deleted period %s (id=%s, %d payments, %d credits detached)",
            label,
            period_id,
            payments,
            detached,
        )
        self.notifier.emit(PERIOD_DELETED, payload)
        self.notifier.emit(REPORTS_UPDATED, {"period_id": period_id})
        return t("messages.period_deleted", period=label)

    def list_obligations(
        self, period_id: int, filters: ObligationFilter | None = None
    ) -> list[ObligationColumns]:
        """List a period's obligations of one ledger, optionally filtered.

        Args:
            period_id: Period to list
            filters: payer_type selects the tuition or salary ledger; status,
                search (name or phone substring) and department narrow it

        Returns:
            Obligations ordered by payer name
        """
        self.get_by_id(period_id)
        return self.store.list_obligations(period_id, filters or ObligationFilter())

    def period_summary(self, period_id: int, payer_type: PayerType = PayerType.TUITION) -> PeriodSummary:
        """Totals due, paid and outstanding for one ledger of a period."""
        self.get_by_id(period_id)
        model = obligation_model_for(payer_type)

        count, total_due, total_paid, total_outstanding = self.db.execute(
            select(
                func.count(model.id),
                func.coalesce(func.sum(model.total_due), 0),
                func.coalesce(func.sum(model.amount_paid), 0),
                func.coalesce(func.sum(model.outstanding), 0),
            ).where(model.period_id == period_id)
        ).one()

        status_rows = self.db.execute(
            select(model.status, func.count(model.id))
            .where(model.period_id == period_id)
            .group_by(model.status)
        ).all()

        advance_remaining = self.db.execute(
            select(
                func.coalesce(
                    func.sum(AdvanceCredit.amount_per_period * AdvanceCredit.periods_remaining), 0
                )
            )
            .select_from(AdvanceCredit)
            .join(Payer, Payer.id == AdvanceCredit.payer_id)
            .where(Payer.payer_type == payer_type, AdvanceCredit.periods_remaining > 0)
        ).scalar_one()

        return PeriodSummary(
            period_id=period_id,
            payer_type=payer_type,
            payer_count=count,
            total_due=to_money(total_due),
            total_paid=to_money(total_paid),
            total_outstanding=to_money(total_outstanding),
            status_counts={status.value: n for status, n in status_rows},
            advance_remaining=to_money(advance_remaining),
        )


__all__ = ["BillingPeriodService", "ObligationFilter", "PeriodSummary"]
