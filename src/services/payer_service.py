"""Payer service: registration, status and fee changes, and per-payer ledger history."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select

from src.models.advance_credit import AdvanceCredit
from src.models.audit_log import ACTION_CREATE, ACTION_UPDATE, ENTITY_PAYER
from src.models.obligation import ZERO, ObligationColumns
from src.models.payer import Payer, PayerStatus, PayerType
from src.models.payment import Payment
from src.services.audit_service import AuditService
from src.services.errors import ConflictError, NotFoundError, ValidationError
from src.services.ledger_store import LedgerStore, PayerFilter, obligation_model_for
from src.services.notification_service import PAYER_UPDATED, NotificationService
from src.services.payment_service import parse_amount
from src.services.rollover_service import to_money, was_carried_forward

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100


@dataclass
class PayerHistory:
    """A payer's obligations (oldest period first) and payments (newest first)."""

    payer: Payer
    obligations: list[ObligationColumns]
    payments: list[Payment]


@dataclass
class TimelineEntry:
    obligation: ObligationColumns
    carried_forward: bool
    """The open balance now lives on the next period's obligation."""


@dataclass
class PayerProfile:
    """Per-period timeline, advance credit and what the payer still owes (or is owed)."""

    payer: Payer
    timeline: list[TimelineEntry]
    credit: AdvanceCredit | None
    total_outstanding: Decimal


class PayerService:
    """Service for payer-related operations.

    Fee and status changes only affect future rollovers; existing obligations
    keep the base amount they were created with.
    """

    def __init__(self, db_session, notifier: NotificationService | None = None):
        """Initialize with database session."""
        self.db = db_session
        self.store = LedgerStore(db_session)
        self.notifier = notifier or NotificationService()

    def get_payer(self, payer_id: int) -> Payer:
        payer = self.store.get_payer(payer_id)
        if payer is None:
            raise NotFoundError(f"Payer {payer_id} not found")
        return payer

    def register_payer(
        self,
        payer_type: PayerType | str,
        name: str,
        fee_amount,
        phone_number: str | None = None,
        department: str | None = None,
        number_of_children: int | None = None,
        actor_id: int | None = None,
    ) -> Payer:
        """Register a tuition payer or staff member.

        Args:
            payer_type: tuition or staff
            name: Full name, unique within the payer type
            fee_amount: Per-period fee (tuition) or salary (staff)
            phone_number: Contact number
            department: Staff department
            number_of_children: Enrolled children of a tuition payer
            actor_id: Administrator registering the payer

        Returns:
            Created Payer

        Raises:
            ValidationError: bad type, empty name or non-positive fee
            ConflictError: a payer of this type with the same name exists
        """
        try:
            payer_type = PayerType(payer_type)
        except ValueError:
            raise ValidationError(f"Invalid payer type {payer_type!r}")
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")
        fee = parse_amount(fee_amount)

        with self.store.transaction():
            existing = self.db.execute(
                select(Payer.id).where(Payer.payer_type == payer_type, Payer.name == name)
            ).first()
            if existing:
                raise ConflictError(f"A {payer_type.value} payer named {name!r} already exists")

            payer = Payer(
                payer_type=payer_type,
                name=name,
                fee_amount=fee,
                phone_number=phone_number,
                department=department,
                number_of_children=number_of_children,
                status=PayerStatus.ACTIVE,
            )
            self.db.add(payer)
            self.db.flush()
            AuditService.log(
                self.db,
                ENTITY_PAYER,
                payer.id,
                ACTION_CREATE,
                actor_id=actor_id,
                changes={"payer_type": payer_type.value, "name": name, "fee_amount": str(fee)},
            )
            payload = self._payload(payer)

        logger.info("Registered %s payer %s (id=%s)", payer_type.value, name, payload["id"])
        self.notifier.emit(PAYER_UPDATED, payload)
        return payer

    def list_payers(
        self, filters: PayerFilter | None = None, limit: int | None = None, offset: int = 0
    ) -> list[Payer]:
        """List payers ordered by name; filters narrow by type, status, department or name/phone."""
        return self.store.list_payers(filters or PayerFilter(), limit, offset)

    def history(self, payer_id: int, limit: int | None = HISTORY_LIMIT) -> PayerHistory:
        """Obligations and payments (with line items) of one payer.

        Raises:
            NotFoundError: payer does not exist
        """
        payer = self.get_payer(payer_id)
        model = obligation_model_for(payer.payer_type)
        return PayerHistory(
            payer=payer,
            obligations=self.store.payer_obligations(model, payer.id),
            payments=self.store.payer_payments(payer.id, limit),
        )

    def profile(self, payer_id: int) -> PayerProfile:
        """Timeline of a payer's obligations with their current advance credit.

        A balance carried into the next period is counted once, on the
        obligation that holds it now.

        Raises:
            NotFoundError: payer does not exist
        """
        payer = self.get_payer(payer_id)
        obligations = self.store.payer_obligations(obligation_model_for(payer.payer_type), payer.id)

        periods = self.store.list_periods()
        following = {older.id: newer.id for newer, older in zip(periods, periods[1:])}
        by_period = {obligation.period_id: obligation for obligation in obligations}

        timeline = []
        total = ZERO
        for obligation in obligations:
            successor = by_period.get(following.get(obligation.period_id))
            carried = was_carried_forward(obligation, successor)
            if not carried:
                total += Decimal(obligation.outstanding)
            timeline.append(TimelineEntry(obligation=obligation, carried_forward=carried))

        return PayerProfile(
            payer=payer,
            timeline=timeline,
            credit=self.store.get_credit(payer.id),
            total_outstanding=to_money(total),
        )

    def set_status(self, payer_id: int, status: PayerStatus | str, actor_id: int | None = None) -> Payer:
        """Suspend or reactivate a payer."""
        return self._update(payer_id, actor_id, status=_parse_status(status))

    def update_fee(self, payer_id: int, fee_amount, actor_id: int | None = None) -> Payer:
        """Change the fee or salary billed from the next rollover on."""
        return self._update(payer_id, actor_id, fee_amount=parse_amount(fee_amount))

    def update_payer(
        self,
        payer_id: int,
        status: PayerStatus | str | None = None,
        fee_amount=None,
        actor_id: int | None = None,
    ) -> Payer:
        """Apply a status and/or fee change as one audited transaction.

        Raises:
            ValidationError: nothing to change, bad status or bad fee
            NotFoundError: payer does not exist
        """
        changes = {}
        if status is not None:
            changes["status"] = _parse_status(status)
        if fee_amount is not None:
            changes["fee_amount"] = parse_amount(fee_amount)
        if not changes:
            raise ValidationError("Nothing to update: pass status and/or fee_amount")
        return self._update(payer_id, actor_id, **changes)

    def _update(self, payer_id: int, actor_id: int | None, **changes) -> Payer:
        with self.store.transaction():
            payer = self.get_payer(payer_id)
            before = {key: getattr(payer, key) for key in changes}
            for key, value in changes.items():
                setattr(payer, key, value)
            AuditService.log(
                self.db,
                ENTITY_PAYER,
                payer.id,
                ACTION_UPDATE,
                actor_id=actor_id,
                changes={
                    key: {"old": _plain(before[key]), "new": _plain(value)}
                    for key, value in changes.items()
                },
            )
            self.db.flush()
            payload = self._payload(payer)

        logger.info("Updated payer %s: %s", payer_id, {k: _plain(v) for k, v in changes.items()})
        self.notifier.emit(PAYER_UPDATED, payload)
        return payer

    @staticmethod
    def _payload(payer: Payer) -> dict:
        return {
            "id": payer.id,
            "payer_type": payer.payer_type.value,
            "name": payer.name,
            "fee_amount": str(payer.fee_amount),
            "status": payer.status.value,
        }


def _parse_status(status) -> PayerStatus:
    try:
        return PayerStatus(status)
    except ValueError:
        raise ValidationError(f"Invalid payer status {status!r}")


def _plain(value):
    if isinstance(value, Decimal):
        return str(value)
    return getattr(value, "value", value)


__all__ = ["PayerHistory", "PayerProfile", "PayerService", "TimelineEntry"]
