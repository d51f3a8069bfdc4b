"""Obligation ORM models: what each payer owes (or is owed) for one period."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, Integer, Numeric
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel

ZERO = Decimal("0.00")


class ObligationStatus(str, Enum):
    """Settlement status of an obligation."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    ADVANCED = "advanced"
    """An advance purchase was recorded against this period."""

    OUTSTANDING = "outstanding"
    """Staff only: the new period inherited an unpaid salary balance."""

    ADVANCE_APPLIED = "advance_applied"
    """Staff only: an advance partially covered the base salary."""


class ObligationColumns:
    """Columns shared by the tuition and salary obligation tables."""

    payer_id: Mapped[int] = mapped_column(
        ForeignKey("payers.id"),
        nullable=False,
        index=True,
        comment="Payer this obligation belongs to",
    )
    period_id: Mapped[int] = mapped_column(
        ForeignKey("billing_periods.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Billing period of this obligation",
    )
    base_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Payer fee or salary at rollover time",
    )
    carried_forward_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=ZERO,
        comment="Unpaid balance inherited from the prior period",
    )
    total_due: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Amount due this period",
    )
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=ZERO,
        comment="Amount settled so far this period",
    )
    outstanding: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="max(0, total_due - amount_paid)",
    )
    status: Mapped[ObligationStatus] = mapped_column(
        SQLEnum(ObligationStatus),
        nullable=False,
        default=ObligationStatus.UNPAID,
        index=True,
    )
    advance_periods_remaining: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Pre-purchased periods still to be consumed by future rollovers",
    )

    def invariant_violations(self) -> list[str]:
        """Return human-readable descriptions of broken ledger invariants."""
        problems = []
        money = {
            "base_amount": self.base_amount,
            "carried_forward_amount": self.carried_forward_amount,
            "total_due": self.total_due,
            "amount_paid": self.amount_paid,
            "outstanding": self.outstanding,
        }
        for name, value in money.items():
            if value is None or Decimal(value) < ZERO:
                problems.append(f"{name} is negative or missing ({value})")
        if problems:
            return problems

        expected = max(ZERO, Decimal(self.total_due) - Decimal(self.amount_paid))
        if Decimal(self.outstanding) != expected:
            problems.append(f"outstanding={self.outstanding} but expected {expected}")
        is_settled = Decimal(self.outstanding) == ZERO
        if (self.status == ObligationStatus.PAID) != is_settled:
            problems.append(f"status={self.status.value} with outstanding={self.outstanding}")
        if self.advance_periods_remaining is None or self.advance_periods_remaining < 0:
            problems.append(f"advance_periods_remaining={self.advance_periods_remaining}")
        return problems

    def snapshot(self) -> dict:
        """Plain dict of the ledger columns, used in logs and audit entries."""
        return {
            "id": self.id,
            "payer_id": self.payer_id,
            "period_id": self.period_id,
            "base_amount": str(self.base_amount),
            "carried_forward_amount": str(self.carried_forward_amount),
            "total_due": str(self.total_due),
            "amount_paid": str(self.amount_paid),
            "outstanding": str(self.outstanding),
            "status": self.status.value if self.status else None,
            "advance_periods_remaining": self.advance_periods_remaining,
        }


class Obligation(Base, BaseModel, ObligationColumns):
    """Tuition obligation: one per tuition payer per billing period."""

    __tablename__ = "obligations"

    payer: Mapped["Payer"] = relationship(  # noqa: F821
        "Payer",
        foreign_keys="Obligation.payer_id",
    )
    period: Mapped["BillingPeriod"] = relationship(  # noqa: F821
        "BillingPeriod",
        back_populates="obligations",
    )

    __table_args__ = (
        Index("uq_obligation_payer_period", "payer_id", "period_id", unique=True),
        Index("idx_obligation_period_status", "period_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Obligation(id={self.id}, payer_id={self.payer_id}, period_id={self.period_id}, "
            f"total_due={self.total_due}, outstanding={self.outstanding}, status={self.status})>"
        )


class SalaryObligation(Base, BaseModel, ObligationColumns):
    """Salary obligation: what the school owes one staff member for a period."""

    __tablename__ = "salary_obligations"

    advance_applied_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=ZERO,
        comment="Portion of the base salary already covered by an advance",
    )

    payer: Mapped["Payer"] = relationship(  # noqa: F821
        "Payer",
        foreign_keys="SalaryObligation.payer_id",
    )
    period: Mapped["BillingPeriod"] = relationship(  # noqa: F821
        "BillingPeriod",
        back_populates="salary_obligations",
    )

    __table_args__ = (
        Index("uq_salary_obligation_payer_period", "payer_id", "period_id", unique=True),
        Index("idx_salary_obligation_period_status", "period_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<SalaryObligation(id={self.id}, payer_id={self.payer_id}, "
            f"period_id={self.period_id}, total_due={self.total_due}, "
            f"outstanding={self.outstanding}, status={self.status})>"
        )


__all__ = ["Obligation", "ObligationColumns", "ObligationStatus", "SalaryObligation", "ZERO"]
