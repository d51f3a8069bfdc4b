"""Advance credit ORM model: pre-purchased future periods for one payer."""

from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class AdvanceCredit(Base, BaseModel):
    """Single mutable advance balance per payer.

    Every advance purchase for the same payer accumulates into this row;
    each rollover that covers the payer consumes one unit of
    `periods_remaining`.
    """

    __tablename__ = "advance_credits"

    payer_id: Mapped[int] = mapped_column(
        ForeignKey("payers.id"),
        nullable=False,
        unique=True,
        comment="Owner of the credit (one row per payer)",
    )
    amount_per_period: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Value applied to each covered period (last purchase wins)",
    )
    periods_paid: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Cumulative number of periods purchased",
    )
    periods_remaining: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Periods not yet consumed by a rollover",
    )
    last_payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("payments.id", ondelete="SET NULL"),
        nullable=True,
        comment="Most recent advance payment topping up this credit",
    )

    # Relationships
    payer: Mapped["Payer"] = relationship(  # noqa: F821
        "Payer",
        back_populates="advance_credit",
    )

    @property
    def remaining_value(self) -> Decimal:
        return Decimal(self.amount_per_period) * self.periods_remaining

    def __repr__(self) -> str:
        return (
            f"<AdvanceCredit(id={self.id}, payer_id={self.payer_id}, "
            f"amount_per_period={self.amount_per_period}, "
            f"periods_remaining={self.periods_remaining})>"
        )


__all__ = ["AdvanceCredit"]
