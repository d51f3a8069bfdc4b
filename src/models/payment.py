"""Payment ORM models for collection events and their reporting line items."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class PaymentKind(str, Enum):
    """Classification of a payment."""

    NORMAL = "normal"
    """Settles (up to) the full remaining due."""

    PARTIAL = "partial"
    """Leaves a residual balance on the obligation."""

    ADVANCE = "advance"
    """Buys coverage for future periods."""


class LineItemType(str, Enum):
    """Reporting split of a payment."""

    BASE_FEE = "base_fee"
    CARRIED_FORWARD = "carried_forward"
    ADVANCE = "advance"


class Payment(Base, BaseModel):
    """Immutable record of one collection (or salary disbursement) event."""

    __tablename__ = "payments"

    # Foreign keys
    payer_id: Mapped[int] = mapped_column(
        ForeignKey("payers.id"),
        nullable=False,
        index=True,
        comment="Payer the payment belongs to",
    )
    period_id: Mapped[int] = mapped_column(
        ForeignKey("billing_periods.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Billing period the payment targets",
    )

    # Payment details
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Amount collected",
    )
    kind: Mapped[PaymentKind] = mapped_column(
        SQLEnum(PaymentKind),
        nullable=False,
        comment="normal, partial or advance",
    )
    advance_periods: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Number of periods bought (advance payments only)",
    )
    collected_by: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Identity of the collector",
    )
    note: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Free-text note",
    )
    notice_text: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        comment="Human-readable summary for downstream notification delivery",
    )

    # Relationships
    payer: Mapped["Payer"] = relationship("Payer")  # noqa: F821
    period: Mapped["BillingPeriod"] = relationship(  # noqa: F821
        "BillingPeriod",
        back_populates="payments",
    )
    line_items: Mapped[list["PaymentLineItem"]] = relationship(
        "PaymentLineItem",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentLineItem.id",
    )

    __table_args__ = (
        Index("idx_payment_payer_period", "payer_id", "period_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, payer_id={self.payer_id}, period_id={self.period_id}, "
            f"amount={self.amount}, kind={self.kind})>"
        )


class PaymentLineItem(Base, BaseModel):
    """Reporting-only split of a payment; never affects obligation math."""

    __tablename__ = "payment_line_items"

    payment_id: Mapped[int] = mapped_column(
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_type: Mapped[LineItemType] = mapped_column(
        SQLEnum(LineItemType),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    periods_covered: Mapped[int | None] = mapped_column(Integer, nullable=True)

    payment: Mapped["Payment"] = relationship("Payment", back_populates="line_items")

    def __repr__(self) -> str:
        return (
            f"<PaymentLineItem(id={self.id}, payment_id={self.payment_id}, "
            f"type={self.item_type}, amount={self.amount})>"
        )


__all__ = ["LineItemType", "Payment", "PaymentKind", "PaymentLineItem"]
