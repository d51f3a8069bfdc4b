"""Payer ORM model for tuition payers and salaried staff."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Index, Integer, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class PayerType(str, Enum):
    """Which ledger a payer is billed on."""

    TUITION = "tuition"
    """Parent paying a monthly tuition fee."""

    STAFF = "staff"
    """Staff member receiving a monthly salary."""


class PayerStatus(str, Enum):
    """Billing status of a payer."""

    ACTIVE = "active"
    SUSPENDED = "suspended"


class Payer(Base, BaseModel):
    """Model representing anyone with a recurring per-period amount.

    Tuition payers owe `fee_amount` to the school every period; staff members
    are owed `fee_amount` (their salary) by the school. Suspended payers are
    skipped by rollover but keep their historical obligations.
    """

    __tablename__ = "payers"

    payer_type: Mapped[PayerType] = mapped_column(
        SQLEnum(PayerType),
        nullable=False,
        index=True,
        comment="Ledger the payer belongs to: tuition or staff",
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Parent or staff member full name",
    )
    phone_number: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="Contact phone number",
    )
    department: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Staff department (staff payers only)",
    )
    number_of_children: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Enrolled children (tuition payers only)",
    )
    fee_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Fixed per-period fee or salary",
    )
    status: Mapped[PayerStatus] = mapped_column(
        SQLEnum(PayerStatus),
        nullable=False,
        default=PayerStatus.ACTIVE,
        comment="Active payers are billed on rollover, suspended ones are not",
    )

    # Relationships
    advance_credit: Mapped["AdvanceCredit | None"] = relationship(  # noqa: F821
        "AdvanceCredit",
        back_populates="payer",
        uselist=False,
    )

    __table_args__ = (
        Index("idx_payer_type_name", "payer_type", "name", unique=True),
        Index("idx_payer_type_status", "payer_type", "status"),
    )

    @property
    def is_staff(self) -> bool:
        return self.payer_type == PayerType.STAFF

    @property
    def is_suspended(self) -> bool:
        return self.status == PayerStatus.SUSPENDED

    def __repr__(self) -> str:
        return (
            f"<Payer(id={self.id}, type={self.payer_type}, name={self.name!r}, "
            f"fee_amount={self.fee_amount}, status={self.status})>"
        )


__all__ = ["Payer", "PayerStatus", "PayerType"]
