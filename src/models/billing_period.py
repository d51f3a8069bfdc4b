"""Billing period ORM model for grouping obligations into monthly cycles."""

from sqlalchemy import Boolean, Index, Integer, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class BillingPeriod(Base, BaseModel):
    """Model representing one billing month.

    Periods are append-only. At most one period is active at any time; the
    partial unique index below enforces it at the database level.
    """

    __tablename__ = "billing_periods"

    year: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Calendar year of the period",
    )
    month: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Calendar month of the period (1-12)",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="True for the single period currently open for collection",
    )

    # Relationships
    obligations: Mapped[list["Obligation"]] = relationship(  # noqa: F821
        "Obligation",
        back_populates="period",
        cascade="all, delete-orphan",
    )
    salary_obligations: Mapped[list["SalaryObligation"]] = relationship(  # noqa: F821
        "SalaryObligation",
        back_populates="period",
        cascade="all, delete-orphan",
    )
    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="period",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_billing_period_year_month"),
        Index(
            "uq_billing_period_single_active",
            "is_active",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    @property
    def label(self) -> str:
        """Short display label, e.g. '03/2025'."""
        return f"{self.month:02d}/{self.year}"

    def __repr__(self) -> str:
        return (
            f"<BillingPeriod(id={self.id}, year={self.year}, month={self.month}, "
            f"is_active={self.is_active})>"
        )


__all__ = ["BillingPeriod"]
