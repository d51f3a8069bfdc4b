"""Audit trail rows written alongside every ledger change."""

from typing import Any

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel

# Audited entities
ENTITY_PERIOD = "period"
ENTITY_PAYMENT = "payment"
ENTITY_PAYER = "payer"

# Audited actions
ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"


class AuditLog(Base, BaseModel):
    """One ledger change: a rollover, a payment, a period deletion or a payer edit.

    The row is inserted in the same transaction as the change it describes,
    so a rolled back rollover or payment leaves no audit row behind.
    """

    __tablename__ = "audit_logs"

    entity_type: Mapped[str] = mapped_column(String(32))
    """ENTITY_PERIOD, ENTITY_PAYMENT or ENTITY_PAYER."""

    entity_id: Mapped[int] = mapped_column()
    """Primary key of the period, payment or payer."""

    action: Mapped[str] = mapped_column(String(32))
    """ACTION_CREATE, ACTION_UPDATE or ACTION_DELETE."""

    actor_id: Mapped[int | None] = mapped_column(nullable=True)
    """Collector or administrator; None when no actor was given."""

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    """Rollover counts, the obligation after a payment, or {field: {"old", "new"}} for payer edits."""

    __table_args__ = (Index("idx_audit_entity", "entity_type", "entity_id"),)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, {self.entity_type}#{self.entity_id} {self.action}, "
            f"actor_id={self.actor_id})>"
        )


__all__ = [
    "ACTION_CREATE",
    "ACTION_DELETE",
    "ACTION_UPDATE",
    "AuditLog",
    "ENTITY_PAYER",
    "ENTITY_PAYMENT",
    "ENTITY_PERIOD",
]
