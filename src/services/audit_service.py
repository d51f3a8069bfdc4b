"""Audit trail writer for ledger changes."""

from sqlalchemy.orm import Session

from src.models.audit_log import AuditLog


class AuditService:
    """Adds audit rows to the caller's open ledger transaction.

    Nothing is flushed or committed here: the row becomes visible together
    with the change it records, or not at all.
    """

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: int | None = None,
        changes: dict | None = None,
    ) -> AuditLog:
        """Record one ledger change.

        Args:
            db: Session inside the caller's transaction
            entity_type: ENTITY_PERIOD, ENTITY_PAYMENT or ENTITY_PAYER
            entity_id: Id of the period, payment or payer
            action: ACTION_CREATE, ACTION_UPDATE or ACTION_DELETE
            actor_id: Collector or administrator, if known
            changes: JSON-serialisable details (amounts as strings)

        Returns:
            The pending AuditLog row
        """
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            changes=changes,
        )
        db.add(entry)
        return entry


__all__ = ["AuditService"]
