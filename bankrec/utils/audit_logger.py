"""
Audit logging for reconciliation decisions.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.tables import AuditLogRow
from ..models import AuditAction, AuditEntry

logger = structlog.get_logger()

SYSTEM_USER = "system"


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AuditLogger:
    """
    Append-only audit sink.
    Rows are written in the caller's session so they commit (or roll back)
    together with the change they describe.
    """

    def record(
        self,
        session: Session,
        action: AuditAction,
        entity_type: str,
        entity_id: int,
        user: Optional[str] = None,
        old_value: Optional[Dict[str, Any]] = None,
        new_value: Optional[Dict[str, Any]] = None,
    ) -> AuditLogRow:
        """Add an audit entry."""
        row = AuditLogRow(
            timestamp=utcnow(),
            user_id=user or SYSTEM_USER,
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            old_value=old_value,
            new_value=new_value,
        )
        session.add(row)

        # Also log to structlog
        logger.info(
            "Audit entry",
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            user=row.user_id,
        )
        return row

    def get_entries(
        self,
        session: Session,
        entity_type: str,
        entity_id: int,
        actions: Optional[Iterable[AuditAction]] = None,
    ) -> List[AuditEntry]:
        """Audit entries for one entity, oldest first."""
        query = (
            select(AuditLogRow)
            .where(AuditLogRow.entity_type == entity_type, AuditLogRow.entity_id == entity_id)
            .order_by(AuditLogRow.id)
        )
        if actions:
            query = query.where(AuditLogRow.action.in_([a.value for a in actions]))

        return [self._to_entry(row) for row in session.scalars(query)]

    def latest(
        self,
        session: Session,
        entity_type: str,
        entity_id: int,
        actions: Iterable[AuditAction],
    ) -> Optional[AuditEntry]:
        """Most recent entry of the given kinds, if any."""
        row = session.scalars(
            select(AuditLogRow)
            .where(
                AuditLogRow.entity_type == entity_type,
                AuditLogRow.entity_id == entity_id,
                AuditLogRow.action.in_([a.value for a in actions]),
            )
            .order_by(AuditLogRow.id.desc())
            .limit(1)
        ).first()
        return self._to_entry(row) if row else None

    @staticmethod
    def _to_entry(row: AuditLogRow) -> AuditEntry:
        return AuditEntry(
            id=row.id,
            timestamp=row.timestamp,
            user=row.user_id,
            action=row.action,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            old_value=row.old_value,
            new_value=row.new_value,
        )
