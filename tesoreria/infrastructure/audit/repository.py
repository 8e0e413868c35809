"""
Audit Log Repository - append-only trail of ledger and payment request changes

Entries are written in the same transaction as the change they describe and
are never updated or deleted.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from tesoreria.infrastructure.db.models import AuditEntry

ENTITY_TRANSACTION = "transaction"
ENTITY_PAYMENT_REQUEST = "payment_request"


class AuditLogRepository:
    """
    Repository para el registro de auditoría
    """

    def __init__(self, db: Session):
        self.db = db

    def append_entry(
        self,
        organization_id: int,
        entity_type: str,
        entity_id: int,
        action: str,
        changes: Dict[str, Any],
        user_id: Optional[int] = None,
        occurred_at: Optional[datetime] = None,
    ) -> int:
        """
        Agregar una entrada de auditoría

        Args:
            organization_id: ID de la organización dueña de la entidad
            entity_type: "transaction" o "payment_request"
            entity_id: ID de la entidad
            action: created / edited / deleted / submitted / approved / rejected / executed
            changes: diff o snapshot (se guarda como JSONB)
            user_id: quién realizó la acción
            occurred_at: cuándo (default: ahora, UTC)

        Returns:
            entry_id: ID de la entrada creada (flush, sin commit)
        """
        entry = AuditEntry(
            organization_id=organization_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            user_id=user_id,
            changes=changes,
            created_at=occurred_at or datetime.now(timezone.utc),
        )
        self.db.add(entry)
        self.db.flush()
        return entry.id

    def list_for_entity(
        self,
        organization_id: int,
        entity_type: str,
        entity_id: int,
    ) -> List[AuditEntry]:
        """Entradas de una entidad en orden cronológico (ASC)"""
        return (
            self.db.query(AuditEntry)
            .filter(
                AuditEntry.organization_id == organization_id,
                AuditEntry.entity_type == entity_type,
                AuditEntry.entity_id == entity_id,
            )
            .order_by(AuditEntry.created_at.asc(), AuditEntry.id.asc())
            .all()
        )
