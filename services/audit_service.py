"""
Registro de auditoría

El evento se escribe en la misma transacción que la operación de negocio:
si la operación se revierte, el evento también.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from models.core import AuditEvent
from schemas.audit import audit_snapshot_adapter
from services.exceptions import ValidationError


def _dump(snapshot, entity_type: str) -> Optional[dict]:
    if snapshot is None:
        return None
    if isinstance(snapshot, dict):
        snapshot = audit_snapshot_adapter.validate_python({"entity_type": entity_type, **snapshot})
    if snapshot.entity_type != entity_type:
        raise ValidationError(
            f'Audit snapshot of type "{snapshot.entity_type}" does not match entity "{entity_type}"'
        )
    return snapshot.model_dump(mode="json", exclude_none=True)


class AuditService:

    @staticmethod
    def record(
        db: Session,
        tenant_id: int,
        actor_id: Optional[int],
        action: str,
        entity_type: str,
        entity_id: int,
        before=None,
        after=None,
    ) -> AuditEvent:
        event = AuditEvent(
            tenant_id=tenant_id,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            before=_dump(before, entity_type),
            after=_dump(after, entity_type),
        )
        db.add(event)
        return event

    @staticmethod
    def list_for_entity(db: Session, tenant_id: int, entity_type: str, entity_id: int) -> List[AuditEvent]:
        return db.query(AuditEvent).filter(
            AuditEvent.tenant_id == tenant_id,
            AuditEvent.entity_type == entity_type,
            AuditEvent.entity_id == entity_id,
        ).order_by(AuditEvent.created_at, AuditEvent.id).all()
