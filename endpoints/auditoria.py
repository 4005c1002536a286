"""
Historial de auditoría por entidad (reservas, pagos, ingresos, egresos, tareas de limpieza)
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database.conexion import get_db
from schemas.audit import AuditEventRead
from services.audit_service import AuditService
from utils.dependencies import AdminContext, get_admin_context

router = APIRouter(prefix="/api/admin/audit", tags=["Auditoría"])

ENTITY_TYPES = ("reservation", "payment", "housekeeping_task", "income", "expense")


@router.get("/{entity_type}/{entity_id}", response_model=List[AuditEventRead])
def historial_entidad(
    entity_type: str,
    entity_id: int,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    if entity_type not in ENTITY_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Tipo de entidad inválido. Valores permitidos: {', '.join(ENTITY_TYPES)}",
        )
    return AuditService.list_for_entity(db, ctx.tenant_id, entity_type, entity_id)
