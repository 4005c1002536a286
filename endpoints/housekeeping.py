from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.conexion import get_db
from models.core import HousekeepingStatus
from schemas.housekeeping import HousekeepingStatusUpdate, HousekeepingTaskCreate, HousekeepingTaskRead
from services.exceptions import LodgingError
from services.housekeeping_service import HousekeepingService
from utils.dependencies import AdminContext, get_admin_context
from utils.logging_utils import log_event

router = APIRouter(prefix="/api/admin/housekeeping", tags=["Housekeeping"])


# ===== HELPERS =====

def _db_error(ctx: AdminContext, accion: str, e: Exception):
    log_event("housekeeping", ctx.user_id, accion, f"tenant_id={ctx.tenant_id} error={e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error de base de datos")


# ===== TAREAS =====

@router.get("/tasks", response_model=list[HousekeepingTaskRead])
def listar_tareas(
    status_filter: Optional[str] = Query(None, alias="status"),
    room_id: Optional[int] = Query(None, gt=0),
    assigned_to: Optional[int] = Query(None, gt=0),
    day: Optional[date] = None,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    allowed = [s.value for s in HousekeepingStatus]
    if status_filter and status_filter not in allowed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Estado inválido. Valores permitidos: {', '.join(allowed)}",
        )
    return HousekeepingService.list_tasks(db, ctx.tenant_id, status_filter, room_id, assigned_to, day)


@router.get("/tasks/{task_id}", response_model=HousekeepingTaskRead)
def obtener_tarea(
    task_id: int = Path(..., gt=0),
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return HousekeepingService.get_task(db, ctx.tenant_id, task_id)


@router.post("/tasks", response_model=HousekeepingTaskRead, status_code=status.HTTP_201_CREATED)
def crear_tarea(
    payload: HousekeepingTaskCreate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    try:
        return HousekeepingService.create_task(
            db, ctx.tenant_id, payload.room_id, payload.priority, payload.assigned_to, payload.notes, ctx.user_id
        )
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error al crear tarea", e)


@router.patch("/tasks/{task_id}/status", response_model=HousekeepingTaskRead)
def cambiar_estado_tarea(
    payload: HousekeepingStatusUpdate,
    task_id: int = Path(..., gt=0),
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    """Al pasar a done la habitación sucia vuelve a quedar disponible"""
    try:
        return HousekeepingService.update_status(db, ctx.tenant_id, task_id, payload.status, ctx.user_id, payload.notes)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error al actualizar tarea", e)
