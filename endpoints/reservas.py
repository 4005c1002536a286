"""
Reservas - Panel de administración
Listado, alta en recepción (walk-in / teléfono), edición, cambios de estado,
check-in con asignación de habitaciones y check-out.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.conexion import get_db
from models.core import ReservationStatus
from schemas.reservations import (
    CheckInRequest,
    ReservationCreate,
    ReservationPage,
    ReservationRead,
    ReservationUpdate,
    StatusChange,
)
from services.exceptions import LodgingError
from services.reservation_service import ReservationService
from utils.dependencies import AdminContext, get_admin_context
from utils.logging_utils import log_event

router = APIRouter(prefix="/api/admin/reservations", tags=["Reservas"])

_STATUS_VALUES = [s.value for s in ReservationStatus]


def _db_error(ctx: AdminContext, accion: str, e: Exception):
    log_event("reservas", ctx.user_id, accion, f"tenant_id={ctx.tenant_id} error={e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Error de base de datos",
    )


# ========================================================================
# CONSULTAS
# ========================================================================

@router.get("", response_model=ReservationPage)
def listar_reservas(
    status_filter: Optional[str] = Query(None, alias="status"),
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    guest: Optional[str] = Query(None, min_length=1, max_length=100),
    skip: int = Query(0, ge=0),
    take: int = Query(20, ge=1, le=100),
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    if status_filter and status_filter not in _STATUS_VALUES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Estado inválido. Valores permitidos: {', '.join(_STATUS_VALUES)}",
        )
    items, total = ReservationService.list(
        db, ctx.tenant_id,
        status=status_filter,
        from_date=from_date,
        to_date=to_date,
        guest_name=guest,
        skip=skip,
        take=take,
    )
    return ReservationPage(
        data=[ReservationRead.from_reservation(r) for r in items],
        total=total,
        skip=skip,
        take=take,
    )


@router.get("/arrivals", response_model=List[ReservationRead])
def llegadas_del_dia(
    day: Optional[date] = Query(None, description="Por defecto, hoy en hora del hotel"),
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    """Reservas confirmadas cuyo check-in es el día indicado"""
    return [ReservationRead.from_reservation(r) for r in ReservationService.arrivals(db, ctx.tenant_id, day)]


@router.get("/departures", response_model=List[ReservationRead])
def salidas_del_dia(
    day: Optional[date] = Query(None, description="Por defecto, hoy en hora del hotel"),
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    """Reservas alojadas cuyo check-out es el día indicado"""
    return [ReservationRead.from_reservation(r) for r in ReservationService.departures(db, ctx.tenant_id, day)]


@router.get("/{reservation_id}", response_model=ReservationRead)
def obtener_reserva(
    reservation_id: int,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return ReservationRead.from_reservation(ReservationService.get(db, ctx.tenant_id, reservation_id))


# ========================================================================
# ALTA / EDICIÓN
# ========================================================================

@router.post("", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
def crear_reserva(
    payload: ReservationCreate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    """Alta desde recepción: queda confirmada y con disponibilidad verificada"""
    try:
        reservation = ReservationService.create(db, ctx.tenant_id, payload, ctx.user_id)
        return ReservationRead.from_reservation(reservation)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error al crear reserva", e)


@router.patch("/{reservation_id}", response_model=ReservationRead)
def actualizar_reserva(
    reservation_id: int,
    payload: ReservationUpdate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    try:
        reservation = ReservationService.update(db, ctx.tenant_id, reservation_id, payload, ctx.user_id)
        return ReservationRead.from_reservation(reservation)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error al actualizar reserva", e)


# ========================================================================
# ESTADOS
# ========================================================================

@router.patch("/{reservation_id}/status", response_model=ReservationRead)
def cambiar_estado(
    reservation_id: int,
    payload: StatusChange,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    try:
        reservation = ReservationService.transition(
            db, ctx.tenant_id, reservation_id, payload.status, ctx.user_id, payload.reason
        )
        return ReservationRead.from_reservation(reservation)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error al cambiar estado", e)


@router.post("/{reservation_id}/check-in", response_model=ReservationRead)
def hacer_checkin(
    reservation_id: int,
    payload: CheckInRequest,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    """
    Check-in con asignación de una habitación física por línea.
    Todas las habitaciones quedan ocupadas y se abre una estadía por cada una.
    """
    try:
        reservation = ReservationService.check_in(db, ctx.tenant_id, reservation_id, payload.assignments, ctx.user_id)
        return ReservationRead.from_reservation(reservation)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error en check-in", e)


@router.post("/{reservation_id}/check-out", response_model=ReservationRead)
def hacer_checkout(
    reservation_id: int,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    try:
        reservation = ReservationService.check_out(db, ctx.tenant_id, reservation_id, ctx.user_id)
        return ReservationRead.from_reservation(reservation)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error en check-out", e)
