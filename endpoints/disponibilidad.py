"""
Motor de reservas público
Disponibilidad, creación de reservas y autogestión del huésped (consulta / cancelación).
El tenant se resuelve por el header X-Tenant-Slug; no requiere autenticación.
"""
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.conexion import get_db
from models.core import Tenant
from schemas.bookings import (
    AvailabilityOffer,
    BookingCancel,
    BookingCancellation,
    BookingConfirmation,
    BookingCreate,
    BookingDetail,
    BookingLookup,
    RoomTypeSummary,
)
from services.availability_service import AvailabilityService
from services.booking_service import BookingService
from services.exceptions import LodgingError
from utils.dependencies import get_public_tenant
from utils.logging_utils import log_event
from utils.rate_limiter import public_limit

router = APIRouter(prefix="/api/public", tags=["Booking Engine"])


# ========================================================================
# DISPONIBILIDAD
# ========================================================================

@router.get("/availability", response_model=List[AvailabilityOffer])
@public_limit
def buscar_disponibilidad(
    request: Request,
    check_in: date = Query(..., description="Fecha de entrada (YYYY-MM-DD)"),
    check_out: date = Query(..., description="Fecha de salida (YYYY-MM-DD)"),
    guests: int = Query(1, ge=1, le=20, description="Cantidad de huéspedes"),
    tenant: Tenant = Depends(get_public_tenant),
    db: Session = Depends(get_db),
):
    """
    Tipos de habitación con unidades libres para el rango [check_in, check_out)
    y su precio por noche / total
    """
    offers = AvailabilityService.search(db, tenant.id, check_in, check_out, guests)
    return [
        AvailabilityOffer(
            room_type=RoomTypeSummary.model_validate(o.room_type),
            total_rooms=o.total_rooms,
            booked_rooms=o.booked_rooms,
            available_rooms=o.available_rooms,
            nightly_price=o.nightly_price,
            total_price=o.total_price,
            nights=o.nights,
        )
        for o in offers
    ]


# ========================================================================
# RESERVAS
# ========================================================================

@router.post("/bookings", response_model=BookingConfirmation, status_code=status.HTTP_201_CREATED)
@public_limit
def crear_reserva(
    request: Request,
    payload: BookingCreate,
    tenant: Tenant = Depends(get_public_tenant),
    db: Session = Depends(get_db),
):
    try:
        return BookingService.create_booking(db, tenant.id, payload)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        log_event("reservas", None, "Error de base de datos al crear reserva", f"tenant={tenant.slug} error={e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not create the booking. Please try again later.",
        )


@router.post("/bookings/manage", response_model=BookingDetail)
@public_limit
def consultar_reserva(
    request: Request,
    payload: BookingLookup,
    tenant: Tenant = Depends(get_public_tenant),
    db: Session = Depends(get_db),
):
    """Consulta por referencia + apellido (sin distinguir mayúsculas)"""
    reservation = BookingService.get_by_reference(db, tenant.id, payload.booking_reference, payload.last_name)
    return BookingDetail.from_reservation(reservation)


@router.post("/bookings/{reference}/cancel", response_model=BookingCancellation)
@public_limit
def cancelar_reserva(
    request: Request,
    payload: BookingCancel,
    reference: str = Path(..., min_length=4, max_length=20),
    tenant: Tenant = Depends(get_public_tenant),
    db: Session = Depends(get_db),
):
    try:
        return BookingService.cancel(db, tenant.id, reference, payload.last_name, payload.reason)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        log_event("reservas", None, "Error de base de datos al cancelar reserva", f"ref={reference} error={e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not cancel the booking. Please try again later.",
        )
