from typing import Optional, List, Literal
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, Field, PositiveInt, constr, model_validator, ConfigDict

from schemas.bookings import GuestContact


ReservationStatusLiteral = Literal[
    "inquiry", "pending", "confirmed", "checked_in", "checked_out", "cancelled", "no_show"
]


# ============================================================================
# ESCRITURA
# ============================================================================

class ReservationRoomCreate(BaseModel):
    room_type_id: PositiveInt
    quantity: PositiveInt = 1
    room_id: Optional[PositiveInt] = None  # Solo se asigna a la primera unidad del tipo


class ReservationCreate(BaseModel):
    """Alta desde recepción (walk-in / teléfono): el huésped ya existe"""
    guest_id: PositiveInt
    check_in: date
    check_out: date
    rooms: List[ReservationRoomCreate] = Field(..., min_length=1)
    number_of_guests: Optional[PositiveInt] = None
    source: Literal["walk_in", "phone", "direct"] = "walk_in"
    special_requests: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validar_fechas(self):
        if self.check_out <= self.check_in:
            raise ValueError("Check-out date must be after check-in date")
        return self


class ReservationUpdate(BaseModel):
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    number_of_guests: Optional[PositiveInt] = None
    special_requests: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validar_datos(self):
        if not self.model_fields_set:
            raise ValueError("No hay campos para actualizar")
        if self.check_in and self.check_out and self.check_out <= self.check_in:
            raise ValueError("Check-out date must be after check-in date")
        return self


class StatusChange(BaseModel):
    status: ReservationStatusLiteral
    reason: Optional[constr(strip_whitespace=True, max_length=500)] = None


class RoomAssignmentInput(BaseModel):
    line_id: PositiveInt
    room_id: PositiveInt


class CheckInRequest(BaseModel):
    assignments: List[RoomAssignmentInput] = Field(..., min_length=1)


# ============================================================================
# LECTURA
# ============================================================================

class ReservationLineRead(BaseModel):
    id: int
    room_type_id: int
    room_type: Optional[str] = None
    room_id: Optional[int] = None
    room_number: Optional[str] = None
    price_per_night: Decimal


class StayRead(BaseModel):
    id: int
    room_id: int
    check_in: datetime
    check_out: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReservationRead(BaseModel):
    id: int
    booking_reference: str
    status: str
    check_in: date
    check_out: date
    nights: int
    number_of_guests: int
    source: str
    special_requests: Optional[str] = None
    notes: Optional[str] = None
    total_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    guest_id: int
    guest: Optional[GuestContact] = None
    lines: List[ReservationLineRead] = Field(default_factory=list)
    stays: List[StayRead] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    @classmethod
    def from_reservation(cls, reservation) -> "ReservationRead":
        return cls(
            id=reservation.id,
            booking_reference=reservation.booking_reference,
            status=reservation.status,
            check_in=reservation.check_in,
            check_out=reservation.check_out,
            nights=reservation.nights,
            number_of_guests=reservation.number_of_guests,
            source=reservation.source,
            special_requests=reservation.special_requests,
            notes=reservation.notes,
            total_amount=reservation.total_amount,
            paid_amount=reservation.paid_amount,
            balance=reservation.balance,
            guest_id=reservation.guest_id,
            guest=GuestContact.model_validate(reservation.guest) if reservation.guest else None,
            lines=[
                ReservationLineRead(
                    id=line.id,
                    room_type_id=line.room_type_id,
                    room_type=line.room_type.name if line.room_type else None,
                    room_id=line.room_id,
                    room_number=line.room.number if line.room else None,
                    price_per_night=line.price_per_night,
                )
                for line in reservation.lines
            ],
            stays=[StayRead.model_validate(s) for s in reservation.stays],
            created_at=reservation.created_at,
            checked_in_at=reservation.checked_in_at,
            checked_out_at=reservation.checked_out_at,
            cancelled_at=reservation.cancelled_at,
            cancel_reason=reservation.cancel_reason,
        )


class ReservationPage(BaseModel):
    data: List[ReservationRead]
    total: int
    skip: int
    take: int
