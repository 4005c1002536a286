from typing import Optional, List, Literal
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, EmailStr, Field, PositiveInt, constr, model_validator, ConfigDict


# ============================================================================
# DISPONIBILIDAD
# ============================================================================

class RoomTypeSummary(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    max_occupancy: int

    model_config = ConfigDict(from_attributes=True)


class AvailabilityOffer(BaseModel):
    room_type: RoomTypeSummary
    total_rooms: int
    booked_rooms: int
    available_rooms: int
    nightly_price: Decimal
    total_price: Decimal
    nights: int

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# CREACIÓN DE RESERVA (motor público)
# ============================================================================

class GuestInput(BaseModel):
    first_name: constr(strip_whitespace=True, min_length=1, max_length=60)
    last_name: constr(strip_whitespace=True, min_length=1, max_length=60)
    email: Optional[EmailStr] = None
    phone: Optional[constr(strip_whitespace=True, min_length=5, max_length=30)] = None

    @model_validator(mode="after")
    def validar_contacto(self):
        if not self.email and not self.phone:
            raise ValueError("Guest must provide an email or a phone number")
        if self.email:
            self.email = self.email.lower()
        return self


class RoomRequest(BaseModel):
    room_type_id: PositiveInt
    quantity: PositiveInt = 1


class BookingCreate(BaseModel):
    check_in: date
    check_out: date
    guest: GuestInput
    rooms: List[RoomRequest] = Field(..., min_length=1)
    number_of_guests: Optional[PositiveInt] = None
    special_requests: Optional[constr(strip_whitespace=True, max_length=1000)] = None
    payment_method: Literal["online", "pay_at_property"] = "pay_at_property"

    @model_validator(mode="after")
    def validar_fechas(self):
        if self.check_out <= self.check_in:
            raise ValueError("Check-out date must be after check-in date")
        return self


class BookedRoomSummary(BaseModel):
    room_type_id: int
    room_type: str
    quantity: int
    price_per_night: Decimal


class GuestContact(BaseModel):
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class BookingConfirmation(BaseModel):
    booking_reference: str
    status: str
    check_in: date
    check_out: date
    nights: int
    guest: GuestContact
    rooms: List[BookedRoomSummary]
    total_amount: Decimal
    payment_method: str
    payment_id: Optional[int] = None
    created_at: datetime


# ============================================================================
# GESTIÓN (consulta / cancelación por el huésped)
# ============================================================================

class BookingLookup(BaseModel):
    booking_reference: constr(strip_whitespace=True, to_upper=True, min_length=4, max_length=20)
    last_name: constr(strip_whitespace=True, min_length=1, max_length=60)


class BookingCancel(BaseModel):
    last_name: constr(strip_whitespace=True, min_length=1, max_length=60)
    reason: Optional[constr(strip_whitespace=True, max_length=500)] = None


class BookingLineRead(BaseModel):
    id: int
    room_type_id: int
    room_type: Optional[str] = None
    room_id: Optional[int] = None
    room_number: Optional[str] = None
    price_per_night: Decimal


class BookingPaymentRead(BaseModel):
    id: int
    amount: Decimal
    method: str
    status: str
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BookingDetail(BaseModel):
    booking_reference: str
    status: str
    check_in: date
    check_out: date
    nights: int
    number_of_guests: int
    special_requests: Optional[str] = None
    total_amount: Decimal
    paid_amount: Decimal
    guest: GuestContact
    rooms: List[BookingLineRead]
    payments: List[BookingPaymentRead] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    @classmethod
    def from_reservation(cls, reservation) -> "BookingDetail":
        return cls(
            booking_reference=reservation.booking_reference,
            status=reservation.status,
            check_in=reservation.check_in,
            check_out=reservation.check_out,
            nights=reservation.nights,
            number_of_guests=reservation.number_of_guests,
            special_requests=reservation.special_requests,
            total_amount=reservation.total_amount,
            paid_amount=reservation.paid_amount,
            guest=GuestContact.model_validate(reservation.guest),
            rooms=[
                BookingLineRead(
                    id=line.id,
                    room_type_id=line.room_type_id,
                    room_type=line.room_type.name if line.room_type else None,
                    room_id=line.room_id,
                    room_number=line.room.number if line.room else None,
                    price_per_night=line.price_per_night,
                )
                for line in reservation.lines
            ],
            payments=[BookingPaymentRead.model_validate(p) for p in reservation.payments],
            created_at=reservation.created_at,
            cancelled_at=reservation.cancelled_at,
            cancel_reason=reservation.cancel_reason,
        )


class BookingCancellation(BaseModel):
    booking_reference: str
    status: str
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    message: str = "Booking has been cancelled successfully."
