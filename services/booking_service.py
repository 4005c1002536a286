"""
Coordinador de reservas del motor público

La creación corre en una única transacción SERIALIZABLE: la disponibilidad se
vuelve a calcular adentro, así dos pedidos concurrentes por la última
habitación no pueden confirmarse ambos. En PostgreSQL uno de los dos falla por
conflicto de serialización, se reintenta y en el reintento ya ve la reserva del
otro; en SQLite el segundo espera el lock de escritura tomado al inicio.
"""
import secrets
import string
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload, selectinload

from config import (
    BOOKING_REFERENCE_ATTEMPTS,
    BOOKING_REFERENCE_LENGTH,
    BOOKING_REFERENCE_PREFIX,
    BOOKING_TX_TIMEOUT_SECONDS,
)
from database.transaction import run_in_transaction
from models.core import (
    Guest,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Reservation,
    ReservationRoomLine,
    ReservationSource,
    ReservationStatus,
    RoomType,
)
from schemas.audit import ReservationSnapshot
from schemas.bookings import (
    BookedRoomSummary,
    BookingCancellation,
    BookingConfirmation,
    BookingCreate,
    GuestContact,
    GuestInput,
)
from services.audit_service import AuditService
from services.availability_service import AvailabilityService, validate_range
from services.exceptions import (
    InsufficientAvailability,
    InvalidStatusTransition,
    LodgingError,
    NotFound,
    ReferenceGenerationExhausted,
    ValidationError,
)
from services.pricing_service import PricingService, quantize_money, resolve_price
from utils.logging_utils import log_event, log_error
from utils.timezone import get_hotel_today, utcnow

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits

# unique_violation: dos transacciones generaron la misma referencia a la vez
UNIQUE_VIOLATION = "23505"

CANCELLABLE_STATUSES = (ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value)


def random_reference() -> str:
    code = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(BOOKING_REFERENCE_LENGTH))
    return f"{BOOKING_REFERENCE_PREFIX}{code}"


def _merge_room_requests(rooms) -> "OrderedDict[int, int]":
    merged: "OrderedDict[int, int]" = OrderedDict()
    for item in rooms:
        merged[item.room_type_id] = merged.get(item.room_type_id, 0) + item.quantity
    return merged


class BookingService:

    @staticmethod
    def generate_reference(db: Session, attempts: int = BOOKING_REFERENCE_ATTEMPTS) -> str:
        """LDG-XXXXXX único entre todos los tenants"""
        for _ in range(attempts):
            reference = random_reference()
            exists = db.query(Reservation.id).filter(Reservation.booking_reference == reference).first()
            if not exists:
                return reference
        raise ReferenceGenerationExhausted(attempts)

    @staticmethod
    def upsert_guest(db: Session, tenant_id: int, data: GuestInput) -> Guest:
        """Busca el huésped por email y después por teléfono; si existe actualiza nombre y contacto"""
        guest = None
        if data.email:
            guest = db.query(Guest).filter(
                Guest.tenant_id == tenant_id,
                func.lower(Guest.email) == data.email.lower(),
            ).order_by(Guest.id).first()
        if guest is None and data.phone:
            guest = db.query(Guest).filter(
                Guest.tenant_id == tenant_id,
                Guest.phone == data.phone,
            ).order_by(Guest.id).first()

        if guest is None:
            guest = Guest(
                tenant_id=tenant_id,
                first_name=data.first_name,
                last_name=data.last_name,
                email=data.email,
                phone=data.phone,
            )
            db.add(guest)
        else:
            guest.first_name = data.first_name
            guest.last_name = data.last_name
            if data.email:
                guest.email = data.email
            if data.phone:
                guest.phone = data.phone

        db.flush()
        return guest

    @staticmethod
    def create_booking(
        db: Session,
        tenant_id: int,
        request: BookingCreate,
        actor_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> BookingConfirmation:
        nights = validate_range(request.check_in, request.check_out)
        today = today or get_hotel_today()
        if request.check_in < today:
            raise ValidationError("Check-in date must be today or in the future")

        requested = _merge_room_requests(request.rooms)
        initial_status = (
            ReservationStatus.CONFIRMED.value
            if request.payment_method == PaymentMethod.PAY_AT_PROPERTY.value
            else ReservationStatus.PENDING.value
        )

        def work(tx: Session) -> BookingConfirmation:
            room_types: Dict[int, RoomType] = {}
            for room_type_id, quantity in requested.items():
                room_type = tx.query(RoomType).filter(
                    RoomType.id == room_type_id,
                    RoomType.tenant_id == tenant_id,
                    RoomType.active.is_(True),
                ).first()
                if not room_type:
                    raise NotFound("Room type", room_type_id)

                available = AvailabilityService.available_units(
                    tx, tenant_id, room_type_id, request.check_in, request.check_out
                )
                if available < quantity:
                    raise InsufficientAvailability(room_type.name, quantity - available, available, quantity)
                room_types[room_type_id] = room_type

            guest = BookingService.upsert_guest(tx, tenant_id, request.guest)
            reference = BookingService.generate_reference(tx)

            rules = PricingService.load_rules(
                tx, tenant_id, list(room_types.keys()), request.check_in, request.check_out
            )

            reservation = Reservation(
                tenant_id=tenant_id,
                guest_id=guest.id,
                booking_reference=reference,
                check_in=request.check_in,
                check_out=request.check_out,
                status=initial_status,
                paid_amount=Decimal("0.00"),
                number_of_guests=request.number_of_guests or sum(requested.values()),
                source=ReservationSource.BOOKING_ENGINE.value,
                special_requests=request.special_requests,
            )

            total = Decimal("0")
            summary = []
            for room_type_id, quantity in requested.items():
                room_type = room_types[room_type_id]
                nightly = resolve_price(
                    room_type,
                    rules[room_type_id]["rate_plans"],
                    rules[room_type_id]["seasonal_rates"],
                    request.check_in,
                    request.check_out,
                    nights,
                )
                for _ in range(quantity):
                    reservation.lines.append(
                        ReservationRoomLine(room_type_id=room_type_id, price_per_night=nightly)
                    )
                    total += nightly * nights
                summary.append(BookedRoomSummary(
                    room_type_id=room_type_id,
                    room_type=room_type.name,
                    quantity=quantity,
                    price_per_night=nightly,
                ))

            reservation.total_amount = quantize_money(total)
            tx.add(reservation)
            tx.flush()

            payment = None
            if request.payment_method == PaymentMethod.ONLINE.value:
                # Intento de pago: el asiento contable se genera recién al confirmarse
                payment = Payment(
                    tenant_id=tenant_id,
                    reservation_id=reservation.id,
                    amount=reservation.total_amount,
                    method=PaymentMethod.ONLINE.value,
                    status=PaymentStatus.INITIATED.value,
                    description=f"Online payment for booking {reference}",
                    created_by=actor_id,
                )
                tx.add(payment)
                tx.flush()

            AuditService.record(
                tx, tenant_id, actor_id, "create", "reservation", reservation.id,
                after=ReservationSnapshot.from_reservation(reservation),
            )

            return BookingConfirmation(
                booking_reference=reference,
                status=initial_status,
                check_in=request.check_in,
                check_out=request.check_out,
                nights=nights,
                guest=GuestContact.model_validate(guest),
                rooms=summary,
                total_amount=reservation.total_amount,
                payment_method=request.payment_method,
                payment_id=payment.id if payment else None,
                created_at=reservation.created_at or utcnow(),
            )

        try:
            confirmation = run_in_transaction(
                db,
                work,
                timeout_seconds=BOOKING_TX_TIMEOUT_SECONDS,
                retry_states=(UNIQUE_VIOLATION,),
                area="reservas",
                actor=actor_id,
            )
        except LodgingError as e:
            log_error("reservas", actor_id, "Reserva rechazada", f"tenant={tenant_id} error={e.code}: {e.message}")
            raise

        log_event(
            "reservas", actor_id, "Reserva creada",
            f"tenant={tenant_id} ref={confirmation.booking_reference} status={confirmation.status} "
            f"total={confirmation.total_amount}",
        )
        return confirmation

    @staticmethod
    def _find_by_reference(db: Session, tenant_id: int, reference: str, last_name: str) -> Reservation:
        reservation = db.query(Reservation).join(Guest, Reservation.guest_id == Guest.id).options(
            joinedload(Reservation.guest),
            selectinload(Reservation.lines).joinedload(ReservationRoomLine.room_type),
            selectinload(Reservation.lines).joinedload(ReservationRoomLine.room),
            selectinload(Reservation.payments),
        ).filter(
            Reservation.tenant_id == tenant_id,
            Reservation.booking_reference == reference.strip().upper(),
            func.lower(Guest.last_name) == last_name.strip().lower(),
        ).first()
        if not reservation:
            raise NotFound(
                "Booking", reference,
                message="Booking not found. Please check your booking reference and last name.",
            )
        return reservation

    @staticmethod
    def get_by_reference(db: Session, tenant_id: int, reference: str, last_name: str) -> Reservation:
        return BookingService._find_by_reference(db, tenant_id, reference, last_name)

    @staticmethod
    def cancel(
        db: Session,
        tenant_id: int,
        reference: str,
        last_name: str,
        reason: Optional[str] = None,
    ) -> BookingCancellation:
        def work(tx: Session) -> BookingCancellation:
            reservation = BookingService._find_by_reference(tx, tenant_id, reference, last_name)
            if reservation.status not in CANCELLABLE_STATUSES:
                raise InvalidStatusTransition(
                    reservation.status,
                    ReservationStatus.CANCELLED.value,
                    list(CANCELLABLE_STATUSES),
                    message=(
                        f'Cannot cancel a booking with status "{reservation.status}". '
                        "Only pending or confirmed bookings can be cancelled."
                    ),
                )

            before = ReservationSnapshot.from_reservation(reservation)
            reservation.status = ReservationStatus.CANCELLED.value
            reservation.cancelled_at = utcnow()
            reservation.cancel_reason = reason
            tx.flush()

            AuditService.record(
                tx, tenant_id, None, "status_change", "reservation", reservation.id,
                before=before,
                after=ReservationSnapshot.from_reservation(reservation, cancel_reason=reason),
            )
            return BookingCancellation(
                booking_reference=reservation.booking_reference,
                status=reservation.status,
                cancelled_at=reservation.cancelled_at,
                cancel_reason=reservation.cancel_reason,
            )

        result = run_in_transaction(db, work, area="reservas")
        log_event("reservas", None, "Reserva cancelada por huésped", f"tenant={tenant_id} ref={result.booking_reference}")
        return result
