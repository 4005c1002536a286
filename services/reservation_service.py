"""
Services para el ciclo de vida de la reserva
Contiene lógica de negocio para:
- Transiciones de estado (tabla cerrada de transiciones válidas)
- Check-in con asignación de habitaciones y apertura de estadías
- Check-out con cierre de estadías y habitaciones a limpieza
- Alta desde recepción y edición de datos
- Llegadas y salidas del día
"""
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from config import BOOKING_TX_TIMEOUT_SECONDS
from database.transaction import run_in_transaction
from models.core import (
    Assigned,
    Guest,
    Reservation,
    ReservationRoomLine,
    ReservationStatus,
    Room,
    RoomStatus,
    RoomType,
    Stay,
)
from schemas.audit import ReservationSnapshot
from schemas.reservations import ReservationCreate, ReservationUpdate, RoomAssignmentInput
from services.audit_service import AuditService
from services.availability_service import AvailabilityService, validate_range
from services.booking_service import BookingService, UNIQUE_VIOLATION
from services.exceptions import (
    InsufficientAvailability,
    InvalidStatusTransition,
    NotFound,
    RoomUnavailable,
    ValidationError,
)
from services.housekeeping_service import generate_checkout_task
from services.pricing_service import PricingService, quantize_money, resolve_price
from utils.logging_utils import log_event
from utils.timezone import get_hotel_today, utcnow

S = ReservationStatus

TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    S.INQUIRY.value: (S.PENDING.value, S.CONFIRMED.value, S.CANCELLED.value),
    S.PENDING.value: (S.CONFIRMED.value, S.CANCELLED.value),
    S.CONFIRMED.value: (S.CHECKED_IN.value, S.CANCELLED.value, S.NO_SHOW.value),
    S.CHECKED_IN.value: (S.CHECKED_OUT.value,),
    S.CHECKED_OUT.value: (),
    S.CANCELLED.value: (),
    S.NO_SHOW.value: (),
}

TERMINAL_STATUSES = (S.CHECKED_OUT.value, S.CANCELLED.value, S.NO_SHOW.value)
DATE_EDITABLE_STATUSES = (S.INQUIRY.value, S.PENDING.value, S.CONFIRMED.value)
UNAVAILABLE_ROOM_STATUSES = (RoomStatus.OCCUPIED.value, RoomStatus.OUT_OF_SERVICE.value)


def allowed_transitions(status: str) -> Tuple[str, ...]:
    return TRANSITIONS.get(status, ())


def ensure_transition(from_status: str, to_status: str) -> None:
    allowed = allowed_transitions(from_status)
    if to_status not in allowed:
        raise InvalidStatusTransition(from_status, to_status, list(allowed))


def apply_status_change(
    db: Session,
    reservation: Reservation,
    to_status: str,
    actor_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> Reservation:
    """
    Aplica una transición sin efectos laterales sobre habitaciones dentro de la
    transacción del llamador (la usa también el ledger para la autoconfirmación).
    """
    ensure_transition(reservation.status, to_status)
    before = ReservationSnapshot.from_reservation(reservation)

    reservation.status = to_status
    if to_status == S.CANCELLED.value:
        reservation.cancelled_at = utcnow()
        reservation.cancel_reason = reason
    db.flush()

    AuditService.record(
        db, reservation.tenant_id, actor_id, "status_change", "reservation", reservation.id,
        before=before,
        after=ReservationSnapshot.from_reservation(reservation, reason=reason),
    )
    return reservation


def require_assigned(lines: Iterable[ReservationRoomLine]) -> List[Assigned]:
    assigned = []
    for line in lines:
        assignment = line.assignment
        if not isinstance(assignment, Assigned):
            raise ValidationError(f'Room line "{line.id}" has no room assigned')
        assigned.append(assignment)
    return assigned


def _detail_query(db: Session):
    return db.query(Reservation).options(
        joinedload(Reservation.guest),
        selectinload(Reservation.lines).joinedload(ReservationRoomLine.room_type),
        selectinload(Reservation.lines).joinedload(ReservationRoomLine.room),
        selectinload(Reservation.stays),
    )


class ReservationService:

    @staticmethod
    def _get(db: Session, tenant_id: int, reservation_id: int) -> Reservation:
        reservation = db.query(Reservation).filter(
            Reservation.id == reservation_id,
            Reservation.tenant_id == tenant_id,
        ).first()
        if not reservation:
            raise NotFound("Reservation", reservation_id)
        return reservation

    @staticmethod
    def get(db: Session, tenant_id: int, reservation_id: int) -> Reservation:
        reservation = _detail_query(db).filter(
            Reservation.id == reservation_id,
            Reservation.tenant_id == tenant_id,
        ).first()
        if not reservation:
            raise NotFound("Reservation", reservation_id)
        return reservation

    @staticmethod
    def list(
        db: Session,
        tenant_id: int,
        status: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        guest_name: Optional[str] = None,
        skip: int = 0,
        take: int = 20,
    ) -> Tuple[List[Reservation], int]:
        query = db.query(Reservation).filter(Reservation.tenant_id == tenant_id)
        if status:
            query = query.filter(Reservation.status == status)
        if from_date:
            query = query.filter(Reservation.check_in >= from_date)
        if to_date:
            query = query.filter(Reservation.check_out <= to_date)
        if guest_name:
            pattern = f"%{guest_name.lower()}%"
            query = query.join(Guest, Reservation.guest_id == Guest.id).filter(
                or_(func.lower(Guest.first_name).like(pattern), func.lower(Guest.last_name).like(pattern))
            )

        total = query.count()
        ids = [
            row.id for row in query.with_entities(Reservation.id)
            .order_by(Reservation.created_at.desc(), Reservation.id.desc())
            .offset(skip).limit(take).all()
        ]
        if not ids:
            return [], total
        items = _detail_query(db).filter(Reservation.id.in_(ids)).all()
        items.sort(key=lambda r: ids.index(r.id))
        return items, total

    # ------------------------------------------------------------------
    # Alta desde recepción
    # ------------------------------------------------------------------
    @staticmethod
    def create(db: Session, tenant_id: int, data: ReservationCreate, actor_id: Optional[int] = None) -> Reservation:
        nights = validate_range(data.check_in, data.check_out)

        def work(tx: Session) -> int:
            guest = tx.query(Guest).filter(Guest.id == data.guest_id, Guest.tenant_id == tenant_id).first()
            if not guest:
                raise NotFound("Guest", data.guest_id)

            requested: Dict[int, int] = {}
            for item in data.rooms:
                requested[item.room_type_id] = requested.get(item.room_type_id, 0) + item.quantity

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
                    tx, tenant_id, room_type_id, data.check_in, data.check_out
                )
                if available < quantity:
                    raise InsufficientAvailability(room_type.name, quantity - available, available, quantity)
                room_types[room_type_id] = room_type

            rules = PricingService.load_rules(tx, tenant_id, list(room_types), data.check_in, data.check_out)

            reservation = Reservation(
                tenant_id=tenant_id,
                guest_id=guest.id,
                booking_reference=BookingService.generate_reference(tx),
                check_in=data.check_in,
                check_out=data.check_out,
                status=S.CONFIRMED.value,
                paid_amount=Decimal("0.00"),
                number_of_guests=data.number_of_guests or sum(requested.values()),
                source=data.source,
                special_requests=data.special_requests,
                notes=data.notes,
            )

            total = Decimal("0")
            for item in data.rooms:
                room_type = room_types[item.room_type_id]
                rt_rules = rules[item.room_type_id]
                nightly = resolve_price(
                    room_type, rt_rules["rate_plans"], rt_rules["seasonal_rates"],
                    data.check_in, data.check_out, nights,
                )
                for i in range(item.quantity):
                    line = ReservationRoomLine(room_type_id=room_type.id, price_per_night=nightly)
                    if i == 0 and item.room_id:
                        room = tx.query(Room).filter(
                            Room.id == item.room_id,
                            Room.tenant_id == tenant_id,
                            Room.room_type_id == room_type.id,
                            Room.active.is_(True),
                        ).first()
                        if not room:
                            raise NotFound(
                                "Room", item.room_id,
                                message=f'Room "{item.room_id}" not found or does not match room type',
                            )
                        if not AvailabilityService.is_room_available(
                            tx, tenant_id, room.id, data.check_in, data.check_out
                        ):
                            raise RoomUnavailable(
                                f'Room "{room.number}" is already booked for the selected dates', room.id
                            )
                        line.assign(room.id)
                    reservation.lines.append(line)
                    total += nightly * nights

            reservation.total_amount = quantize_money(total)
            tx.add(reservation)
            tx.flush()

            AuditService.record(
                tx, tenant_id, actor_id, "create", "reservation", reservation.id,
                after=ReservationSnapshot.from_reservation(reservation),
            )
            return reservation.id

        reservation_id = run_in_transaction(
            db, work,
            timeout_seconds=BOOKING_TX_TIMEOUT_SECONDS,
            retry_states=(UNIQUE_VIOLATION,),
            area="reservas",
            actor=actor_id,
        )
        log_event("reservas", actor_id, "Reserva creada desde recepción", f"reservation_id={reservation_id}")
        return ReservationService.get(db, tenant_id, reservation_id)

    # ------------------------------------------------------------------
    # Edición de datos
    # ------------------------------------------------------------------
    @staticmethod
    def update(
        db: Session,
        tenant_id: int,
        reservation_id: int,
        data: ReservationUpdate,
        actor_id: Optional[int] = None,
    ) -> Reservation:
        """
        Edita fechas y datos del huésped. Si cambian las fechas se revalida la
        disponibilidad (sin contar la propia reserva) y se recalcula el total.
        """
        fields = data.model_fields_set

        def work(tx: Session) -> int:
            reservation = ReservationService._get(tx, tenant_id, reservation_id)
            if reservation.status in TERMINAL_STATUSES:
                raise ValidationError(f'Cannot update a reservation with status "{reservation.status}"')

            before = ReservationSnapshot.from_reservation(reservation)

            new_check_in = data.check_in if "check_in" in fields and data.check_in else reservation.check_in
            new_check_out = data.check_out if "check_out" in fields and data.check_out else reservation.check_out
            dates_changed = (new_check_in, new_check_out) != (reservation.check_in, reservation.check_out)

            if dates_changed:
                if reservation.status not in DATE_EDITABLE_STATUSES:
                    raise ValidationError(
                        f'Dates cannot be changed for a reservation with status "{reservation.status}"'
                    )
                nights = validate_range(new_check_in, new_check_out)
                ReservationService._revalidate_dates(tx, reservation, new_check_in, new_check_out)

                rules = PricingService.load_rules(
                    tx, tenant_id, list({l.room_type_id for l in reservation.lines}), new_check_in, new_check_out
                )
                total = Decimal("0")
                for line in reservation.lines:
                    rt_rules = rules[line.room_type_id]
                    line.price_per_night = resolve_price(
                        line.room_type, rt_rules["rate_plans"], rt_rules["seasonal_rates"],
                        new_check_in, new_check_out, nights,
                    )
                    total += line.price_per_night * nights
                total = quantize_money(total)
                if total < reservation.paid_amount:
                    raise ValidationError(
                        f"New total {total} is lower than the amount already paid ({reservation.paid_amount}). "
                        "Refund the difference first."
                    )
                reservation.check_in = new_check_in
                reservation.check_out = new_check_out
                reservation.total_amount = total

            if "number_of_guests" in fields and data.number_of_guests:
                reservation.number_of_guests = data.number_of_guests
            if "special_requests" in fields:
                reservation.special_requests = data.special_requests
            if "notes" in fields:
                reservation.notes = data.notes

            tx.flush()
            AuditService.record(
                tx, tenant_id, actor_id, "update", "reservation", reservation.id,
                before=before,
                after=ReservationSnapshot.from_reservation(reservation),
            )
            return reservation.id

        run_in_transaction(db, work, area="reservas", actor=actor_id)
        log_event("reservas", actor_id, "Reserva actualizada", f"reservation_id={reservation_id} campos={sorted(fields)}")
        return ReservationService.get(db, tenant_id, reservation_id)

    @staticmethod
    def _revalidate_dates(tx: Session, reservation: Reservation, check_in: date, check_out: date) -> None:
        per_type: Dict[int, int] = {}
        for line in reservation.lines:
            per_type[line.room_type_id] = per_type.get(line.room_type_id, 0) + 1
            if isinstance(line.assignment, Assigned) and not AvailabilityService.is_room_available(
                tx, reservation.tenant_id, line.room_id, check_in, check_out,
                exclude_reservation_id=reservation.id,
            ):
                raise RoomUnavailable(
                    f'Room "{line.room.number}" is already booked for the new dates', line.room_id
                )

        for room_type_id, quantity in per_type.items():
            total = AvailabilityService.total_rooms(tx, reservation.tenant_id, room_type_id)
            booked = AvailabilityService.booked_units(
                tx, reservation.tenant_id, room_type_id, check_in, check_out,
                exclude_reservation_id=reservation.id,
            )
            available = max(0, total - booked)
            if available < quantity:
                room_type = tx.query(RoomType).filter(RoomType.id == room_type_id).first()
                raise InsufficientAvailability(room_type.name, quantity - available, available, quantity)

    # ------------------------------------------------------------------
    # Máquina de estados
    # ------------------------------------------------------------------
    @staticmethod
    def transition(
        db: Session,
        tenant_id: int,
        reservation_id: int,
        to_status: str,
        actor_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Reservation:
        """
        Transición genérica. checked_in y checked_out tienen efectos sobre
        habitaciones y estadías: checked_out se deriva a check_out y checked_in
        exige pasar por check_in con las asignaciones.
        """
        if to_status == S.CHECKED_OUT.value:
            return ReservationService.check_out(db, tenant_id, reservation_id, actor_id)

        def work(tx: Session) -> str:
            reservation = ReservationService._get(tx, tenant_id, reservation_id)
            previous = reservation.status
            ensure_transition(previous, to_status)
            if to_status == S.CHECKED_IN.value:
                raise ValidationError("Check-in requires room assignments; use the check-in operation")
            apply_status_change(tx, reservation, to_status, actor_id, reason)
            return previous

        previous = run_in_transaction(db, work, area="reservas", actor=actor_id)
        log_event("reservas", actor_id, "Cambio de estado", f"reservation_id={reservation_id} {previous} -> {to_status}")
        return ReservationService.get(db, tenant_id, reservation_id)

    @staticmethod
    def check_in(
        db: Session,
        tenant_id: int,
        reservation_id: int,
        assignments: List[RoomAssignmentInput],
        actor_id: Optional[int] = None,
    ) -> Reservation:
        def work(tx: Session) -> None:
            reservation = ReservationService._get(tx, tenant_id, reservation_id)
            ensure_transition(reservation.status, S.CHECKED_IN.value)

            lines = {line.id: line for line in reservation.lines}
            room_by_line: Dict[int, int] = {}
            for item in assignments:
                if item.line_id not in lines:
                    raise ValidationError(f'Room line "{item.line_id}" does not belong to this reservation')
                if item.line_id in room_by_line:
                    raise ValidationError(f'Room line "{item.line_id}" is assigned more than once')
                room_by_line[item.line_id] = item.room_id

            missing = [line_id for line_id in lines if line_id not in room_by_line]
            if missing:
                raise ValidationError(
                    f"Missing room assignment for room line(s): {', '.join(str(m) for m in missing)}"
                )
            if len(set(room_by_line.values())) != len(room_by_line):
                raise ValidationError("The same room cannot be assigned to more than one line")

            before = ReservationSnapshot.from_reservation(reservation)
            now = utcnow()

            for line in reservation.lines:
                room_id = room_by_line[line.id]
                room = tx.query(Room).filter(
                    Room.id == room_id,
                    Room.tenant_id == tenant_id,
                    Room.active.is_(True),
                ).first()
                if not room or room.room_type_id != line.room_type_id:
                    raise RoomUnavailable(
                        f'Room "{room_id}" not found, not active, or does not match the required room type',
                        room_id,
                    )
                if room.status in UNAVAILABLE_ROOM_STATUSES:
                    raise RoomUnavailable(f'Room "{room.number}" is already {room.status}', room.id)
                if not AvailabilityService.is_room_available(
                    tx, tenant_id, room.id, reservation.check_in, reservation.check_out,
                    exclude_reservation_id=reservation.id,
                ):
                    raise RoomUnavailable(
                        f'Room "{room.number}" is held by another reservation for these dates', room.id
                    )

                line.assign(room.id)
                room.status = RoomStatus.OCCUPIED.value
                tx.add(Stay(reservation_id=reservation.id, room_id=room.id, check_in=now))

            assigned = require_assigned(reservation.lines)

            reservation.status = S.CHECKED_IN.value
            reservation.checked_in_at = now
            tx.flush()

            AuditService.record(
                tx, tenant_id, actor_id, "status_change", "reservation", reservation.id,
                before=before,
                after=ReservationSnapshot.from_reservation(
                    reservation, room_ids=[a.room_id for a in assigned]
                ),
            )

        run_in_transaction(db, work, area="checkin", actor=actor_id)
        log_event("checkin", actor_id, "Check-in realizado", f"reservation_id={reservation_id} habitaciones={len(assignments)}")
        return ReservationService.get(db, tenant_id, reservation_id)

    @staticmethod
    def check_out(db: Session, tenant_id: int, reservation_id: int, actor_id: Optional[int] = None) -> Reservation:
        def work(tx: Session) -> None:
            reservation = ReservationService._get(tx, tenant_id, reservation_id)
            ensure_transition(reservation.status, S.CHECKED_OUT.value)
            before = ReservationSnapshot.from_reservation(reservation)
            now = utcnow()

            room_ids = [a.room_id for a in require_assigned(reservation.lines)]
            for room in tx.query(Room).filter(Room.id.in_(room_ids)).all():
                room.status = RoomStatus.DIRTY.value
                generate_checkout_task(tx, tenant_id, room.id, actor_id)

            for stay in reservation.stays:
                if stay.is_open:
                    stay.check_out = now

            reservation.status = S.CHECKED_OUT.value
            reservation.checked_out_at = now
            tx.flush()

            AuditService.record(
                tx, tenant_id, actor_id, "status_change", "reservation", reservation.id,
                before=before,
                after=ReservationSnapshot.from_reservation(reservation, room_ids=room_ids),
            )

        run_in_transaction(db, work, area="checkout", actor=actor_id)
        log_event("checkout", actor_id, "Check-out realizado", f"reservation_id={reservation_id}")
        return ReservationService.get(db, tenant_id, reservation_id)

    # ------------------------------------------------------------------
    # Operación diaria
    # ------------------------------------------------------------------
    @staticmethod
    def arrivals(db: Session, tenant_id: int, day: Optional[date] = None) -> List[Reservation]:
        day = day or get_hotel_today()
        return _detail_query(db).filter(
            Reservation.tenant_id == tenant_id,
            Reservation.status == S.CONFIRMED.value,
            Reservation.check_in == day,
        ).order_by(Reservation.created_at, Reservation.id).all()

    @staticmethod
    def departures(db: Session, tenant_id: int, day: Optional[date] = None) -> List[Reservation]:
        day = day or get_hotel_today()
        return _detail_query(db).filter(
            Reservation.tenant_id == tenant_id,
            Reservation.status == S.CHECKED_IN.value,
            Reservation.check_out == day,
        ).order_by(Reservation.created_at, Reservation.id).all()
