"""
Resolución de disponibilidad

Solapamiento semiabierto [check_in, check_out): una reserva existente choca con
la consulta cuando existing.check_in < q.check_out AND existing.check_out > q.check_in.
Así, salir el 15 y entrar el 15 no es conflicto.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, distinct, func
from sqlalchemy.orm import Session

from models.core import (
    BLOCKING_STATUSES,
    Reservation,
    ReservationRoomLine,
    Room,
    RoomType,
)
from services.exceptions import InvalidDateRange, NotFound
from services.pricing_service import PricingService, count_nights, quantize_money, resolve_price


def overlaps(check_in: date, check_out: date):
    """Condición SQL de solapamiento contra Reservation"""
    return and_(Reservation.check_in < check_out, Reservation.check_out > check_in)


def validate_range(check_in: date, check_out: date) -> int:
    nights = count_nights(check_in, check_out)
    if nights <= 0:
        raise InvalidDateRange()
    return nights


@dataclass
class RoomTypeAvailability:
    room_type: RoomType
    total_rooms: int
    booked_rooms: int
    available_rooms: int
    nightly_price: Decimal
    total_price: Decimal
    nights: int


class AvailabilityService:

    @staticmethod
    def total_rooms(db: Session, tenant_id: int, room_type_id: int) -> int:
        return db.query(func.count(Room.id)).filter(
            Room.tenant_id == tenant_id,
            Room.room_type_id == room_type_id,
            Room.active.is_(True),
        ).scalar() or 0

    @staticmethod
    def booked_units(
        db: Session,
        tenant_id: int,
        room_type_id: int,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[int] = None,
    ) -> int:
        """
        Unidades ocupadas de un tipo en el rango: habitaciones distintas ya
        asignadas más cada línea todavía sin habitación (se asigna en el check-in).
        """
        base = db.query(ReservationRoomLine).join(
            Reservation, ReservationRoomLine.reservation_id == Reservation.id
        ).filter(
            Reservation.tenant_id == tenant_id,
            ReservationRoomLine.room_type_id == room_type_id,
            Reservation.status.in_(BLOCKING_STATUSES),
            overlaps(check_in, check_out),
        )
        if exclude_reservation_id is not None:
            base = base.filter(Reservation.id != exclude_reservation_id)

        assigned = base.filter(ReservationRoomLine.room_id.isnot(None)).with_entities(
            func.count(distinct(ReservationRoomLine.room_id))
        ).scalar() or 0
        unassigned = base.filter(ReservationRoomLine.room_id.is_(None)).with_entities(
            func.count(ReservationRoomLine.id)
        ).scalar() or 0
        return assigned + unassigned

    @staticmethod
    def available_units(db: Session, tenant_id: int, room_type_id: int, check_in: date, check_out: date) -> int:
        total = AvailabilityService.total_rooms(db, tenant_id, room_type_id)
        booked = AvailabilityService.booked_units(db, tenant_id, room_type_id, check_in, check_out)
        return max(0, total - booked)

    @staticmethod
    def search(
        db: Session,
        tenant_id: int,
        check_in: date,
        check_out: date,
        guest_count: int = 1,
    ) -> List[RoomTypeAvailability]:
        """
        Tipos de habitación con lugar para `guest_count` y al menos una unidad
        libre, ordenados por sort_order, con el precio resuelto para el rango.
        """
        nights = validate_range(check_in, check_out)

        room_types = db.query(RoomType).filter(
            RoomType.tenant_id == tenant_id,
            RoomType.active.is_(True),
            RoomType.max_occupancy >= guest_count,
        ).order_by(RoomType.sort_order, RoomType.id).all()

        rules = PricingService.load_rules(db, tenant_id, [rt.id for rt in room_types], check_in, check_out)

        results = []
        for room_type in room_types:
            total = AvailabilityService.total_rooms(db, tenant_id, room_type.id)
            booked = AvailabilityService.booked_units(db, tenant_id, room_type.id, check_in, check_out)
            available = max(0, total - booked)
            if available <= 0:
                continue

            nightly = resolve_price(
                room_type,
                rules[room_type.id]["rate_plans"],
                rules[room_type.id]["seasonal_rates"],
                check_in,
                check_out,
                nights,
            )
            results.append(RoomTypeAvailability(
                room_type=room_type,
                total_rooms=total,
                booked_rooms=booked,
                available_rooms=available,
                nightly_price=nightly,
                total_price=quantize_money(nightly * nights),
                nights=nights,
            ))
        return results

    @staticmethod
    def is_room_available(
        db: Session,
        tenant_id: int,
        room_id: int,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[int] = None,
    ) -> bool:
        validate_range(check_in, check_out)

        room = db.query(Room).filter(
            Room.id == room_id,
            Room.tenant_id == tenant_id,
            Room.active.is_(True),
        ).first()
        if not room:
            raise NotFound("Room", room_id)

        query = db.query(ReservationRoomLine.id).join(
            Reservation, ReservationRoomLine.reservation_id == Reservation.id
        ).filter(
            ReservationRoomLine.room_id == room_id,
            Reservation.tenant_id == tenant_id,
            Reservation.status.in_(BLOCKING_STATUSES),
            overlaps(check_in, check_out),
        )
        if exclude_reservation_id is not None:
            query = query.filter(Reservation.id != exclude_reservation_id)

        return query.first() is None
