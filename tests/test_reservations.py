"""
Tests del ciclo de vida de la reserva: transiciones, check-in/check-out,
alta desde recepción y edición de fechas.
"""
from decimal import Decimal

import pytest

from models.core import AuditEvent, HousekeepingTask, Room, Stay
from schemas.reservations import ReservationCreate, ReservationUpdate, RoomAssignmentInput
from services.exceptions import (
    InsufficientAvailability,
    InvalidStatusTransition,
    NotFound,
    RoomUnavailable,
    ValidationError,
)
from services.reservation_service import ReservationService, TRANSITIONS, allowed_transitions


def _assign(reservation, rooms):
    return [RoomAssignmentInput(line_id=line.id, room_id=room.id) for line, room in zip(reservation.lines, rooms)]


class TestTransitionTable:

    def test_terminal_states_have_no_exits(self):
        for status in ("checked_out", "cancelled", "no_show"):
            assert allowed_transitions(status) == ()

    def test_every_target_is_a_known_state(self):
        for targets in TRANSITIONS.values():
            assert set(targets) <= set(TRANSITIONS)

    @pytest.mark.parametrize("from_status,to_status", [
        ("pending", "checked_in"),
        ("pending", "no_show"),
        ("checked_in", "cancelled"),
        ("cancelled", "confirmed"),
        ("checked_out", "checked_in"),
    ])
    def test_invalid_transitions_are_rejected(self, db, hotel, make_reservation, future, from_status, to_status):
        reservation = make_reservation(future(0), future(2), status=from_status)
        with pytest.raises(InvalidStatusTransition) as exc:
            ReservationService.transition(db, hotel["tenant_id"], reservation.id, to_status, actor_id=1)
        assert exc.value.from_status == from_status
        assert exc.value.to_status == to_status

    def test_valid_transition_is_audited(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2), status="pending")
        updated = ReservationService.transition(db, hotel["tenant_id"], reservation.id, "confirmed", actor_id=3)
        assert updated.status == "confirmed"

        event = db.query(AuditEvent).filter_by(entity_id=reservation.id, action="status_change").one()
        assert event.actor_id == 3
        assert event.before["status"] == "pending"
        assert event.after["status"] == "confirmed"

    def test_cancel_stamps_reason(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2))
        updated = ReservationService.transition(
            db, hotel["tenant_id"], reservation.id, "cancelled", actor_id=1, reason="No viene"
        )
        assert updated.cancelled_at is not None
        assert updated.cancel_reason == "No viene"

    def test_checked_in_requires_assignments(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2))
        with pytest.raises(ValidationError):
            ReservationService.transition(db, hotel["tenant_id"], reservation.id, "checked_in")

    def test_unknown_reservation(self, db, hotel):
        with pytest.raises(NotFound):
            ReservationService.transition(db, hotel["tenant_id"], 9999, "confirmed")


class TestCheckIn:

    def test_check_in_assigns_rooms_and_opens_stays(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2), quantity=2)
        rooms = hotel["standard_rooms"][:2]

        result = ReservationService.check_in(db, hotel["tenant_id"], reservation.id, _assign(reservation, rooms), 5)

        assert result.status == "checked_in"
        assert result.checked_in_at is not None
        assert sorted(line.room_id for line in result.lines) == sorted(r.id for r in rooms)
        assert len(result.stays) == 2
        assert all(s.is_open for s in result.stays)
        for room in db.query(Room).filter(Room.id.in_([r.id for r in rooms])):
            assert room.status == "occupied"

    def test_missing_line_assignment(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2), quantity=2)
        assignments = _assign(reservation, hotel["standard_rooms"][:1])
        with pytest.raises(ValidationError):
            ReservationService.check_in(db, hotel["tenant_id"], reservation.id, assignments)

    def test_same_room_twice(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2), quantity=2)
        room = hotel["standard_rooms"][0]
        with pytest.raises(ValidationError):
            ReservationService.check_in(db, hotel["tenant_id"], reservation.id, _assign(reservation, [room, room]))

    def test_room_of_wrong_type(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2))
        with pytest.raises(RoomUnavailable):
            ReservationService.check_in(
                db, hotel["tenant_id"], reservation.id, _assign(reservation, hotel["suite_rooms"][:1])
            )

    def test_occupied_room(self, db, hotel, make_reservation, future):
        room = hotel["standard_rooms"][0]
        room.status = "occupied"
        db.commit()
        reservation = make_reservation(future(0), future(2))
        with pytest.raises(RoomUnavailable):
            ReservationService.check_in(db, hotel["tenant_id"], reservation.id, _assign(reservation, [room]))

    def test_room_held_by_other_reservation(self, db, hotel, make_reservation, future):
        room = hotel["standard_rooms"][0]
        make_reservation(future(1), future(3), room_ids=[room.id])
        reservation = make_reservation(future(0), future(2))
        with pytest.raises(RoomUnavailable):
            ReservationService.check_in(db, hotel["tenant_id"], reservation.id, _assign(reservation, [room]))

    def test_failed_check_in_changes_nothing(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2), quantity=2)
        good, wrong_type = hotel["standard_rooms"][0], hotel["suite_rooms"][0]
        with pytest.raises(RoomUnavailable):
            ReservationService.check_in(
                db, hotel["tenant_id"], reservation.id, _assign(reservation, [good, wrong_type])
            )
        db.expire_all()
        assert db.get(Room, good.id).status == "available"
        assert db.query(Stay).count() == 0

    def test_pending_reservation_cannot_check_in(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2), status="pending")
        with pytest.raises(InvalidStatusTransition):
            ReservationService.check_in(
                db, hotel["tenant_id"], reservation.id, _assign(reservation, hotel["standard_rooms"][:1])
            )


class TestCheckOut:

    def test_check_out_closes_stays_and_dirties_rooms(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2))
        room = hotel["standard_rooms"][0]
        ReservationService.check_in(db, hotel["tenant_id"], reservation.id, _assign(reservation, [room]))

        result = ReservationService.check_out(db, hotel["tenant_id"], reservation.id, actor_id=2)

        assert result.status == "checked_out"
        assert result.checked_out_at is not None
        assert all(not s.is_open for s in result.stays)
        assert db.get(Room, room.id).status == "dirty"

        task = db.query(HousekeepingTask).filter_by(room_id=room.id).one()
        assert task.status == "pending"
        assert task.priority == "high"

    def test_status_change_to_checked_out_delegates(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2))
        room = hotel["standard_rooms"][0]
        ReservationService.check_in(db, hotel["tenant_id"], reservation.id, _assign(reservation, [room]))

        result = ReservationService.transition(db, hotel["tenant_id"], reservation.id, "checked_out")
        assert result.status == "checked_out"
        assert db.get(Room, room.id).status == "dirty"

    def test_check_out_requires_check_in(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2))
        with pytest.raises(InvalidStatusTransition):
            ReservationService.check_out(db, hotel["tenant_id"], reservation.id)


class TestCreateAndUpdate:

    def test_walk_in_is_confirmed_and_priced(self, db, hotel, guest, future):
        data = ReservationCreate(
            guest_id=guest.id,
            check_in=future(0),
            check_out=future(3),
            rooms=[{"room_type_id": hotel["suite"].id, "quantity": 1, "room_id": hotel["suite_rooms"][0].id}],
        )
        reservation = ReservationService.create(db, hotel["tenant_id"], data, actor_id=1)

        assert reservation.status == "confirmed"
        assert reservation.source == "walk_in"
        assert reservation.total_amount == Decimal("750.00")
        assert reservation.lines[0].room_id == hotel["suite_rooms"][0].id

    def test_walk_in_checks_availability(self, db, hotel, guest, make_reservation, future):
        make_reservation(future(0), future(3), room_type=hotel["suite"], quantity=2)
        data = ReservationCreate(
            guest_id=guest.id, check_in=future(1), check_out=future(2),
            rooms=[{"room_type_id": hotel["suite"].id, "quantity": 1}],
        )
        with pytest.raises(InsufficientAvailability):
            ReservationService.create(db, hotel["tenant_id"], data)

    def test_walk_in_unknown_guest(self, db, hotel, future):
        data = ReservationCreate(
            guest_id=9999, check_in=future(0), check_out=future(1),
            rooms=[{"room_type_id": hotel["standard"].id}],
        )
        with pytest.raises(NotFound):
            ReservationService.create(db, hotel["tenant_id"], data)

    def test_date_change_reprices(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2))
        updated = ReservationService.update(
            db, hotel["tenant_id"], reservation.id, ReservationUpdate(check_out=future(4)), actor_id=1
        )
        assert updated.check_out == future(4)
        assert updated.total_amount == Decimal("400.00")

    def test_date_change_ignores_own_reservation(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2), room_type=hotel["suite"], quantity=2)
        updated = ReservationService.update(
            db, hotel["tenant_id"], reservation.id, ReservationUpdate(check_in=future(1), check_out=future(3))
        )
        assert updated.check_in == future(1)

    def test_date_change_without_room(self, db, hotel, make_reservation, future):
        make_reservation(future(3), future(5), room_type=hotel["suite"], quantity=2)
        reservation = make_reservation(future(0), future(2), room_type=hotel["suite"])
        with pytest.raises(InsufficientAvailability):
            ReservationService.update(
                db, hotel["tenant_id"], reservation.id, ReservationUpdate(check_out=future(4))
            )

    def test_total_below_paid_is_rejected(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(4), paid="400.00")
        with pytest.raises(ValidationError):
            ReservationService.update(
                db, hotel["tenant_id"], reservation.id, ReservationUpdate(check_out=future(2))
            )

    def test_notes_only_update(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2), status="checked_in")
        updated = ReservationService.update(
            db, hotel["tenant_id"], reservation.id, ReservationUpdate(notes="Late checkout")
        )
        assert updated.notes == "Late checkout"

    def test_terminal_reservation_cannot_be_edited(self, db, hotel, make_reservation, future):
        reservation = make_reservation(future(0), future(2), status="cancelled")
        with pytest.raises(ValidationError):
            ReservationService.update(db, hotel["tenant_id"], reservation.id, ReservationUpdate(notes="x"))


class TestDailyLists:

    def test_arrivals_and_departures(self, db, hotel, make_reservation, future):
        arriving = make_reservation(future(0), future(2))
        make_reservation(future(0), future(2), status="pending")
        leaving = make_reservation(future(-3), future(0), status="checked_in")

        arrivals = ReservationService.arrivals(db, hotel["tenant_id"], future(0))
        departures = ReservationService.departures(db, hotel["tenant_id"], future(0))

        assert [r.id for r in arrivals] == [arriving.id]
        assert [r.id for r in departures] == [leaving.id]
