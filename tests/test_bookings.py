"""
Tests del coordinador de reservas del motor público
"""
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from models.core import AuditEvent, Guest, Payment, Reservation
from schemas.bookings import BookingCreate
from services import booking_service
from services.availability_service import AvailabilityService
from services.booking_service import BookingService
from services.exceptions import (
    InsufficientAvailability,
    InvalidStatusTransition,
    NotFound,
    ReferenceGenerationExhausted,
    ValidationError,
)


def _request(check_in, check_out, rooms, payment_method="pay_at_property", **guest):
    guest_data = {"first_name": "Juan", "last_name": "Pérez", "email": "juan@example.com"}
    guest_data.update(guest)
    return BookingCreate(
        check_in=check_in,
        check_out=check_out,
        guest=guest_data,
        rooms=[{"room_type_id": rt, "quantity": q} for rt, q in rooms],
        payment_method=payment_method,
    )


class TestCreateBooking:

    def test_three_rooms_for_five_nights(self, db, hotel, future):
        """Standard x5 a $100: 3 habitaciones x 5 noches = $1500"""
        standard = hotel["standard"]
        request = _request(future(0), future(5), [(standard.id, 3)])

        confirmation = BookingService.create_booking(db, hotel["tenant_id"], request)

        assert confirmation.booking_reference.startswith("LDG-")
        assert len(confirmation.booking_reference) == 10
        assert confirmation.status == "confirmed"
        assert confirmation.nights == 5
        assert confirmation.total_amount == Decimal("1500.00")
        assert confirmation.rooms[0].quantity == 3
        assert confirmation.payment_id is None

        reservation = db.query(Reservation).filter_by(booking_reference=confirmation.booking_reference).one()
        assert len(reservation.lines) == 3
        assert all(line.room_id is None for line in reservation.lines)
        assert reservation.source == "booking_engine"

        remaining = AvailabilityService.available_units(db, hotel["tenant_id"], standard.id, future(0), future(5))
        assert remaining == 2

    def test_shortfall_is_reported(self, db, hotel, future):
        standard = hotel["standard"]
        BookingService.create_booking(db, hotel["tenant_id"], _request(future(0), future(5), [(standard.id, 3)]))

        with pytest.raises(InsufficientAvailability) as exc:
            BookingService.create_booking(
                db, hotel["tenant_id"],
                _request(future(2), future(4), [(standard.id, 3)], email="otra@example.com"),
            )
        assert exc.value.shortfall == 1
        assert exc.value.available == 2
        assert exc.value.requested == 3
        assert db.query(Reservation).count() == 1

    def test_rejection_leaves_nothing_behind(self, db, hotel, future):
        request = _request(future(0), future(2), [(hotel["standard"].id, 1), (hotel["suite"].id, 3)])
        with pytest.raises(InsufficientAvailability):
            BookingService.create_booking(db, hotel["tenant_id"], request)
        assert db.query(Reservation).count() == 0
        assert db.query(Guest).count() == 0

    def test_online_payment_starts_pending_with_intent(self, db, hotel, future):
        request = _request(future(0), future(2), [(hotel["suite"].id, 1)], payment_method="online")
        confirmation = BookingService.create_booking(db, hotel["tenant_id"], request)

        assert confirmation.status == "pending"
        payment = db.query(Payment).filter_by(id=confirmation.payment_id).one()
        assert payment.status == "initiated"
        assert payment.amount == Decimal("500.00")

    def test_check_in_in_the_past_is_rejected(self, db, hotel):
        yesterday = date.today() - timedelta(days=2)
        request = _request(yesterday, yesterday + timedelta(days=3), [(hotel["standard"].id, 1)])
        with pytest.raises(ValidationError):
            BookingService.create_booking(db, hotel["tenant_id"], request)

    def test_unknown_room_type(self, db, hotel, future):
        with pytest.raises(NotFound):
            BookingService.create_booking(db, hotel["tenant_id"], _request(future(0), future(1), [(9999, 1)]))

    def test_repeated_room_type_lines_are_merged(self, db, hotel, future):
        standard = hotel["standard"]
        request = _request(future(0), future(1), [(standard.id, 2), (standard.id, 1)])
        confirmation = BookingService.create_booking(db, hotel["tenant_id"], request)
        assert [r.quantity for r in confirmation.rooms] == [3]

    def test_guest_is_reused_by_email(self, db, hotel, future):
        standard = hotel["standard"]
        BookingService.create_booking(db, hotel["tenant_id"], _request(future(0), future(1), [(standard.id, 1)]))
        BookingService.create_booking(
            db, hotel["tenant_id"],
            _request(future(3), future(4), [(standard.id, 1)], email="JUAN@example.com", phone="1155551234"),
        )
        guests = db.query(Guest).all()
        assert len(guests) == 1
        assert guests[0].phone == "1155551234"

    def test_creation_is_audited(self, db, hotel, future):
        confirmation = BookingService.create_booking(
            db, hotel["tenant_id"], _request(future(0), future(1), [(hotel["standard"].id, 1)])
        )
        reservation = db.query(Reservation).filter_by(booking_reference=confirmation.booking_reference).one()
        event = db.query(AuditEvent).filter_by(entity_type="reservation", entity_id=reservation.id).one()
        assert event.action == "create"
        assert event.after["status"] == "confirmed"

    def test_sequential_requests_for_last_room(self, db, hotel, future):
        """Dos pedidos por la última suite: solo uno se confirma"""
        suite = hotel["suite"]
        BookingService.create_booking(db, hotel["tenant_id"], _request(future(0), future(3), [(suite.id, 1)]))

        BookingService.create_booking(
            db, hotel["tenant_id"], _request(future(1), future(2), [(suite.id, 1)], email="b@example.com")
        )
        with pytest.raises(InsufficientAvailability):
            BookingService.create_booking(
                db, hotel["tenant_id"], _request(future(1), future(2), [(suite.id, 1)], email="c@example.com")
            )
        assert AvailabilityService.booked_units(db, hotel["tenant_id"], suite.id, future(0), future(3)) == 2


class TestReferences:

    def test_references_are_unique(self, db, hotel, future):
        refs = set()
        for i in range(5):
            confirmation = BookingService.create_booking(
                db, hotel["tenant_id"],
                _request(future(i * 2), future(i * 2 + 1), [(hotel["standard"].id, 1)]),
            )
            refs.add(confirmation.booking_reference)
        assert len(refs) == 5

    def test_collision_is_retried(self, db, hotel, make_reservation, future):
        existing = make_reservation(future(0), future(1))
        with patch.object(booking_service, "random_reference", side_effect=[existing.booking_reference, "LDG-ZZZZZZ"]):
            reference = BookingService.generate_reference(db)
        assert reference == "LDG-ZZZZZZ"

    def test_exhausted_after_all_attempts(self, db, hotel, make_reservation, future):
        existing = make_reservation(future(0), future(1))
        with patch.object(booking_service, "random_reference", return_value=existing.booking_reference):
            with pytest.raises(ReferenceGenerationExhausted) as exc:
                BookingService.create_booking(
                    db, hotel["tenant_id"], _request(future(3), future(4), [(hotel["standard"].id, 1)])
                )
        assert exc.value.attempts == 10
        assert db.query(Reservation).count() == 1

    def test_reference_format(self):
        reference = booking_service.random_reference()
        assert reference.startswith("LDG-")
        assert len(reference) == 10
        assert all(c in booking_service.REFERENCE_ALPHABET for c in reference[4:])


class TestManageBooking:

    def _book(self, db, hotel, future):
        return BookingService.create_booking(
            db, hotel["tenant_id"], _request(future(0), future(2), [(hotel["standard"].id, 1)])
        )

    def test_lookup_ignores_case(self, db, hotel, future):
        confirmation = self._book(db, hotel, future)
        reservation = BookingService.get_by_reference(
            db, hotel["tenant_id"], confirmation.booking_reference.lower(), "PÉREZ"
        )
        assert reservation.booking_reference == confirmation.booking_reference

    def test_lookup_with_wrong_last_name(self, db, hotel, future):
        confirmation = self._book(db, hotel, future)
        with pytest.raises(NotFound) as exc:
            BookingService.get_by_reference(db, hotel["tenant_id"], confirmation.booking_reference, "Gómez")
        assert "check your booking reference" in exc.value.message

    def test_lookup_is_scoped_to_tenant(self, db, hotel, future):
        confirmation = self._book(db, hotel, future)
        with pytest.raises(NotFound):
            BookingService.get_by_reference(db, hotel["tenant_id"] + 1, confirmation.booking_reference, "Pérez")

    def test_cancel_releases_inventory(self, db, hotel, future):
        confirmation = self._book(db, hotel, future)
        result = BookingService.cancel(db, hotel["tenant_id"], confirmation.booking_reference, "pérez", "Cambio de planes")

        assert result.status == "cancelled"
        assert result.cancel_reason == "Cambio de planes"
        assert AvailabilityService.booked_units(
            db, hotel["tenant_id"], hotel["standard"].id, future(0), future(2)
        ) == 0

    def test_cancel_twice_is_rejected(self, db, hotel, future):
        confirmation = self._book(db, hotel, future)
        BookingService.cancel(db, hotel["tenant_id"], confirmation.booking_reference, "Pérez")
        with pytest.raises(InvalidStatusTransition) as exc:
            BookingService.cancel(db, hotel["tenant_id"], confirmation.booking_reference, "Pérez")
        assert 'status "cancelled"' in exc.value.message
        assert exc.value.details == {"from": "cancelled", "to": "cancelled", "allowed": ["pending", "confirmed"]}
