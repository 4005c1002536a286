"""
Reservas concurrentes sobre una base SQLite en archivo: cada hilo con su
propia conexión, como dos requests reales.
"""
import threading
import time
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.orm import sessionmaker

from database.conexion import Base, build_engine
from models.core import Reservation, Room, RoomType, Tenant
from schemas.bookings import BookingCreate
from services.availability_service import AvailabilityService
from services.booking_service import BookingService
from services.exceptions import InsufficientAvailability


@pytest.fixture()
def file_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'concurrencia.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def last_suite(file_engine):
    """Un tenant con una sola suite"""
    Session = sessionmaker(bind=file_engine, autoflush=False)
    session = Session()
    tenant = Tenant(name="Hotel Concurrente", slug="hotel-concurrente")
    session.add(tenant)
    session.flush()
    suite = RoomType(tenant_id=tenant.id, name="Suite", max_occupancy=2, base_price=Decimal("250.00"))
    session.add(suite)
    session.flush()
    session.add(Room(tenant_id=tenant.id, room_type_id=suite.id, number="301", floor=3))
    session.commit()
    ids = (tenant.id, suite.id)
    session.close()
    return Session, ids


def _request(room_type_id, email):
    check_in = date.today() + timedelta(days=30)
    return BookingCreate(
        check_in=check_in,
        check_out=check_in + timedelta(days=2),
        guest={"first_name": "Huésped", "last_name": "Concurrente", "email": email},
        rooms=[{"room_type_id": room_type_id, "quantity": 1}],
    )


class TestConcurrentBookings:

    def test_two_requests_race_for_the_last_room(self, last_suite):
        """Las lecturas de disponibilidad se demoran: sin lock ambas verían 1 libre"""
        Session, (tenant_id, suite_id) = last_suite
        original = AvailabilityService.available_units
        start = threading.Barrier(2)
        results = {}

        def slow_available_units(*args, **kwargs):
            available = original(*args, **kwargs)
            time.sleep(0.3)
            return available

        def book(name):
            session = Session()
            try:
                start.wait(timeout=5)
                BookingService.create_booking(session, tenant_id, _request(suite_id, f"{name}@example.com"))
                results[name] = "ok"
            except Exception as e:
                results[name] = e
            finally:
                session.close()

        with patch.object(AvailabilityService, "available_units", side_effect=slow_available_units):
            threads = [threading.Thread(target=book, args=(name,)) for name in ("uno", "dos")]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=30)

        outcomes = list(results.values())
        assert outcomes.count("ok") == 1, outcomes
        assert sum(isinstance(o, InsufficientAvailability) for o in outcomes) == 1, outcomes

        session = Session()
        try:
            assert session.query(Reservation).filter_by(tenant_id=tenant_id).count() == 1
        finally:
            session.close()
