"""
Fixtures compartidas: base SQLite en memoria, un hotel de prueba con dos tipos
de habitación y un cliente HTTP sobre la app real.
"""
import os
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

# La configuración se lee al importar: primero el entorno de tests
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("LOG_FILE", str(Path(__file__).parent / "test_logs.txt"))

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from fastapi.testclient import TestClient

import models  # noqa: F401
from database.conexion import Base, SessionLocal, engine, get_db
from main import app
from models.core import Guest, Reservation, ReservationRoomLine, Room, RoomType, Tenant
from utils.auth import create_access_token


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def hotel(db):
    """Tenant con Standard x5 ($100) y Suite x2 ($250)"""
    tenant = Tenant(name="Hotel Test", slug="hotel-test")
    db.add(tenant)
    db.flush()

    standard = RoomType(tenant_id=tenant.id, name="Standard", max_occupancy=2, base_price=Decimal("100.00"), sort_order=1)
    suite = RoomType(tenant_id=tenant.id, name="Suite", max_occupancy=4, base_price=Decimal("250.00"), sort_order=2)
    db.add_all([standard, suite])
    db.flush()

    rooms = [Room(tenant_id=tenant.id, room_type_id=standard.id, number=f"10{i}", floor=1) for i in range(1, 6)]
    rooms += [Room(tenant_id=tenant.id, room_type_id=suite.id, number=f"20{i}", floor=2) for i in range(1, 3)]
    db.add_all(rooms)
    db.commit()

    return {
        "tenant": tenant,
        "tenant_id": tenant.id,
        "standard": standard,
        "suite": suite,
        "standard_rooms": [r for r in rooms if r.room_type_id == standard.id],
        "suite_rooms": [r for r in rooms if r.room_type_id == suite.id],
    }


@pytest.fixture()
def guest(db, hotel):
    g = Guest(tenant_id=hotel["tenant_id"], first_name="Ana", last_name="García", email="ana@example.com")
    db.add(g)
    db.commit()
    return g


@pytest.fixture()
def make_reservation(db, hotel, guest):
    """Inserta una reserva directamente (sin pasar por los services)"""
    counter = {"n": 0}

    def _make(check_in, check_out, room_type=None, quantity=1, status="confirmed", room_ids=None,
              total=None, paid="0.00"):
        counter["n"] += 1
        room_type = room_type or hotel["standard"]
        room_ids = list(room_ids or [])
        nights = (check_out - check_in).days
        reservation = Reservation(
            tenant_id=hotel["tenant_id"],
            guest_id=guest.id,
            booking_reference=f"LDG-T{counter['n']:05d}",
            check_in=check_in,
            check_out=check_out,
            status=status,
            total_amount=Decimal(total) if total is not None else Decimal(room_type.base_price) * nights * quantity,
            paid_amount=Decimal(paid),
            number_of_guests=quantity,
        )
        for i in range(quantity):
            reservation.lines.append(ReservationRoomLine(
                room_type_id=room_type.id,
                room_id=room_ids[i] if i < len(room_ids) else None,
                price_per_night=room_type.base_price,
            ))
        db.add(reservation)
        db.commit()
        return reservation

    return _make


@pytest.fixture()
def future():
    """Fechas relativas a hoy para que 'check-in >= hoy' no dependa del calendario"""
    base = date.today() + timedelta(days=30)

    def _at(offset: int) -> date:
        return base + timedelta(days=offset)

    return _at


@pytest.fixture()
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers(hotel):
    token = create_access_token({"user_id": 7, "tenant_id": hotel["tenant_id"], "rol": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def public_headers(hotel):
    return {"X-Tenant-Slug": "hotel-test"}
