from dataclasses import dataclass
from typing import Union

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Boolean,
    ForeignKey,
    Text,
    UniqueConstraint,
    Index,
    Numeric,
    JSON,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
import enum

from database.conexion import Base
from utils.timezone import utcnow

# JSONB en PostgreSQL, JSON genérico en SQLite (tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class RoomStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    DIRTY = "dirty"
    OUT_OF_SERVICE = "out_of_service"


class ReservationStatus(str, enum.Enum):
    INQUIRY = "inquiry"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Estados que ocupan inventario
BLOCKING_STATUSES = (
    ReservationStatus.INQUIRY.value,
    ReservationStatus.PENDING.value,
    ReservationStatus.CONFIRMED.value,
    ReservationStatus.CHECKED_IN.value,
)


class ReservationSource(str, enum.Enum):
    DIRECT = "direct"
    BOOKING_ENGINE = "booking_engine"
    WALK_IN = "walk_in"
    PHONE = "phone"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    ONLINE = "online"
    PAY_AT_PROPERTY = "pay_at_property"
    OTHER = "other"


class PaymentStatus(str, enum.Enum):
    INITIATED = "initiated"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class HousekeepingStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class HousekeepingPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


# ============================================================================
# TENANT
# ============================================================================

class Tenant(Base):
    """Propiedad (hotel) dueña de todo el inventario. Solo se usa para resolver el slug público."""
    __tablename__ = "tenants"
    __table_args__ = (
        UniqueConstraint("slug", name="uq_tenant_slug"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(150), nullable=False)
    slug = Column(String(80), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    room_types = relationship("RoomType", back_populates="tenant")


# ============================================================================
# INVENTARIO Y TARIFAS
# ============================================================================

class RoomType(Base):
    __tablename__ = "room_types"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_room_type_tenant_name"),
        CheckConstraint("max_occupancy >= 1", name="check_room_type_max_occupancy"),
        CheckConstraint("base_price >= 0", name="check_room_type_base_price"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(80), nullable=False)
    description = Column(Text, nullable=True)
    max_occupancy = Column(Integer, nullable=False, default=2)
    base_price = Column(Numeric(12, 2), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, default=True, nullable=False)

    tenant = relationship("Tenant", back_populates="room_types")
    rooms = relationship("Room", back_populates="room_type")
    rate_plans = relationship("RatePlan", back_populates="room_type")
    seasonal_rates = relationship("SeasonalRate", back_populates="room_type")


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_room_tenant_number"),
        Index("idx_room_type_status", "room_type_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    number = Column(String(10), nullable=False)
    floor = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default=RoomStatus.AVAILABLE.value)
    active = Column(Boolean, default=True, nullable=False)

    room_type = relationship("RoomType", back_populates="rooms")
    lines = relationship("ReservationRoomLine", back_populates="room")
    stays = relationship("Stay", back_populates="room")
    housekeeping_tasks = relationship("HousekeepingTask", back_populates="room")


class RatePlan(Base):
    """Precio por noche que reemplaza al precio base cuando cubre toda la estadía"""
    __tablename__ = "rate_plans"
    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="check_rate_plan_dates"),
        CheckConstraint("min_nights >= 1", name="check_rate_plan_min_nights"),
        Index("idx_rate_plan_type_dates", "room_type_id", "start_date", "end_date"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    name = Column(String(100), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    min_nights = Column(Integer, nullable=False, default=1)
    active = Column(Boolean, default=True, nullable=False)

    room_type = relationship("RoomType", back_populates="rate_plans")


class SeasonalRate(Base):
    """Multiplicador de temporada sobre el precio resuelto (1.5 = +50%)"""
    __tablename__ = "seasonal_rates"
    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="check_seasonal_rate_dates"),
        CheckConstraint("multiplier > 0", name="check_seasonal_rate_multiplier"),
        Index("idx_seasonal_rate_type_dates", "room_type_id", "start_date", "end_date"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    name = Column(String(100), nullable=False)
    multiplier = Column(Numeric(5, 3), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    room_type = relationship("RoomType", back_populates="seasonal_rates")


# ============================================================================
# HUÉSPEDES Y RESERVAS
# ============================================================================

class Guest(Base):
    __tablename__ = "guests"
    __table_args__ = (
        CheckConstraint("email IS NOT NULL OR phone IS NOT NULL", name="check_guest_contact"),
        Index("idx_guest_tenant_email", "tenant_id", "email"),
        Index("idx_guest_tenant_phone", "tenant_id", "phone"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    first_name = Column(String(60), nullable=False)
    last_name = Column(String(60), nullable=False)
    email = Column(String(100), nullable=True)
    phone = Column(String(30), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    reservations = relationship("Reservation", back_populates="guest")


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        UniqueConstraint("booking_reference", name="uq_reservation_booking_reference"),
        CheckConstraint("check_out > check_in", name="check_reservation_dates"),
        CheckConstraint(
            "paid_amount >= 0 AND paid_amount <= total_amount",
            name="check_reservation_paid_amount",
        ),
        Index("idx_reservation_tenant_dates", "tenant_id", "check_in", "check_out"),
        Index("idx_reservation_status", "status"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False)
    booking_reference = Column(String(20), nullable=False)

    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=ReservationStatus.PENDING.value)

    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)

    number_of_guests = Column(Integer, nullable=False, default=1)
    source = Column(String(30), nullable=False, default=ReservationSource.DIRECT.value)
    special_requests = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    checked_out_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)

    guest = relationship("Guest", back_populates="reservations")
    lines = relationship(
        "ReservationRoomLine",
        back_populates="reservation",
        cascade="all, delete-orphan",
        order_by="ReservationRoomLine.id",
    )
    stays = relationship("Stay", back_populates="reservation", order_by="Stay.id")
    payments = relationship("Payment", back_populates="reservation", order_by="Payment.id")

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    @property
    def balance(self):
        return self.total_amount - self.paid_amount


# ----------------------------------------------------------------------------
# Asignación de habitación: la línea se reserva por tipo y recibe la
# habitación concreta recién en el check-in.
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class Unassigned:
    pass


@dataclass(frozen=True)
class Assigned:
    room_id: int


RoomAssignment = Union[Unassigned, Assigned]

UNASSIGNED = Unassigned()


class ReservationRoomLine(Base):
    __tablename__ = "reservation_room_lines"
    __table_args__ = (
        Index("idx_line_room_type", "room_type_id"),
        Index("idx_line_room", "room_id"),
    )

    id = Column(Integer, primary_key=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)
    price_per_night = Column(Numeric(12, 2), nullable=False)

    reservation = relationship("Reservation", back_populates="lines")
    room_type = relationship("RoomType")
    room = relationship("Room", back_populates="lines")

    @property
    def assignment(self) -> RoomAssignment:
        if self.room_id is None:
            return UNASSIGNED
        return Assigned(self.room_id)

    def assign(self, room_id: int) -> Assigned:
        self.room_id = room_id
        return Assigned(room_id)


class Stay(Base):
    """Ocupación física de una habitación durante una reserva"""
    __tablename__ = "stays"
    __table_args__ = (
        Index("idx_stay_room_open", "room_id", "check_out"),
    )

    id = Column(Integer, primary_key=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    check_in = Column(DateTime(timezone=True), nullable=False)
    check_out = Column(DateTime(timezone=True), nullable=True)

    reservation = relationship("Reservation", back_populates="stays")
    room = relationship("Room", back_populates="stays")

    @property
    def is_open(self) -> bool:
        return self.check_out is None


# ============================================================================
# PAGOS
# ============================================================================

class Payment(Base):
    """
    Registro de negocio de un pago. Los reembolsos son filas nuevas con monto
    negativo y refund_of_id apuntando al pago original.
    """
    __tablename__ = "payments"
    __table_args__ = (
        Index("idx_payment_reservation", "reservation_id"),
        Index("idx_payment_tenant_status", "tenant_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.INITIATED.value)
    description = Column(Text, nullable=True)
    refund_of_id = Column(Integer, ForeignKey("payments.id"), nullable=True)
    created_by = Column(Integer, nullable=True)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    reservation = relationship("Reservation", back_populates="payments")
    refund_of = relationship("Payment", remote_side=[id], backref="refunds")

    @property
    def is_refund(self) -> bool:
        return self.refund_of_id is not None


# ============================================================================
# HOUSEKEEPING
# ============================================================================

class HousekeepingTask(Base):
    __tablename__ = "housekeeping_tasks"
    __table_args__ = (
        Index("idx_hk_task_tenant_status", "tenant_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    status = Column(String(20), nullable=False, default=HousekeepingStatus.PENDING.value)
    priority = Column(String(10), nullable=False, default=HousekeepingPriority.NORMAL.value)
    assigned_to = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    room = relationship("Room", back_populates="housekeeping_tasks")


# ============================================================================
# AUDITORÍA
# ============================================================================

class AuditEvent(Base):
    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_entity", "tenant_id", "entity_type", "entity_id"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    actor_id = Column(Integer, nullable=True)
    action = Column(String(40), nullable=False)
    entity_type = Column(String(40), nullable=False)
    entity_id = Column(Integer, nullable=False)
    before = Column(JSONType, nullable=True)
    after = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
