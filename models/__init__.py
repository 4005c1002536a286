"""
Archivo de inicialización del paquete models.
Expone todas las clases para que SQLAlchemy (Base.metadata) las detecte
al importar 'models'.
"""

# 1. Inventario, reservas, pagos, housekeeping y auditoría
from .core import (
    Tenant,
    RoomType,
    Room,
    RatePlan,
    SeasonalRate,
    Guest,
    Reservation,
    ReservationRoomLine,
    Stay,
    Payment,
    HousekeepingTask,
    AuditEvent,
    RoomStatus,
    ReservationStatus,
    ReservationSource,
    PaymentMethod,
    PaymentStatus,
    HousekeepingStatus,
    HousekeepingPriority,
    BLOCKING_STATUSES,
    Assigned,
    Unassigned,
    UNASSIGNED,
)

# 2. Libro mayor y caja
from .ledger import (
    LedgerEntry,
    Income,
    ExpenseCategory,
    Expense,
    EntryType,
    LedgerCategory,
    ReferenceType,
    IncomeSource,
)

__all__ = [
    "Tenant", "RoomType", "Room", "RatePlan", "SeasonalRate",
    "Guest", "Reservation", "ReservationRoomLine", "Stay", "Payment",
    "HousekeepingTask", "AuditEvent",
    "RoomStatus", "ReservationStatus", "ReservationSource", "PaymentMethod",
    "PaymentStatus", "HousekeepingStatus", "HousekeepingPriority",
    "BLOCKING_STATUSES", "Assigned", "Unassigned", "UNASSIGNED",
    "LedgerEntry", "Income", "ExpenseCategory", "Expense",
    "EntryType", "LedgerCategory", "ReferenceType", "IncomeSource",
]
