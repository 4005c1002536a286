"""
Libro mayor (append-only) y registros de negocio de caja: ingresos y egresos.

Un LedgerEntry nunca se modifica ni se borra. Las correcciones se hacen
agregando un asiento compensatorio (ej: el reembolso es un DEBIT nuevo).
"""
import enum

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
    CheckConstraint,
    event,
)
from sqlalchemy.orm import relationship, Session

from database.conexion import Base
from services.exceptions import LedgerImmutableError
from utils.timezone import utcnow


# ============================================================================
# ENUMS
# ============================================================================

class EntryType(str, enum.Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class LedgerCategory(str, enum.Enum):
    PAYMENT = "PAYMENT"
    REFUND = "REFUND"
    INCOME_ROOM = "INCOME_ROOM"
    INCOME_FOOD = "INCOME_FOOD"
    INCOME_SERVICE = "INCOME_SERVICE"
    INCOME_OTHER = "INCOME_OTHER"
    EXPENSE = "EXPENSE"


class ReferenceType(str, enum.Enum):
    PAYMENT = "PAYMENT"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class IncomeSource(str, enum.Enum):
    ROOM = "room"
    FOOD = "food"
    SERVICE = "service"
    OTHER = "other"


INCOME_CATEGORY_BY_SOURCE = {
    IncomeSource.ROOM.value: LedgerCategory.INCOME_ROOM,
    IncomeSource.FOOD.value: LedgerCategory.INCOME_FOOD,
    IncomeSource.SERVICE.value: LedgerCategory.INCOME_SERVICE,
    IncomeSource.OTHER.value: LedgerCategory.INCOME_OTHER,
}


# ============================================================================
# LEDGER
# ============================================================================

class LedgerEntry(Base):
    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint("amount > 0", name="check_ledger_amount_positive"),
        Index("idx_ledger_tenant_created", "tenant_id", "created_at"),
        Index("idx_ledger_reference", "reference_type", "reference_id"),
        Index("idx_ledger_payment", "payment_id"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    type = Column(String(10), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    category = Column(String(20), nullable=False)
    reference_type = Column(String(20), nullable=False)
    reference_id = Column(Integer, nullable=False)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)
    description = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    payment = relationship("Payment")


@event.listens_for(LedgerEntry, "before_update")
def _reject_ledger_update(mapper, connection, target):
    raise LedgerImmutableError("update")


@event.listens_for(LedgerEntry, "before_delete")
def _reject_ledger_delete(mapper, connection, target):
    raise LedgerImmutableError("delete")


@event.listens_for(Session, "do_orm_execute")
def _reject_ledger_bulk_write(orm_execute_state):
    # UPDATE/DELETE masivos no pasan por los eventos del mapper
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    for mapper in orm_execute_state.all_mappers:
        if mapper.class_ is LedgerEntry:
            raise LedgerImmutableError("update" if orm_execute_state.is_update else "delete")


# ============================================================================
# INGRESOS / EGRESOS
# ============================================================================

class Income(Base):
    """Ingreso manual (restaurant, servicios, etc). Los pagos de reservas van por Payment."""
    __tablename__ = "incomes"
    __table_args__ = (
        CheckConstraint("amount > 0", name="check_income_amount_positive"),
        Index("idx_income_tenant_date", "tenant_id", "date"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=False)
    source = Column(String(20), nullable=False, default=IncomeSource.OTHER.value)
    method = Column(String(30), nullable=False)
    date = Column(Date, nullable=False)
    received_by = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class ExpenseCategory(Base):
    __tablename__ = "expense_categories"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_expense_category_tenant_name"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    name = Column(String(80), nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    expenses = relationship("Expense", back_populates="category")


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        CheckConstraint("amount > 0", name="check_expense_amount_positive"),
        Index("idx_expense_tenant_date", "tenant_id", "date"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    category_id = Column(Integer, ForeignKey("expense_categories.id", ondelete="RESTRICT"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=False)
    method = Column(String(30), nullable=False)
    date = Column(Date, nullable=False)
    vendor = Column(String(150), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    category = relationship("ExpenseCategory", back_populates="expenses")

    @property
    def category_name(self):
        return self.category.name if self.category else None
