from typing import Optional, List, Literal, Union, Annotated, Any, Dict
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict, TypeAdapter


# ============================================================================
# SNAPSHOTS (payload before/after de cada evento de auditoría)
# ============================================================================

class ReservationSnapshot(BaseModel):
    entity_type: Literal["reservation"] = "reservation"
    status: str
    booking_reference: Optional[str] = None
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    total_amount: Optional[Decimal] = None
    paid_amount: Optional[Decimal] = None
    room_ids: Optional[List[int]] = None
    cancel_reason: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def from_reservation(cls, reservation, **extra) -> "ReservationSnapshot":
        return cls(
            status=reservation.status,
            booking_reference=reservation.booking_reference,
            check_in=reservation.check_in,
            check_out=reservation.check_out,
            total_amount=reservation.total_amount,
            paid_amount=reservation.paid_amount,
            **extra,
        )


class PaymentSnapshot(BaseModel):
    entity_type: Literal["payment"] = "payment"
    status: str
    amount: Decimal
    method: str
    reservation_id: Optional[int] = None
    refund_of_id: Optional[int] = None

    @classmethod
    def from_payment(cls, payment) -> "PaymentSnapshot":
        return cls(
            status=payment.status,
            amount=payment.amount,
            method=payment.method,
            reservation_id=payment.reservation_id,
            refund_of_id=payment.refund_of_id,
        )


class HousekeepingTaskSnapshot(BaseModel):
    entity_type: Literal["housekeeping_task"] = "housekeeping_task"
    status: str
    room_id: int
    room_status: Optional[str] = None

    @classmethod
    def from_task(cls, task, room=None) -> "HousekeepingTaskSnapshot":
        return cls(
            status=task.status,
            room_id=task.room_id,
            room_status=room.status if room is not None else None,
        )


class IncomeSnapshot(BaseModel):
    entity_type: Literal["income"] = "income"
    amount: Decimal
    source: str
    method: str
    description: Optional[str] = None

    @classmethod
    def from_income(cls, income) -> "IncomeSnapshot":
        return cls(
            amount=income.amount,
            source=income.source,
            method=income.method,
            description=income.description,
        )


class ExpenseSnapshot(BaseModel):
    entity_type: Literal["expense"] = "expense"
    amount: Decimal
    category_id: int
    method: str
    description: Optional[str] = None
    vendor: Optional[str] = None

    @classmethod
    def from_expense(cls, expense) -> "ExpenseSnapshot":
        return cls(
            amount=expense.amount,
            category_id=expense.category_id,
            method=expense.method,
            description=expense.description,
            vendor=expense.vendor,
        )


AuditSnapshot = Annotated[
    Union[ReservationSnapshot, PaymentSnapshot, HousekeepingTaskSnapshot, IncomeSnapshot, ExpenseSnapshot],
    Field(discriminator="entity_type"),
]

audit_snapshot_adapter = TypeAdapter(AuditSnapshot)


# ============================================================================
# LECTURA
# ============================================================================

class AuditEventRead(BaseModel):
    id: int
    actor_id: Optional[int] = None
    action: str
    entity_type: str
    entity_id: int
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
