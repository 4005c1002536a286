"""
Schemas Pydantic para caja - Pagos, reembolsos, ingresos, egresos y ledger
"""
from typing import Optional, List
import datetime as dt
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict
from enum import Enum


# ========== ENUMS ==========

class PaymentMethodEnum(str, Enum):
    """Métodos de pago aceptados en recepción"""
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    ONLINE = "online"
    OTHER = "other"


class IncomeSourceEnum(str, Enum):
    ROOM = "room"
    FOOD = "food"
    SERVICE = "service"
    OTHER = "other"


# ========== PAGOS ==========

class PaymentCreate(BaseModel):
    reservation_id: Optional[int] = Field(None, gt=0)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    method: PaymentMethodEnum
    description: Optional[str] = Field(None, max_length=500)


class RefundCreate(BaseModel):
    """Sin monto = reembolso del saldo restante del pago"""
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    reason: Optional[str] = Field(None, max_length=500)


class PaymentResponse(BaseModel):
    id: int
    reservation_id: Optional[int] = None
    amount: Decimal
    method: str
    status: str
    description: Optional[str] = None
    refund_of_id: Optional[int] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentPage(BaseModel):
    data: List[PaymentResponse]
    total: int
    skip: int
    take: int


# ========== LEDGER ==========

class LedgerEntryResponse(BaseModel):
    id: int
    type: str
    amount: Decimal
    category: str
    reference_type: str
    reference_id: int
    payment_id: Optional[int] = None
    description: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentDetailResponse(PaymentResponse):
    ledger_entries: List[LedgerEntryResponse] = Field(default_factory=list)


# ========== INGRESOS ==========

class IncomeCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    source: IncomeSourceEnum = IncomeSourceEnum.OTHER
    method: PaymentMethodEnum
    date: Optional[dt.date] = None
    notes: Optional[str] = None


class IncomeResponse(BaseModel):
    id: int
    amount: Decimal
    description: str
    source: str
    method: str
    date: dt.date
    received_by: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ========== EGRESOS ==========

class ExpenseCategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=80)


class ExpenseCategoryResponse(BaseModel):
    id: int
    name: str
    active: bool

    model_config = ConfigDict(from_attributes=True)


class ExpenseCreate(BaseModel):
    category_id: int = Field(..., gt=0)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    method: PaymentMethodEnum
    date: Optional[dt.date] = None
    vendor: Optional[str] = Field(None, max_length=150)
    notes: Optional[str] = None


class ExpenseResponse(BaseModel):
    id: int
    category_id: int
    category_name: Optional[str] = None
    amount: Decimal
    description: str
    method: str
    date: dt.date
    vendor: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
