from typing import Dict, List
import datetime as dt
from decimal import Decimal
from pydantic import BaseModel, Field


class DailyAmount(BaseModel):
    date: dt.date
    amount: Decimal


class CashUpReport(BaseModel):
    date: dt.date
    by_method: Dict[str, Decimal] = Field(default_factory=dict)
    total: Decimal
    count: int


class RevenueReport(BaseModel):
    start: dt.date
    end: dt.date
    by_category: Dict[str, Decimal] = Field(default_factory=dict)
    daily: List[DailyAmount] = Field(default_factory=list)
    total: Decimal


class ExpenseReport(BaseModel):
    start: dt.date
    end: dt.date
    by_category: Dict[str, Decimal] = Field(default_factory=dict)
    daily: List[DailyAmount] = Field(default_factory=list)
    total: Decimal


class ProfitReport(BaseModel):
    start: dt.date
    end: dt.date
    revenue: Decimal
    refunds: Decimal
    expenses: Decimal
    profit: Decimal


class ReservationBalance(BaseModel):
    reservation_id: int
    credited: Decimal
    refunded: Decimal
    balance: Decimal
    paid_amount: Decimal
    total_amount: Decimal
