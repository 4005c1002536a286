"""
Reportes de caja

Todos los totales salen del libro mayor (LedgerEntry), nunca de las tablas de
negocio: las tablas de pagos/ingresos/egresos solo se consultan para etiquetar
(método de pago, categoría de egreso).
"""
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from models.core import Payment, Reservation
from models.ledger import EntryType, Expense, ExpenseCategory, Income, LedgerCategory, LedgerEntry, ReferenceType
from schemas.reports import (
    CashUpReport,
    DailyAmount,
    ExpenseReport,
    ProfitReport,
    ReservationBalance,
    RevenueReport,
)
from services.exceptions import InvalidDateRange, NotFound
from services.pricing_service import quantize_money
from utils.timezone import hotel_date_of, hotel_day_bounds_utc

ZERO = Decimal("0.00")


def _entries(
    db: Session,
    tenant_id: int,
    start: date,
    end: date,
    type: Optional[EntryType] = None,
    categories: Optional[Iterable[LedgerCategory]] = None,
) -> List[LedgerEntry]:
    lower, upper = hotel_day_bounds_utc(start, end)
    query = db.query(LedgerEntry).filter(
        LedgerEntry.tenant_id == tenant_id,
        LedgerEntry.created_at >= lower,
        LedgerEntry.created_at < upper,
    )
    if type is not None:
        query = query.filter(LedgerEntry.type == type.value)
    if categories is not None:
        query = query.filter(LedgerEntry.category.in_([c.value for c in categories]))
    return query.order_by(LedgerEntry.created_at, LedgerEntry.id).all()


def _sum(entries: Iterable[LedgerEntry]) -> Decimal:
    return quantize_money(sum((Decimal(e.amount) for e in entries), ZERO))


def _daily(entries: Iterable[LedgerEntry]) -> List[DailyAmount]:
    per_day: Dict[date, Decimal] = OrderedDict()
    for entry in entries:
        day = hotel_date_of(entry.created_at)
        per_day[day] = per_day.get(day, ZERO) + Decimal(entry.amount)
    return [DailyAmount(date=d, amount=quantize_money(v)) for d, v in sorted(per_day.items())]


def _check_range(start: date, end: date) -> None:
    if end < start:
        raise InvalidDateRange("End date must not be before start date")


class ReportService:

    @staticmethod
    def daily_cash_up(db: Session, tenant_id: int, day: date) -> CashUpReport:
        """Cierre de caja: créditos del día agrupados por método de pago"""
        entries = _entries(db, tenant_id, day, day, type=EntryType.CREDIT)

        payment_ids = [e.reference_id for e in entries if e.reference_type == ReferenceType.PAYMENT.value]
        income_ids = [e.reference_id for e in entries if e.reference_type == ReferenceType.INCOME.value]
        methods: Dict[tuple, str] = {}
        if payment_ids:
            for pid, method in db.query(Payment.id, Payment.method).filter(Payment.id.in_(payment_ids)):
                methods[(ReferenceType.PAYMENT.value, pid)] = method
        if income_ids:
            for iid, method in db.query(Income.id, Income.method).filter(Income.id.in_(income_ids)):
                methods[(ReferenceType.INCOME.value, iid)] = method

        by_method: Dict[str, Decimal] = {}
        for entry in entries:
            method = methods.get((entry.reference_type, entry.reference_id), "other")
            by_method[method] = by_method.get(method, ZERO) + Decimal(entry.amount)

        return CashUpReport(
            date=day,
            by_method={k: quantize_money(v) for k, v in sorted(by_method.items())},
            total=_sum(entries),
            count=len(entries),
        )

    @staticmethod
    def revenue(db: Session, tenant_id: int, start: date, end: date) -> RevenueReport:
        _check_range(start, end)
        entries = _entries(db, tenant_id, start, end, type=EntryType.CREDIT)
        by_category: Dict[str, Decimal] = {}
        for entry in entries:
            by_category[entry.category] = by_category.get(entry.category, ZERO) + Decimal(entry.amount)
        return RevenueReport(
            start=start,
            end=end,
            by_category={k: quantize_money(v) for k, v in sorted(by_category.items())},
            daily=_daily(entries),
            total=_sum(entries),
        )

    @staticmethod
    def expenses(db: Session, tenant_id: int, start: date, end: date) -> ExpenseReport:
        _check_range(start, end)
        entries = _entries(db, tenant_id, start, end, type=EntryType.DEBIT, categories=[LedgerCategory.EXPENSE])

        names: Dict[int, str] = {}
        expense_ids = [e.reference_id for e in entries]
        if expense_ids:
            rows = db.query(Expense.id, ExpenseCategory.name).join(
                ExpenseCategory, Expense.category_id == ExpenseCategory.id
            ).filter(Expense.id.in_(expense_ids))
            names = {expense_id: name for expense_id, name in rows}

        by_category: Dict[str, Decimal] = {}
        for entry in entries:
            name = names.get(entry.reference_id, "uncategorized")
            by_category[name] = by_category.get(name, ZERO) + Decimal(entry.amount)

        return ExpenseReport(
            start=start,
            end=end,
            by_category={k: quantize_money(v) for k, v in sorted(by_category.items())},
            daily=_daily(entries),
            total=_sum(entries),
        )

    @staticmethod
    def profit(db: Session, tenant_id: int, start: date, end: date) -> ProfitReport:
        _check_range(start, end)
        revenue = _sum(_entries(db, tenant_id, start, end, type=EntryType.CREDIT))
        refunds = _sum(_entries(db, tenant_id, start, end, type=EntryType.DEBIT, categories=[LedgerCategory.REFUND]))
        expenses = _sum(_entries(db, tenant_id, start, end, type=EntryType.DEBIT, categories=[LedgerCategory.EXPENSE]))
        return ProfitReport(
            start=start,
            end=end,
            revenue=revenue,
            refunds=refunds,
            expenses=expenses,
            profit=quantize_money(revenue - refunds - expenses),
        )

    @staticmethod
    def reservation_balance(db: Session, tenant_id: int, reservation_id: int) -> ReservationBalance:
        """Σ CREDIT(PAYMENT) − Σ DEBIT(REFUND) sobre los pagos de la reserva"""
        reservation = db.query(Reservation).filter(
            Reservation.id == reservation_id,
            Reservation.tenant_id == tenant_id,
        ).first()
        if not reservation:
            raise NotFound("Reservation", reservation_id)

        payment_ids = [pid for (pid,) in db.query(Payment.id).filter(Payment.reservation_id == reservation_id)]
        entries = []
        if payment_ids:
            entries = db.query(LedgerEntry).filter(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.payment_id.in_(payment_ids),
            ).all()

        credited = _sum(
            e for e in entries
            if e.type == EntryType.CREDIT.value and e.category == LedgerCategory.PAYMENT.value
        )
        refunded = _sum(
            e for e in entries
            if e.type == EntryType.DEBIT.value and e.category == LedgerCategory.REFUND.value
        )
        return ReservationBalance(
            reservation_id=reservation.id,
            credited=credited,
            refunded=refunded,
            balance=quantize_money(credited - refunded),
            paid_amount=reservation.paid_amount,
            total_amount=reservation.total_amount,
        )
