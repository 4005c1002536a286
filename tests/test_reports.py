"""
Tests de reportes: todo sale del libro mayor
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from schemas.caja import ExpenseCreate, IncomeCreate, PaymentCreate, RefundCreate
from services.exceptions import InvalidDateRange, NotFound
from services.ledger_service import ExpenseService, IncomeService, PaymentService
from services.report_service import ReportService
from utils.timezone import get_hotel_today


@pytest.fixture()
def movements(db, hotel, make_reservation, future):
    """Dos pagos (cash 200 / card 100), un reembolso de 50, un ingreso food 30 y un egreso 40"""
    tid = hotel["tenant_id"]
    reservation = make_reservation(future(0), future(3))
    cash = PaymentService.record(db, tid, PaymentCreate(reservation_id=reservation.id, amount=Decimal("200.00"), method="cash"))
    PaymentService.record(db, tid, PaymentCreate(reservation_id=reservation.id, amount=Decimal("100.00"), method="card"))
    PaymentService.refund(db, tid, cash.id, RefundCreate(amount=Decimal("50.00")))
    IncomeService.create(db, tid, IncomeCreate(amount=Decimal("30.00"), description="Bar", source="food", method="cash"))
    category = ExpenseService.create_category(db, tid, "Mantenimiento")
    ExpenseService.create(
        db, tid, ExpenseCreate(category_id=category.id, amount=Decimal("40.00"), description="Foco", method="cash")
    )
    return reservation


class TestReports:

    def test_daily_cash_up_groups_by_method(self, db, hotel, movements):
        report = ReportService.daily_cash_up(db, hotel["tenant_id"], get_hotel_today())
        assert report.by_method == {"card": Decimal("100.00"), "cash": Decimal("230.00")}
        assert report.total == Decimal("330.00")
        assert report.count == 3

    def test_cash_up_of_another_day_is_empty(self, db, hotel, movements):
        report = ReportService.daily_cash_up(db, hotel["tenant_id"], get_hotel_today() - timedelta(days=1))
        assert report.total == Decimal("0.00")
        assert report.count == 0

    def test_revenue_by_category(self, db, hotel, movements):
        today = get_hotel_today()
        report = ReportService.revenue(db, hotel["tenant_id"], today, today)
        assert report.by_category == {"INCOME_FOOD": Decimal("30.00"), "PAYMENT": Decimal("300.00")}
        assert report.total == Decimal("330.00")
        assert [d.date for d in report.daily] == [today]

    def test_expenses_by_category_name(self, db, hotel, movements):
        today = get_hotel_today()
        report = ReportService.expenses(db, hotel["tenant_id"], today, today)
        assert report.by_category == {"Mantenimiento": Decimal("40.00")}
        assert report.total == Decimal("40.00")

    def test_profit(self, db, hotel, movements):
        today = get_hotel_today()
        report = ReportService.profit(db, hotel["tenant_id"], today - timedelta(days=7), today)
        assert report.revenue == Decimal("330.00")
        assert report.refunds == Decimal("50.00")
        assert report.expenses == Decimal("40.00")
        assert report.profit == Decimal("240.00")

    def test_reservation_balance(self, db, hotel, movements):
        balance = ReportService.reservation_balance(db, hotel["tenant_id"], movements.id)
        assert balance.credited == Decimal("300.00")
        assert balance.refunded == Decimal("50.00")
        assert balance.balance == Decimal("250.00")
        assert balance.paid_amount == balance.balance

    def test_inverted_range(self, db, hotel):
        today = get_hotel_today()
        with pytest.raises(InvalidDateRange):
            ReportService.revenue(db, hotel["tenant_id"], today, today - timedelta(days=1))

    def test_unknown_reservation_balance(self, db, hotel):
        with pytest.raises(NotFound):
            ReportService.reservation_balance(db, hotel["tenant_id"], 9999)
