"""
Reportes de caja
Cierre diario, ingresos, egresos, resultado y saldo por reserva; todo calculado
desde el libro mayor.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database.conexion import get_db
from schemas.reports import CashUpReport, ExpenseReport, ProfitReport, ReservationBalance, RevenueReport
from services.report_service import ReportService
from utils.dependencies import AdminContext, get_admin_context
from utils.timezone import get_hotel_today

router = APIRouter(prefix="/api/admin/reports", tags=["Reportes"])


@router.get("/cash-up", response_model=CashUpReport)
def cierre_de_caja(
    day: Optional[date] = Query(None, description="Por defecto, hoy en hora del hotel"),
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return ReportService.daily_cash_up(db, ctx.tenant_id, day or get_hotel_today())


@router.get("/revenue", response_model=RevenueReport)
def reporte_ingresos(
    start: date,
    end: date,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return ReportService.revenue(db, ctx.tenant_id, start, end)


@router.get("/expenses", response_model=ExpenseReport)
def reporte_egresos(
    start: date,
    end: date,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return ReportService.expenses(db, ctx.tenant_id, start, end)


@router.get("/profit", response_model=ProfitReport)
def reporte_resultado(
    start: date,
    end: date,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    """Ingresos - reembolsos - egresos del período"""
    return ReportService.profit(db, ctx.tenant_id, start, end)


@router.get("/reservations/{reservation_id}/balance", response_model=ReservationBalance)
def saldo_de_reserva(
    reservation_id: int,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return ReportService.reservation_balance(db, ctx.tenant_id, reservation_id)
