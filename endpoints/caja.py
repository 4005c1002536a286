"""
Endpoints de Caja - Pagos, reembolsos, ingresos y egresos sobre el libro mayor
"""
import csv
from datetime import date, timedelta
from io import StringIO
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.conexion import get_db
from models.core import PaymentStatus
from schemas.caja import (
    ExpenseCategoryCreate,
    ExpenseCategoryResponse,
    ExpenseCreate,
    ExpenseResponse,
    IncomeCreate,
    IncomeResponse,
    IncomeSourceEnum,
    LedgerEntryResponse,
    PaymentCreate,
    PaymentDetailResponse,
    PaymentMethodEnum,
    PaymentPage,
    PaymentResponse,
    RefundCreate,
)
from services.exceptions import LodgingError
from services.ledger_service import ExpenseService, IncomeService, Ledger, PaymentService
from utils.dependencies import AdminContext, get_admin_context
from utils.logging_utils import log_event
from utils.timezone import get_hotel_today

router = APIRouter(prefix="/api/admin", tags=["Caja"])


def _db_error(ctx: AdminContext, accion: str, e: Exception):
    log_event("caja", ctx.user_id, accion, f"tenant_id={ctx.tenant_id} error={e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Error de base de datos",
    )


def _payment_detail(db: Session, ctx: AdminContext, payment) -> PaymentDetailResponse:
    entries = Ledger.entries_for_payment(db, ctx.tenant_id, payment.id)
    detail = PaymentDetailResponse.model_validate(payment)
    detail.ledger_entries = [LedgerEntryResponse.model_validate(e) for e in entries]
    return detail


# ============================================================================
# PAGOS
# ============================================================================

@router.post("/payments", response_model=PaymentDetailResponse, status_code=status.HTTP_201_CREATED)
def registrar_pago(
    payload: PaymentCreate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    """
    Registra un pago y su asiento CREDIT en la misma transacción.
    Si la reserva estaba pendiente queda confirmada.
    """
    try:
        payment = PaymentService.record(db, ctx.tenant_id, payload, ctx.user_id)
        return _payment_detail(db, ctx, payment)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error al registrar pago", e)


@router.get("/payments", response_model=PaymentPage)
def listar_pagos(
    status_filter: Optional[str] = Query(None, alias="status"),
    method: Optional[PaymentMethodEnum] = None,
    reservation_id: Optional[int] = Query(None, gt=0),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=200),
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    allowed = [s.value for s in PaymentStatus]
    if status_filter and status_filter not in allowed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Estado inválido. Valores permitidos: {', '.join(allowed)}",
        )
    items, total = PaymentService.list(
        db, ctx.tenant_id,
        status=status_filter,
        method=method.value if method else None,
        reservation_id=reservation_id,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        take=take,
    )
    return PaymentPage(
        data=[PaymentResponse.model_validate(p) for p in items],
        total=total,
        skip=skip,
        take=take,
    )


@router.get("/payments/reservation/{reservation_id}", response_model=List[PaymentResponse])
def pagos_de_reserva(
    reservation_id: int,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return PaymentService.by_reservation(db, ctx.tenant_id, reservation_id)


@router.get("/payments/{payment_id}", response_model=PaymentDetailResponse)
def obtener_pago(
    payment_id: int,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    """Pago con sus asientos del libro mayor"""
    return _payment_detail(db, ctx, PaymentService.get(db, ctx.tenant_id, payment_id))


@router.post("/payments/{payment_id}/confirm", response_model=PaymentDetailResponse)
def confirmar_pago(
    payment_id: int,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    """Confirma un intento de pago online (initiated -> paid)"""
    try:
        payment = PaymentService.confirm_intent(db, ctx.tenant_id, payment_id, ctx.user_id)
        return _payment_detail(db, ctx, payment)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error al confirmar pago", e)


@router.post("/payments/{payment_id}/refund", response_model=PaymentDetailResponse, status_code=status.HTTP_201_CREATED)
def reembolsar_pago(
    payment_id: int,
    payload: RefundCreate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    """
    Reembolso total (sin monto) o parcial. Genera un pago de reembolso enlazado
    al original y un asiento DEBIT/REFUND.
    """
    try:
        refund = PaymentService.refund(db, ctx.tenant_id, payment_id, payload, ctx.user_id)
        return _payment_detail(db, ctx, refund)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error al reembolsar pago", e)


# ============================================================================
# INGRESOS
# ============================================================================

@router.post("/income", response_model=IncomeResponse, status_code=status.HTTP_201_CREATED)
def registrar_ingreso(
    payload: IncomeCreate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    try:
        return IncomeService.create(db, ctx.tenant_id, payload, ctx.user_id)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error al registrar ingreso", e)


@router.get("/income", response_model=List[IncomeResponse])
def listar_ingresos(
    start: Optional[date] = None,
    end: Optional[date] = None,
    source: Optional[IncomeSourceEnum] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=200),
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    items, _ = IncomeService.list(
        db, ctx.tenant_id, start, end, source.value if source else None, skip, take
    )
    return items


# ============================================================================
# EGRESOS
# ============================================================================

@router.get("/expense-categories", response_model=List[ExpenseCategoryResponse])
def listar_categorias(
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    return ExpenseService.list_categories(db, ctx.tenant_id)


@router.post("/expense-categories", response_model=ExpenseCategoryResponse, status_code=status.HTTP_201_CREATED)
def crear_categoria(
    payload: ExpenseCategoryCreate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService.create_category(db, ctx.tenant_id, payload.name, ctx.user_id)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error al crear categoría", e)


@router.post("/expenses", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
def registrar_egreso(
    payload: ExpenseCreate,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService.create(db, ctx.tenant_id, payload, ctx.user_id)
    except (HTTPException, LodgingError):
        raise
    except SQLAlchemyError as e:
        raise _db_error(ctx, "Error al registrar egreso", e)


@router.get("/expenses", response_model=List[ExpenseResponse])
def listar_egresos(
    start: Optional[date] = None,
    end: Optional[date] = None,
    category_id: Optional[int] = Query(None, gt=0),
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=200),
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    items, _ = ExpenseService.list(db, ctx.tenant_id, start, end, category_id, skip, take)
    return items


# ============================================================================
# EXPORTACIÓN
# ============================================================================

@router.get("/ledger/export/csv")
def exportar_libro_csv(
    start: Optional[date] = None,
    end: Optional[date] = None,
    ctx: AdminContext = Depends(get_admin_context),
    db: Session = Depends(get_db),
):
    """
    Exporta los asientos del libro mayor a CSV.
    Sin rango, últimos 30 días.
    """
    end = end or get_hotel_today()
    start = start or end - timedelta(days=30)
    entries = Ledger.entries_between(db, ctx.tenant_id, start, end)

    output = StringIO()
    writer = csv.writer(output)
    writer.writerow([
        "ID", "Fecha", "Tipo", "Categoría", "Monto", "Referencia", "ID Referencia",
        "Pago", "Descripción", "Usuario",
    ])
    for entry in entries:
        writer.writerow([
            entry.id,
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            entry.type,
            entry.category,
            str(entry.amount),
            entry.reference_type,
            entry.reference_id,
            entry.payment_id or "",
            entry.description or "",
            entry.created_by or "",
        ])
    output.seek(0)

    log_event("caja", ctx.user_id, "Exportación de libro mayor", f"desde={start} hasta={end} filas={len(entries)}")
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=libro_{start.strftime('%Y%m%d')}_{end.strftime('%Y%m%d')}.csv"
        },
    )
