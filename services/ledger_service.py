"""
Services de caja sobre el libro mayor append-only
Contiene lógica de negocio para:
- Registro de pagos (con autoconfirmación de reservas pendientes)
- Reembolsos totales y parciales
- Confirmación de intentos de pago online
- Ingresos y egresos manuales

Cada operación escribe el registro de negocio y su asiento en la misma transacción.
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from database.transaction import run_in_transaction
from models.core import Payment, PaymentStatus, Reservation, ReservationStatus
from models.ledger import (
    INCOME_CATEGORY_BY_SOURCE,
    EntryType,
    Expense,
    ExpenseCategory,
    Income,
    LedgerCategory,
    LedgerEntry,
    ReferenceType,
)
from schemas.audit import ExpenseSnapshot, IncomeSnapshot, PaymentSnapshot
from schemas.caja import ExpenseCreate, IncomeCreate, PaymentCreate, RefundCreate
from services.audit_service import AuditService
from services.exceptions import DuplicateEntity, NotFound, ValidationError
from services.pricing_service import quantize_money
from services.reservation_service import apply_status_change
from utils.logging_utils import log_event
from utils.timezone import get_hotel_today, hotel_day_bounds_utc, utcnow

ZERO = Decimal("0.00")


def _enum_value(value) -> str:
    return getattr(value, "value", value)


class Ledger:
    """Único punto de escritura del libro mayor. No hay update ni delete."""

    @staticmethod
    def append(
        db: Session,
        tenant_id: int,
        type: EntryType,
        amount: Decimal,
        category: LedgerCategory,
        reference_type: ReferenceType,
        reference_id: int,
        description: Optional[str],
        actor_id: Optional[int],
        payment_id: Optional[int] = None,
    ) -> LedgerEntry:
        amount = quantize_money(amount)
        if amount <= 0:
            raise ValidationError("Ledger entry amount must be positive", {"amount": str(amount)})
        entry = LedgerEntry(
            tenant_id=tenant_id,
            type=_enum_value(type),
            amount=amount,
            category=_enum_value(category),
            reference_type=_enum_value(reference_type),
            reference_id=reference_id,
            payment_id=payment_id,
            description=description,
            created_by=actor_id,
        )
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def entries_for_payment(db: Session, tenant_id: int, payment_id: int) -> List[LedgerEntry]:
        return db.query(LedgerEntry).filter(
            LedgerEntry.tenant_id == tenant_id,
            LedgerEntry.payment_id == payment_id,
        ).order_by(LedgerEntry.id).all()

    @staticmethod
    def entries_between(db: Session, tenant_id: int, start: date, end: date) -> List[LedgerEntry]:
        """Asientos cuyo created_at cae en [start, end] (días del hotel)"""
        if end < start:
            raise ValidationError("End date must not be before start date")
        lower, upper = hotel_day_bounds_utc(start, end)
        return db.query(LedgerEntry).filter(
            LedgerEntry.tenant_id == tenant_id,
            LedgerEntry.created_at >= lower,
            LedgerEntry.created_at < upper,
        ).order_by(LedgerEntry.created_at, LedgerEntry.id).all()


# ============================================================================
# PAGOS
# ============================================================================

class PaymentService:

    @staticmethod
    def _get(db: Session, tenant_id: int, payment_id: int) -> Payment:
        payment = db.query(Payment).filter(Payment.id == payment_id, Payment.tenant_id == tenant_id).first()
        if not payment:
            raise NotFound("Payment", payment_id)
        return payment

    @staticmethod
    def _credit_reservation(tx: Session, reservation: Reservation, amount: Decimal, actor_id: Optional[int]) -> None:
        """Suma al pagado sin pasarse del total; si queda saldada y estaba pendiente se confirma"""
        paid = min(reservation.paid_amount + amount, reservation.total_amount)
        reservation.paid_amount = quantize_money(paid)
        tx.flush()
        if reservation.paid_amount >= reservation.total_amount and reservation.status == ReservationStatus.PENDING.value:
            apply_status_change(tx, reservation, ReservationStatus.CONFIRMED.value, actor_id, reason="fully paid")
            log_event("pagos", actor_id, "Reserva autoconfirmada por pago total", f"reservation_id={reservation.id}")

    @staticmethod
    def _settle(tx: Session, payment: Payment, actor_id: Optional[int]) -> None:
        Ledger.append(
            tx,
            payment.tenant_id,
            EntryType.CREDIT,
            payment.amount,
            LedgerCategory.PAYMENT,
            ReferenceType.PAYMENT,
            payment.id,
            payment.description or f"Payment of {payment.amount} via {payment.method}",
            actor_id,
            payment_id=payment.id,
        )
        if payment.reservation_id:
            reservation = tx.query(Reservation).filter(Reservation.id == payment.reservation_id).first()
            PaymentService._credit_reservation(tx, reservation, Decimal(payment.amount), actor_id)

    @staticmethod
    def record(db: Session, tenant_id: int, data: PaymentCreate, actor_id: Optional[int] = None) -> Payment:
        def work(tx: Session) -> int:
            if data.reservation_id:
                reservation = tx.query(Reservation).filter(
                    Reservation.id == data.reservation_id,
                    Reservation.tenant_id == tenant_id,
                ).first()
                if not reservation:
                    raise NotFound("Reservation", data.reservation_id)

            payment = Payment(
                tenant_id=tenant_id,
                reservation_id=data.reservation_id,
                amount=quantize_money(data.amount),
                method=_enum_value(data.method),
                status=PaymentStatus.PAID.value,
                description=data.description,
                created_by=actor_id,
                paid_at=utcnow(),
            )
            tx.add(payment)
            tx.flush()

            PaymentService._settle(tx, payment, actor_id)
            AuditService.record(
                tx, tenant_id, actor_id, "create", "payment", payment.id,
                after=PaymentSnapshot.from_payment(payment),
            )
            return payment.id

        payment_id = run_in_transaction(db, work, area="pagos", actor=actor_id)
        log_event("pagos", actor_id, "Pago registrado", f"payment_id={payment_id} monto={data.amount} metodo={_enum_value(data.method)}")
        return PaymentService._get(db, tenant_id, payment_id)

    @staticmethod
    def confirm_intent(db: Session, tenant_id: int, payment_id: int, actor_id: Optional[int] = None) -> Payment:
        """Callback del gateway (simulado): el intento online pasa a pagado y genera su asiento"""
        def work(tx: Session) -> None:
            payment = PaymentService._get(tx, tenant_id, payment_id)
            if payment.status != PaymentStatus.INITIATED.value:
                raise ValidationError(
                    f'Only initiated payments can be confirmed (current status "{payment.status}")'
                )
            before = PaymentSnapshot.from_payment(payment)
            payment.status = PaymentStatus.PAID.value
            payment.paid_at = utcnow()
            tx.flush()

            PaymentService._settle(tx, payment, actor_id)
            AuditService.record(
                tx, tenant_id, actor_id, "status_change", "payment", payment.id,
                before=before,
                after=PaymentSnapshot.from_payment(payment),
            )

        run_in_transaction(db, work, area="pagos", actor=actor_id)
        log_event("pagos", actor_id, "Intento de pago confirmado", f"payment_id={payment_id}")
        return PaymentService._get(db, tenant_id, payment_id)

    @staticmethod
    def refunded_amount(db: Session, payment_id: int) -> Decimal:
        total = db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
            Payment.refund_of_id == payment_id
        ).scalar()
        return quantize_money(-Decimal(total))

    @staticmethod
    def refund(
        db: Session,
        tenant_id: int,
        payment_id: int,
        data: RefundCreate,
        actor_id: Optional[int] = None,
    ) -> Payment:
        """
        Reembolso total o parcial. Se agrega un Payment negativo y un DEBIT;
        el pago original solo se marca refunded cuando queda devuelto completo.
        """
        def work(tx: Session) -> int:
            original = PaymentService._get(tx, tenant_id, payment_id)
            if original.is_refund:
                raise ValidationError("A refund cannot be refunded")
            if original.status == PaymentStatus.REFUNDED.value:
                raise ValidationError("Payment has already been fully refunded")
            if original.status != PaymentStatus.PAID.value:
                raise ValidationError(f'Only paid payments can be refunded (current status "{original.status}")')

            remaining = quantize_money(Decimal(original.amount) - PaymentService.refunded_amount(tx, original.id))
            amount = quantize_money(data.amount) if data.amount is not None else remaining
            if amount > remaining:
                raise ValidationError(
                    "Refund amount cannot exceed the original payment amount",
                    {"requested": str(amount), "refundable": str(remaining)},
                )

            before = PaymentSnapshot.from_payment(original)
            now = utcnow()
            refund = Payment(
                tenant_id=tenant_id,
                reservation_id=original.reservation_id,
                amount=-amount,
                method=original.method,
                status=PaymentStatus.REFUNDED.value,
                description=data.reason or f"Refund of payment {original.id}",
                refund_of_id=original.id,
                created_by=actor_id,
                refunded_at=now,
            )
            tx.add(refund)
            tx.flush()

            if amount == remaining:
                original.status = PaymentStatus.REFUNDED.value
                original.refunded_at = now

            Ledger.append(
                tx,
                tenant_id,
                EntryType.DEBIT,
                amount,
                LedgerCategory.REFUND,
                ReferenceType.PAYMENT,
                refund.id,
                data.reason or f"Refund of {amount} for payment {original.id}",
                actor_id,
                payment_id=refund.id,
            )

            if original.reservation_id:
                reservation = tx.query(Reservation).filter(Reservation.id == original.reservation_id).first()
                reservation.paid_amount = max(ZERO, quantize_money(reservation.paid_amount - amount))

            tx.flush()
            AuditService.record(
                tx, tenant_id, actor_id, "refund", "payment", refund.id,
                before=before,
                after=PaymentSnapshot.from_payment(refund),
            )
            return refund.id

        refund_id = run_in_transaction(db, work, area="pagos", actor=actor_id)
        log_event("pagos", actor_id, "Reembolso registrado", f"payment_id={payment_id} refund_id={refund_id}")
        return PaymentService._get(db, tenant_id, refund_id)

    @staticmethod
    def get(db: Session, tenant_id: int, payment_id: int) -> Payment:
        return PaymentService._get(db, tenant_id, payment_id)

    @staticmethod
    def list(
        db: Session,
        tenant_id: int,
        status: Optional[str] = None,
        method: Optional[str] = None,
        reservation_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        skip: int = 0,
        take: int = 50,
    ) -> Tuple[List[Payment], int]:
        query = db.query(Payment).filter(Payment.tenant_id == tenant_id)
        if status:
            query = query.filter(Payment.status == status)
        if method:
            query = query.filter(Payment.method == method)
        if reservation_id:
            query = query.filter(Payment.reservation_id == reservation_id)
        if date_from:
            query = query.filter(Payment.created_at >= hotel_day_bounds_utc(date_from)[0])
        if date_to:
            query = query.filter(Payment.created_at < hotel_day_bounds_utc(date_to)[1])

        total = query.count()
        items = query.order_by(Payment.created_at.desc(), Payment.id.desc()).offset(skip).limit(take).all()
        return items, total

    @staticmethod
    def by_reservation(db: Session, tenant_id: int, reservation_id: int) -> List[Payment]:
        exists = db.query(Reservation.id).filter(
            Reservation.id == reservation_id,
            Reservation.tenant_id == tenant_id,
        ).first()
        if not exists:
            raise NotFound("Reservation", reservation_id)
        return db.query(Payment).filter(
            Payment.tenant_id == tenant_id,
            Payment.reservation_id == reservation_id,
        ).order_by(Payment.created_at.desc(), Payment.id.desc()).all()


# ============================================================================
# INGRESOS
# ============================================================================

class IncomeService:

    @staticmethod
    def create(db: Session, tenant_id: int, data: IncomeCreate, actor_id: Optional[int] = None) -> Income:
        source = _enum_value(data.source)

        def work(tx: Session) -> int:
            income = Income(
                tenant_id=tenant_id,
                amount=quantize_money(data.amount),
                description=data.description,
                source=source,
                method=_enum_value(data.method),
                date=data.date or get_hotel_today(),
                received_by=actor_id,
                notes=data.notes,
            )
            tx.add(income)
            tx.flush()
            Ledger.append(
                tx,
                tenant_id,
                EntryType.CREDIT,
                income.amount,
                INCOME_CATEGORY_BY_SOURCE[source],
                ReferenceType.INCOME,
                income.id,
                data.description,
                actor_id,
            )
            AuditService.record(
                tx, tenant_id, actor_id, "create", "income", income.id,
                after=IncomeSnapshot.from_income(income),
            )
            return income.id

        income_id = run_in_transaction(db, work, area="caja", actor=actor_id)
        log_event("caja", actor_id, "Ingreso registrado", f"income_id={income_id} monto={data.amount} origen={source}")
        return IncomeService.get(db, tenant_id, income_id)

    @staticmethod
    def get(db: Session, tenant_id: int, income_id: int) -> Income:
        income = db.query(Income).filter(Income.id == income_id, Income.tenant_id == tenant_id).first()
        if not income:
            raise NotFound("Income", income_id)
        return income

    @staticmethod
    def list(
        db: Session,
        tenant_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        source: Optional[str] = None,
        skip: int = 0,
        take: int = 50,
    ) -> Tuple[List[Income], int]:
        query = db.query(Income).filter(Income.tenant_id == tenant_id)
        if start:
            query = query.filter(Income.date >= start)
        if end:
            query = query.filter(Income.date <= end)
        if source:
            query = query.filter(Income.source == source)
        total = query.count()
        items = query.order_by(Income.date.desc(), Income.id.desc()).offset(skip).limit(take).all()
        return items, total


# ============================================================================
# EGRESOS
# ============================================================================

class ExpenseService:

    @staticmethod
    def create_category(db: Session, tenant_id: int, name: str, actor_id: Optional[int] = None) -> ExpenseCategory:
        name = name.strip()

        def work(tx: Session) -> int:
            existing = tx.query(ExpenseCategory).filter(
                ExpenseCategory.tenant_id == tenant_id,
                func.lower(ExpenseCategory.name) == name.lower(),
            ).first()
            if existing:
                raise DuplicateEntity("Expense category", "name", name)
            category = ExpenseCategory(tenant_id=tenant_id, name=name, active=True)
            tx.add(category)
            tx.flush()
            return category.id

        category_id = run_in_transaction(db, work, area="caja", actor=actor_id)
        log_event("caja", actor_id, "Categoría de egreso creada", f"id={category_id} nombre={name}")
        return db.query(ExpenseCategory).filter(ExpenseCategory.id == category_id).first()

    @staticmethod
    def list_categories(db: Session, tenant_id: int) -> List[ExpenseCategory]:
        return db.query(ExpenseCategory).filter(
            ExpenseCategory.tenant_id == tenant_id,
            ExpenseCategory.active.is_(True),
        ).order_by(ExpenseCategory.name).all()

    @staticmethod
    def create(db: Session, tenant_id: int, data: ExpenseCreate, actor_id: Optional[int] = None) -> Expense:
        def work(tx: Session) -> int:
            category = tx.query(ExpenseCategory).filter(
                ExpenseCategory.id == data.category_id,
                ExpenseCategory.tenant_id == tenant_id,
                ExpenseCategory.active.is_(True),
            ).first()
            if not category:
                raise NotFound("Expense category", data.category_id)

            expense = Expense(
                tenant_id=tenant_id,
                category_id=category.id,
                amount=quantize_money(data.amount),
                description=data.description,
                method=_enum_value(data.method),
                date=data.date or get_hotel_today(),
                vendor=data.vendor,
                notes=data.notes,
                created_by=actor_id,
            )
            tx.add(expense)
            tx.flush()
            Ledger.append(
                tx,
                tenant_id,
                EntryType.DEBIT,
                expense.amount,
                LedgerCategory.EXPENSE,
                ReferenceType.EXPENSE,
                expense.id,
                data.description,
                actor_id,
            )
            AuditService.record(
                tx, tenant_id, actor_id, "create", "expense", expense.id,
                after=ExpenseSnapshot.from_expense(expense),
            )
            return expense.id

        expense_id = run_in_transaction(db, work, area="caja", actor=actor_id)
        log_event("caja", actor_id, "Egreso registrado", f"expense_id={expense_id} monto={data.amount}")
        return ExpenseService.get(db, tenant_id, expense_id)

    @staticmethod
    def get(db: Session, tenant_id: int, expense_id: int) -> Expense:
        expense = db.query(Expense).filter(Expense.id == expense_id, Expense.tenant_id == tenant_id).first()
        if not expense:
            raise NotFound("Expense", expense_id)
        return expense

    @staticmethod
    def list(
        db: Session,
        tenant_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        category_id: Optional[int] = None,
        skip: int = 0,
        take: int = 50,
    ) -> Tuple[List[Expense], int]:
        query = db.query(Expense).filter(Expense.tenant_id == tenant_id)
        if start:
            query = query.filter(Expense.date >= start)
        if end:
            query = query.filter(Expense.date <= end)
        if category_id:
            query = query.filter(Expense.category_id == category_id)
        total = query.count()
        items = query.order_by(Expense.date.desc(), Expense.id.desc()).offset(skip).limit(take).all()
        return items, total
