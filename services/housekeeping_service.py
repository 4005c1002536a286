"""
Máquina de estados de tareas de limpieza

pending -> in_progress -> done, o pending -> done directo. Al terminar una tarea
la habitación sucia vuelve a quedar disponible en la misma transacción.
"""
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from database.transaction import run_in_transaction
from models.core import HousekeepingStatus, HousekeepingTask, HousekeepingPriority, Room, RoomStatus
from schemas.audit import HousekeepingTaskSnapshot
from services.audit_service import AuditService
from services.exceptions import InvalidStatusTransition, NotFound
from utils.logging_utils import log_event
from utils.timezone import hotel_date_of, utcnow

TASK_TRANSITIONS = {
    HousekeepingStatus.PENDING.value: (HousekeepingStatus.IN_PROGRESS.value, HousekeepingStatus.DONE.value),
    HousekeepingStatus.IN_PROGRESS.value: (HousekeepingStatus.DONE.value,),
    HousekeepingStatus.DONE.value: (),
}

OPEN_TASK_STATUSES = (HousekeepingStatus.PENDING.value, HousekeepingStatus.IN_PROGRESS.value)


def generate_checkout_task(
    db: Session,
    tenant_id: int,
    room_id: int,
    actor_id: Optional[int] = None,
) -> HousekeepingTask:
    """
    Tarea de limpieza al liberar una habitación. Si ya hay una abierta para la
    habitación se devuelve esa, sin duplicar.
    """
    existing = db.query(HousekeepingTask).filter(
        HousekeepingTask.tenant_id == tenant_id,
        HousekeepingTask.room_id == room_id,
        HousekeepingTask.status.in_(OPEN_TASK_STATUSES),
    ).first()
    if existing:
        return existing

    task = HousekeepingTask(
        tenant_id=tenant_id,
        room_id=room_id,
        status=HousekeepingStatus.PENDING.value,
        priority=HousekeepingPriority.HIGH.value,
        notes="Limpieza de salida",
    )
    db.add(task)
    db.flush()
    AuditService.record(
        db, tenant_id, actor_id, "create", "housekeeping_task", task.id,
        after=HousekeepingTaskSnapshot.from_task(task, db.get(Room, room_id)),
    )
    return task


class HousekeepingService:

    @staticmethod
    def _get_task(db: Session, tenant_id: int, task_id: int) -> HousekeepingTask:
        task = db.query(HousekeepingTask).filter(
            HousekeepingTask.id == task_id,
            HousekeepingTask.tenant_id == tenant_id,
        ).first()
        if not task:
            raise NotFound("Housekeeping task", task_id)
        return task

    @staticmethod
    def get_task(db: Session, tenant_id: int, task_id: int) -> HousekeepingTask:
        return HousekeepingService._get_task(db, tenant_id, task_id)

    @staticmethod
    def list_tasks(
        db: Session,
        tenant_id: int,
        status: Optional[str] = None,
        room_id: Optional[int] = None,
        assigned_to: Optional[int] = None,
        day: Optional[date] = None,
    ) -> List[HousekeepingTask]:
        query = db.query(HousekeepingTask).filter(HousekeepingTask.tenant_id == tenant_id)
        if status:
            query = query.filter(HousekeepingTask.status == status)
        if room_id:
            query = query.filter(HousekeepingTask.room_id == room_id)
        if assigned_to:
            query = query.filter(HousekeepingTask.assigned_to == assigned_to)
        tasks = query.order_by(HousekeepingTask.created_at.desc(), HousekeepingTask.id.desc()).all()
        if day:
            tasks = [t for t in tasks if t.created_at and hotel_date_of(t.created_at) == day]
        return tasks

    @staticmethod
    def create_task(
        db: Session,
        tenant_id: int,
        room_id: int,
        priority: str = HousekeepingPriority.NORMAL.value,
        assigned_to: Optional[int] = None,
        notes: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> HousekeepingTask:
        def work(tx: Session) -> int:
            room = tx.query(Room).filter(Room.id == room_id, Room.tenant_id == tenant_id).first()
            if not room:
                raise NotFound("Room", room_id)
            task = HousekeepingTask(
                tenant_id=tenant_id,
                room_id=room_id,
                status=HousekeepingStatus.PENDING.value,
                priority=priority,
                assigned_to=assigned_to,
                notes=notes,
            )
            tx.add(task)
            tx.flush()
            AuditService.record(
                tx, tenant_id, actor_id, "create", "housekeeping_task", task.id,
                after=HousekeepingTaskSnapshot.from_task(task, room),
            )
            return task.id

        task_id = run_in_transaction(db, work, area="housekeeping", actor=actor_id)
        log_event("housekeeping", actor_id, "Tarea creada", f"task_id={task_id} room_id={room_id}")
        return HousekeepingService._get_task(db, tenant_id, task_id)

    @staticmethod
    def update_status(
        db: Session,
        tenant_id: int,
        task_id: int,
        to_status: str,
        actor_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> HousekeepingTask:
        def work(tx: Session) -> int:
            task = HousekeepingService._get_task(tx, tenant_id, task_id)
            allowed = TASK_TRANSITIONS.get(task.status, ())
            if to_status not in allowed:
                raise InvalidStatusTransition(task.status, to_status, list(allowed))

            room = tx.query(Room).filter(Room.id == task.room_id).first()
            before = HousekeepingTaskSnapshot.from_task(task, room)

            now = utcnow()
            task.status = to_status
            if notes:
                task.notes = f"{task.notes}\n{notes}" if task.notes else notes
            if to_status == HousekeepingStatus.IN_PROGRESS.value:
                task.started_at = now
            elif to_status == HousekeepingStatus.DONE.value:
                task.started_at = task.started_at or now
                task.completed_at = now
                if room is not None and room.status == RoomStatus.DIRTY.value:
                    room.status = RoomStatus.AVAILABLE.value

            tx.flush()
            AuditService.record(
                tx, tenant_id, actor_id, "status_change", "housekeeping_task", task.id,
                before=before,
                after=HousekeepingTaskSnapshot.from_task(task, room),
            )
            return task.id

        run_in_transaction(db, work, area="housekeeping", actor=actor_id)
        log_event("housekeeping", actor_id, "Cambio de estado de tarea", f"task_id={task_id} -> {to_status}")
        return HousekeepingService._get_task(db, tenant_id, task_id)
