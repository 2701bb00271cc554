"""
Printing-floor updates: per-student printed counts / flags / served, and per-class attendance.
Writes that change nothing are not committed and publish nothing.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.orders.state_machine import is_terminal
from app.api.v1.progress import aggregator
from app.api.v1.progress.schemas import ClassProgressResponse, StudentProgressResponse
from app.core.clock import utcnow
from app.core.enums import ChangeTable, OrderStatus
from app.core.exceptions import InvalidInput, NotFound, StateConflict
from app.core.models import Order, OrderClass, Student
from app.realtime.notifier import get_change_notifier

from .schemas import ClassAttendanceUpdate, StudentProgressUpdate

logger = logging.getLogger(__name__)


async def _get_open_order(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> Order:
    order = (await db.execute(
        select(Order).where(Order.id == order_id, Order.tenant_id == tenant_id)
    )).scalar_one_or_none()
    if not order:
        raise NotFound("Order not found")
    status = OrderStatus(order.status)
    if is_terminal(status):
        raise StateConflict(f"Order is {status.value}; progress can no longer be updated", status.value)
    return order


async def update_student_progress(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    student_id: UUID,
    payload: StudentProgressUpdate,
) -> StudentProgressResponse:
    order = await _get_open_order(db, tenant_id, order_id)
    student = (await db.execute(
        select(Student).where(Student.id == student_id, Student.order_id == order.id)
    )).scalar_one_or_none()
    if not student:
        raise NotFound("Student not found")

    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    changed = {k: v for k, v in changes.items() if getattr(student, k) != v}
    if not changed:
        return StudentProgressResponse.model_validate(aggregator.student_item(student))

    for key, value in changed.items():
        setattr(student, key, value)

    if student.is_served and (
        student.printed_light_garment_count < student.total_light_garment_count
        or student.printed_dark_garment_count < student.total_dark_garment_count
    ):
        await db.rollback()
        raise InvalidInput("A student can only be served once all garments are printed")

    if student.light_garments_printed and student.dark_garments_printed and student.printing_done_at is None:
        student.printing_done_at = utcnow()

    await db.commit()
    await db.refresh(student)
    logger.info("Student %s progress updated: %s", student.id, sorted(changed))
    await get_change_notifier().publish(ChangeTable.STUDENTS, order.id, "UPDATE", student.id)
    return StudentProgressResponse.model_validate(aggregator.student_item(student))


async def update_class_attendance(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    class_id: UUID,
    payload: ClassAttendanceUpdate,
) -> ClassProgressResponse:
    order = await _get_open_order(db, tenant_id, order_id)
    school_class = (await db.execute(
        select(OrderClass).where(OrderClass.id == class_id, OrderClass.order_id == order.id)
    )).scalar_one_or_none()
    if not school_class:
        raise NotFound("Class not found")

    if school_class.is_attended != payload.is_attended:
        school_class.is_attended = payload.is_attended
        await db.commit()
        await db.refresh(school_class)
        await get_change_notifier().publish(ChangeTable.CLASSES, order.id, "UPDATE", school_class.id)

    students = (await db.execute(
        select(Student).where(Student.class_id == school_class.id)
    )).scalars().all()
    return ClassProgressResponse.model_validate(aggregator.class_progress(school_class, students))
