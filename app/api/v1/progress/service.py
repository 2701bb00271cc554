"""Progress reads: load order rows from the store and run the aggregator over them."""

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import OrderStatus
from app.core.exceptions import NotFound
from app.core.models import Order, OrderClass, Student

from app.api.v1.orders.state_machine import IN_PROGRESS_STATUSES

from . import aggregator
from .schemas import ClassProgressResponse, OrderProgressResponse


async def _get_order(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> Optional[Order]:
    return (await db.execute(
        select(Order).where(Order.id == order_id, Order.tenant_id == tenant_id)
    )).scalar_one_or_none()


async def _load_rows(db: AsyncSession, order_id: UUID):
    classes = (await db.execute(
        select(OrderClass).where(OrderClass.order_id == order_id).order_by(OrderClass.name, OrderClass.id)
    )).scalars().all()
    students = (await db.execute(
        select(Student).where(Student.order_id == order_id).order_by(Student.full_name, Student.id)
    )).scalars().all()
    return classes, students


def _pointer_visible(order: Order) -> bool:
    try:
        return OrderStatus(order.status) in IN_PROGRESS_STATUSES
    except ValueError:
        return False


async def compute_order_progress(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    include_students: bool = False,
) -> Optional[OrderProgressResponse]:
    """None when the order does not exist for this tenant (deleted or never visible)."""
    order = await _get_order(db, tenant_id, order_id)
    if not order:
        return None
    classes, students = await _load_rows(db, order.id)
    progress = aggregator.order_progress(
        order,
        classes,
        students,
        include_pointer=_pointer_visible(order),
        include_students=include_students,
    )
    return OrderProgressResponse.model_validate(progress)


async def get_order_progress(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    include_students: bool = False,
) -> OrderProgressResponse:
    progress = await compute_order_progress(db, tenant_id, order_id, include_students)
    if progress is None:
        raise NotFound("Order not found")
    return progress


async def get_class_progress(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    class_id: UUID,
) -> ClassProgressResponse:
    order = await _get_order(db, tenant_id, order_id)
    if not order:
        raise NotFound("Order not found")
    school_class = (await db.execute(
        select(OrderClass).where(OrderClass.id == class_id, OrderClass.order_id == order.id)
    )).scalar_one_or_none()
    if not school_class:
        raise NotFound("Class not found")
    students = (await db.execute(
        select(Student).where(Student.class_id == school_class.id)
    )).scalars().all()
    return ClassProgressResponse.model_validate(aggregator.class_progress(school_class, students))


async def load_progress_view(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> Optional[Dict[str, Any]]:
    """JSON-ready progress for live viewers; None for an absent order."""
    progress = await compute_order_progress(db, tenant_id, order_id, include_students=True)
    return progress.model_dump(mode="json") if progress else None
