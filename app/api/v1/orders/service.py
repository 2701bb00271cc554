"""
Order lifecycle: approval (atomic create), scheduling, guarded status transitions, queue board.

Every status write is a compare-and-set on the status the caller observed, so two concurrent
requests for the same order cannot both apply. A request that asks for the status the order is
already in is a no-op and writes nothing.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentUser
from app.core.clock import as_utc, utcnow
from app.core.config import settings
from app.core.enums import ChangeTable, OrderStatus
from app.core.exceptions import InvalidInput, NotFound, ServiceError, StateConflict
from app.core.models import Order, OrderClass, Student
from app.realtime.notifier import get_change_notifier

from . import scheduling
from .schemas import (
    CountdownResponse,
    OrderCreate,
    OrderResponse,
    OrderStatusLogEntry,
    QueueBoardResponse,
    QueuedOrderItem,
    TransitionResult,
)
from .state_machine import ACTION_NAMES, check_transition, parse_status
from .status_log import list_status_changes, log_status_change

logger = logging.getLogger(__name__)

# performed_by_role for changes made by scheduled jobs rather than a user
SYSTEM_ROLE = "SYSTEM"


def _countdown_response(order: Order, now: Optional[datetime] = None) -> Optional[CountdownResponse]:
    if order.status != OrderStatus.QUEUED.value:
        return None
    cd = scheduling.countdown(order.scheduled_date, now)
    return CountdownResponse.model_validate(cd) if cd else None


def _order_to_response(order: Order, now: Optional[datetime] = None) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        tenant_id=order.tenant_id,
        external_ref=order.external_ref,
        school_name=order.school_name,
        status=order.status,
        scheduled_date=as_utc(order.scheduled_date),
        estimated_duration_hours=order.estimated_duration_hours,
        duration_display=scheduling.order_duration_display(order.estimated_duration_hours, order.total_garments or 0),
        submitted_at=as_utc(order.submitted_at),
        queued_at=as_utc(order.queued_at),
        auto_confirmed_at=as_utc(order.auto_confirmed_at),
        completed_at=as_utc(order.completed_at),
        total_students=order.total_students,
        total_garments=order.total_garments,
        total_dark_garments=order.total_dark_garments,
        total_light_garments=order.total_light_garments,
        total_classes_to_serve=order.total_classes_to_serve,
        submitted_total_students=order.submitted_total_students,
        submitted_total_garments=order.submitted_total_garments,
        submitted_total_dark_garments=order.submitted_total_dark_garments,
        submitted_total_light_garments=order.submitted_total_light_garments,
        submitted_total_classes=order.submitted_total_classes,
        countdown=_countdown_response(order, now),
        created_at=as_utc(order.created_at),
        updated_at=as_utc(order.updated_at),
    )


async def _get_order(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> Order:
    order = (await db.execute(
        select(Order).where(Order.id == order_id, Order.tenant_id == tenant_id)
    )).scalar_one_or_none()
    if not order:
        raise NotFound("Order not found")
    return order


async def _guarded_status_update(
    db: AsyncSession,
    order_id: UUID,
    expected_status: OrderStatus,
    values: Dict,
) -> bool:
    """UPDATE ... WHERE status = expected. False when another writer moved the order first."""
    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == expected_status.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _reconcile_totals(payload: OrderCreate) -> Dict[str, int]:
    """Derive order totals from the roster; reject any given total that disagrees with it."""
    for c in payload.classes:
        expected = c.total_students_to_serve_in_class
        if expected is not None and expected != len(c.students):
            raise InvalidInput(
                f"Class '{c.name}' lists {len(c.students)} students but expects {expected}"
            )

    students = [s for c in payload.classes for s in c.students]
    light = sum(s.light_garment_count for s in students)
    dark = sum(s.dark_garment_count for s in students)
    derived = {
        "total_students": len(students),
        "total_light_garments": light,
        "total_dark_garments": dark,
        "total_garments": light + dark,
    }
    for field, value in derived.items():
        given = getattr(payload, field)
        if given is not None and given != value:
            raise InvalidInput(f"{field} ({given}) does not match the roster ({value})")
    return derived


async def create_order(
    db: AsyncSession,
    tenant_id: UUID,
    payload: OrderCreate,
    actor: CurrentUser,
) -> OrderResponse:
    """
    Approve a submission: order, classes and students are created in one transaction.
    Nothing is visible unless all of it is.
    """
    totals = _reconcile_totals(payload)
    order = Order(
        tenant_id=tenant_id,
        external_ref=payload.external_ref.strip(),
        school_name=payload.school_name,
        status=payload.status.value,
        total_classes_to_serve=len(payload.classes),
        submitted_total_students=totals["total_students"],
        submitted_total_garments=totals["total_garments"],
        submitted_total_dark_garments=totals["total_dark_garments"],
        submitted_total_light_garments=totals["total_light_garments"],
        submitted_total_classes=len(payload.classes),
        submitted_at=utcnow() if payload.status == OrderStatus.SUBMITTED else None,
        created_by=actor.id,
        **totals,
    )
    try:
        db.add(order)
        await db.flush()
        for item in payload.classes:
            school_class = OrderClass(
                order_id=order.id,
                name=item.name.strip(),
                total_students_to_serve_in_class=len(item.students),
                submitted_students_count=len(item.students),
            )
            db.add(school_class)
            await db.flush()
            for s in item.students:
                db.add(Student(
                    order_id=order.id,
                    class_id=school_class.id,
                    full_name=s.full_name.strip(),
                    total_light_garment_count=s.light_garment_count,
                    total_dark_garment_count=s.dark_garment_count,
                ))
        await db.flush()
        await log_status_change(
            db, tenant_id, order.id, "order_created",
            to_status=order.status,
            performed_by=actor.id,
            performed_by_role=actor.role,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Order reference already exists for this tenant", status.HTTP_409_CONFLICT)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Order approval failed for ref=%s, nothing was written", payload.external_ref)
        raise ServiceError("Order approval failed; nothing was created")

    await db.refresh(order)
    logger.info("Order %s (%s) created with %d classes", order.id, order.external_ref, len(payload.classes))
    await get_change_notifier().publish(ChangeTable.ORDERS, order.id, "INSERT", order.id)
    return _order_to_response(order)


async def get_order(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> OrderResponse:
    return _order_to_response(await _get_order(db, tenant_id, order_id))


async def list_orders(
    db: AsyncSession,
    tenant_id: UUID,
    status_filter: Optional[str] = None,
) -> List[OrderResponse]:
    q = select(Order).where(Order.tenant_id == tenant_id)
    if status_filter:
        q = q.where(Order.status == parse_status(status_filter).value)
    q = q.order_by(Order.created_at.desc(), Order.id)
    result = await db.execute(q)
    now = utcnow()
    return [_order_to_response(o, now) for o in result.scalars().all()]


async def get_queue_board(db: AsyncSession, tenant_id: UUID) -> QueueBoardResponse:
    """Queued orders, soonest first, with live countdowns and per-status counts."""
    now = utcnow()
    result = await db.execute(
        select(Order)
        .where(Order.tenant_id == tenant_id, Order.status == OrderStatus.QUEUED.value)
        .order_by(Order.scheduled_date.is_(None), Order.scheduled_date, Order.id)
    )
    items = []
    for o in result.scalars().all():
        items.append(QueuedOrderItem(
            id=o.id,
            external_ref=o.external_ref,
            school_name=o.school_name,
            scheduled_date=as_utc(o.scheduled_date),
            estimated_duration_hours=o.estimated_duration_hours,
            duration_display=scheduling.order_duration_display(o.estimated_duration_hours, o.total_garments or 0),
            total_garments=o.total_garments,
            countdown=_countdown_response(o, now),
        ))

    counts = await db.execute(
        select(Order.status, func.count(Order.id))
        .where(Order.tenant_id == tenant_id)
        .group_by(Order.status)
    )
    return QueueBoardResponse(
        orders=items,
        has_overdue=any(i.countdown is not None and i.countdown.is_overdue for i in items),
        status_counts={row[0]: row[1] for row in counts.all()},
    )


async def _commit_transition(
    db: AsyncSession,
    order: Order,
    from_status: OrderStatus,
    to_status: OrderStatus,
    action: str,
    actor: CurrentUser,
    remarks: Optional[str],
) -> OrderResponse:
    await log_status_change(
        db, order.tenant_id, order.id, action,
        from_status=from_status.value,
        to_status=to_status.value,
        performed_by=actor.id,
        performed_by_role=actor.role,
        remarks=remarks,
    )
    await db.commit()
    await db.refresh(order)
    logger.info("Order %s: %s (%s -> %s)", order.id, action, from_status.value, to_status.value)
    await get_change_notifier().publish(ChangeTable.ORDERS, order.id, "UPDATE", order.id)
    return _order_to_response(order)


async def _lost_race(db: AsyncSession, order: Order, target: OrderStatus) -> Tuple[bool, OrderStatus]:
    """After a failed compare-and-set: re-read and report whether the order already holds target."""
    await db.rollback()
    await db.refresh(order)
    current = OrderStatus(order.status)
    return current == target, current


async def transition_order(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    target_status: str,
    actor: CurrentUser,
    remarks: Optional[str] = None,
) -> TransitionResult:
    target = parse_status(target_status)
    order = await _get_order(db, tenant_id, order_id)
    current = OrderStatus(order.status)
    if current == target:
        return TransitionResult(changed=False, from_status=current.value, order=_order_to_response(order))
    check_transition(current, target)
    if target == OrderStatus.QUEUED:
        # Legal source, but the date and estimate must be written with the status
        raise InvalidInput("Orders enter QUEUED through scheduling; use the schedule endpoint")

    now = utcnow()
    values = {"status": target.value, "updated_at": now}
    if target == OrderStatus.SUBMITTED:
        values["submitted_at"] = now
    if target == OrderStatus.AUTO_CONFIRMED:
        values["auto_confirmed_at"] = now
    if target in (OrderStatus.COMPLETED, OrderStatus.DONE):
        values["completed_at"] = now

    if not await _guarded_status_update(db, order.id, current, values):
        already, observed = await _lost_race(db, order, target)
        if already:
            return TransitionResult(changed=False, from_status=observed.value, order=_order_to_response(order))
        raise StateConflict(
            f"Order status changed concurrently (now {observed.value}); retry",
            current_status=observed.value,
        )

    response = await _commit_transition(db, order, current, target, ACTION_NAMES[target], actor, remarks)
    return TransitionResult(changed=True, from_status=current.value, order=response)


async def schedule_order(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    scheduled_date: datetime,
    actor: CurrentUser,
    remarks: Optional[str] = None,
) -> TransitionResult:
    """Move a confirmed order into QUEUED with its date and duration estimate, in one write."""
    scheduled = as_utc(scheduled_date)
    order = await _get_order(db, tenant_id, order_id)
    current = OrderStatus(order.status)

    if current == OrderStatus.QUEUED:
        if as_utc(order.scheduled_date) == scheduled:
            return TransitionResult(changed=False, from_status=current.value, order=_order_to_response(order))
        raise StateConflict("Order is already scheduled; use reschedule to change the date", current.value)
    check_transition(current, OrderStatus.QUEUED)

    now = utcnow()
    estimate = scheduling.estimate_duration(order.total_garments or 0)
    values = {
        "status": OrderStatus.QUEUED.value,
        "scheduled_date": scheduled,
        "estimated_duration_hours": estimate.hours,
        "queued_at": now,
        "updated_at": now,
    }
    if not await _guarded_status_update(db, order.id, current, values):
        already, observed = await _lost_race(db, order, OrderStatus.QUEUED)
        if already and as_utc(order.scheduled_date) == scheduled:
            return TransitionResult(changed=False, from_status=observed.value, order=_order_to_response(order))
        raise StateConflict(
            f"Order status changed concurrently (now {observed.value}); retry",
            current_status=observed.value,
        )

    response = await _commit_transition(
        db, order, current, OrderStatus.QUEUED, ACTION_NAMES[OrderStatus.QUEUED], actor, remarks
    )
    return TransitionResult(changed=True, from_status=current.value, order=response)


async def reschedule_order(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    scheduled_date: datetime,
    actor: CurrentUser,
    remarks: Optional[str] = None,
) -> TransitionResult:
    """Change the date of a queued order. queued_at is kept; the estimate is recomputed."""
    scheduled = as_utc(scheduled_date)
    order = await _get_order(db, tenant_id, order_id)
    current = OrderStatus(order.status)
    if current != OrderStatus.QUEUED:
        raise StateConflict(f"Only QUEUED orders can be rescheduled (status is {current.value})", current.value)
    previous = as_utc(order.scheduled_date)
    if previous == scheduled:
        return TransitionResult(changed=False, from_status=current.value, order=_order_to_response(order))

    estimate = scheduling.estimate_duration(order.total_garments or 0)
    values = {
        "scheduled_date": scheduled,
        "estimated_duration_hours": estimate.hours,
        "updated_at": utcnow(),
    }
    if not await _guarded_status_update(db, order.id, current, values):
        _, observed = await _lost_race(db, order, OrderStatus.QUEUED)
        raise StateConflict(
            f"Order status changed concurrently (now {observed.value}); retry",
            current_status=observed.value,
        )

    note = f"{previous.isoformat() if previous else 'unscheduled'} -> {scheduled.isoformat()}"
    response = await _commit_transition(
        db, order, current, current, "order_rescheduled", actor,
        f"{note}; {remarks}" if remarks else note,
    )
    return TransitionResult(changed=True, from_status=current.value, order=response)


async def list_status_history(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> List[OrderStatusLogEntry]:
    await _get_order(db, tenant_id, order_id)
    entries = await list_status_changes(db, tenant_id, order_id)
    return [OrderStatusLogEntry.model_validate(e) for e in entries]


async def auto_confirm_stale_orders(
    db: AsyncSession,
    now: Optional[datetime] = None,
    cutoff_hours: Optional[int] = None,
) -> List[UUID]:
    """
    Background job, across tenants: SUBMITTED orders left unconfirmed for longer than the cutoff
    move to AUTO_CONFIRMED, logged with the system actor. Each order commits on its own, so an
    order confirmed or aborted by staff in the meantime is skipped. Returns the confirmed ids.
    """
    now = as_utc(now) if now is not None else utcnow()
    hours = cutoff_hours or settings.auto_confirm_after_hours
    cutoff = now - timedelta(hours=hours)
    result = await db.execute(
        select(Order.id, Order.tenant_id)
        .where(
            Order.status == OrderStatus.SUBMITTED.value,
            Order.submitted_at < cutoff,
            Order.auto_confirmed_at.is_(None),
        )
        .order_by(Order.submitted_at, Order.id)
    )
    candidates = result.all()

    confirmed: List[UUID] = []
    for order_id, tenant_id in candidates:
        values = {
            "status": OrderStatus.AUTO_CONFIRMED.value,
            "auto_confirmed_at": now,
            "updated_at": now,
        }
        if not await _guarded_status_update(db, order_id, OrderStatus.SUBMITTED, values):
            await db.rollback()
            logger.info("Auto-confirm skipped order %s: status changed since it was selected", order_id)
            continue
        await log_status_change(
            db, tenant_id, order_id, ACTION_NAMES[OrderStatus.AUTO_CONFIRMED],
            from_status=OrderStatus.SUBMITTED.value,
            to_status=OrderStatus.AUTO_CONFIRMED.value,
            performed_by_role=SYSTEM_ROLE,
            remarks=f"Not confirmed within {hours} hours of submission",
        )
        await db.commit()
        confirmed.append(order_id)
        await get_change_notifier().publish(ChangeTable.ORDERS, order_id, "UPDATE", order_id)

    logger.info("Auto-confirm: %d of %d stale order(s) confirmed", len(confirmed), len(candidates))
    return confirmed
