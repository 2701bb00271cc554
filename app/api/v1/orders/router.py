from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    OrderCreate,
    OrderResponse,
    OrderScheduleRequest,
    OrderStatusLogEntry,
    OrderTransitionRequest,
    QueueBoardResponse,
    TransitionResult,
)
from . import service

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("orders", "create"))],
)
async def create_order(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> OrderResponse:
    """Approve a submission. Order, classes and students are created together or not at all."""
    try:
        return await service.create_order(db, current_user.tenant_id, payload, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[OrderResponse],
    dependencies=[Depends(check_permission("orders", "read"))],
)
async def list_orders(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by order status"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[OrderResponse]:
    try:
        return await service.list_orders(db, current_user.tenant_id, status_filter)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/queue",
    response_model=QueueBoardResponse,
    dependencies=[Depends(check_permission("orders", "read"))],
)
async def get_queue_board(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> QueueBoardResponse:
    """Queued orders with countdowns. Countdowns are computed at request time."""
    return await service.get_queue_board(db, current_user.tenant_id)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    dependencies=[Depends(check_permission("orders", "read"))],
)
async def get_order(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> OrderResponse:
    try:
        return await service.get_order(db, current_user.tenant_id, order_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{order_id}/schedule",
    response_model=TransitionResult,
    dependencies=[Depends(check_permission("orders", "update"))],
)
async def schedule_order(
    order_id: UUID,
    payload: OrderScheduleRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TransitionResult:
    """SUBMITTED / CONFIRMED / AUTO_CONFIRMED -> QUEUED with a scheduled date and duration estimate."""
    try:
        return await service.schedule_order(
            db, current_user.tenant_id, order_id, payload.scheduled_date, current_user, payload.remarks
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{order_id}/reschedule",
    response_model=TransitionResult,
    dependencies=[Depends(check_permission("orders", "update"))],
)
async def reschedule_order(
    order_id: UUID,
    payload: OrderScheduleRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TransitionResult:
    try:
        return await service.reschedule_order(
            db, current_user.tenant_id, order_id, payload.scheduled_date, current_user, payload.remarks
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{order_id}/transitions",
    response_model=TransitionResult,
    dependencies=[Depends(check_permission("orders", "update"))],
)
async def transition_order(
    order_id: UUID,
    payload: OrderTransitionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TransitionResult:
    """
    Move the order to target_status. Illegal moves return 409; asking for the current status
    returns changed=false and writes nothing.
    """
    try:
        return await service.transition_order(
            db, current_user.tenant_id, order_id, payload.target_status, current_user, payload.remarks
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{order_id}/status-history",
    response_model=List[OrderStatusLogEntry],
    dependencies=[Depends(check_permission("orders", "read"))],
)
async def list_status_history(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[OrderStatusLogEntry]:
    try:
        return await service.list_status_history(db, current_user.tenant_id, order_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
