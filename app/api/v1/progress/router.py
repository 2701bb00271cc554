from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import ClassProgressResponse, OrderProgressResponse
from . import service

router = APIRouter(prefix="/api/v1/orders/{order_id}/progress", tags=["progress"])


@router.get(
    "",
    response_model=OrderProgressResponse,
    dependencies=[Depends(check_permission("orders", "read"))],
)
async def get_order_progress(
    order_id: UUID,
    include_students: bool = Query(False, description="Include per-student phases in each class"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> OrderProgressResponse:
    """Order completion, class statuses and the current class/student pointer, derived from stored rows."""
    try:
        return await service.get_order_progress(db, current_user.tenant_id, order_id, include_students)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/classes/{class_id}",
    response_model=ClassProgressResponse,
    dependencies=[Depends(check_permission("orders", "read"))],
)
async def get_class_progress(
    order_id: UUID,
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ClassProgressResponse:
    try:
        return await service.get_class_progress(db, current_user.tenant_id, order_id, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
