from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.progress.schemas import ClassProgressResponse, StudentProgressResponse
from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import ClassAttendanceUpdate, StudentProgressUpdate
from . import service

router = APIRouter(prefix="/api/v1/orders/{order_id}", tags=["fulfillment"])


@router.patch(
    "/students/{student_id}/progress",
    response_model=StudentProgressResponse,
    dependencies=[Depends(check_permission("fulfillment", "update"))],
)
async def update_student_progress(
    order_id: UUID,
    student_id: UUID,
    payload: StudentProgressUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentProgressResponse:
    """Printed counts, printed flags and served. Served requires every garment printed."""
    try:
        return await service.update_student_progress(db, current_user.tenant_id, order_id, student_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/classes/{class_id}/attendance",
    response_model=ClassProgressResponse,
    dependencies=[Depends(check_permission("fulfillment", "update"))],
)
async def update_class_attendance(
    order_id: UUID,
    class_id: UUID,
    payload: ClassAttendanceUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ClassProgressResponse:
    try:
        return await service.update_class_attendance(db, current_user.tenant_id, order_id, class_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
