from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    AuditEditResult,
    AuditExport,
    AuditReportResponse,
    AuditView,
    ClassAuditUpdate,
    OrderTotalsAuditUpdate,
    StudentAuditUpdate,
    TrailEntryResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/orders/{order_id}/audit", tags=["audits"])


@router.post(
    "",
    response_model=AuditReportResponse,
    dependencies=[Depends(check_permission("audits", "create"))],
)
async def open_audit(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AuditReportResponse:
    """Open (or return the already open) audit. The submitted snapshot is frozen on first open."""
    try:
        return await service.open_audit(db, current_user.tenant_id, order_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=AuditView,
    dependencies=[Depends(check_permission("audits", "read"))],
)
async def get_audit_view(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AuditView:
    try:
        return await service.get_audit_view(db, current_user.tenant_id, order_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/order",
    response_model=AuditEditResult,
    dependencies=[Depends(check_permission("audits", "update"))],
)
async def update_order_totals(
    order_id: UUID,
    payload: OrderTotalsAuditUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AuditEditResult:
    try:
        return await service.update_order_totals(db, current_user.tenant_id, order_id, payload, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/classes/{class_id}",
    response_model=AuditEditResult,
    dependencies=[Depends(check_permission("audits", "update"))],
)
async def update_class_count(
    order_id: UUID,
    class_id: UUID,
    payload: ClassAuditUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AuditEditResult:
    try:
        return await service.update_class_count(
            db, current_user.tenant_id, order_id, class_id, payload, current_user
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/students/{student_id}",
    response_model=AuditEditResult,
    dependencies=[Depends(check_permission("audits", "update"))],
)
async def update_student_counts(
    order_id: UUID,
    student_id: UUID,
    payload: StudentAuditUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AuditEditResult:
    try:
        return await service.update_student_counts(
            db, current_user.tenant_id, order_id, student_id, payload, current_user
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/trail",
    response_model=List[TrailEntryResponse],
    dependencies=[Depends(check_permission("audits", "read"))],
)
async def get_trail(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[TrailEntryResponse]:
    try:
        return await service.get_trail(db, current_user.tenant_id, order_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/complete",
    response_model=AuditReportResponse,
    dependencies=[Depends(check_permission("audits", "update"))],
)
async def complete_audit(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AuditReportResponse:
    """Seal the report. Later edits are rejected with 409."""
    try:
        return await service.complete_audit(db, current_user.tenant_id, order_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/export",
    response_model=AuditExport,
    dependencies=[Depends(check_permission("audits", "read"))],
)
async def export_report(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AuditExport:
    try:
        return await service.export_report(db, current_user.tenant_id, order_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
