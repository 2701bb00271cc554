"""
Status logging for order state changes. Call on every accepted transition.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.models import OrderStatusLog


async def log_status_change(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    action: str,
    *,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    performed_by: Optional[UUID] = None,
    performed_by_role: Optional[str] = None,
    remarks: Optional[str] = None,
) -> None:
    """Append one status log entry. Caller must commit."""
    entry = OrderStatusLog(
        tenant_id=tenant_id,
        order_id=order_id,
        from_status=from_status,
        to_status=to_status,
        action=action,
        performed_by=performed_by,
        performed_by_role=performed_by_role,
        remarks=remarks,
        timestamp=utcnow(),
    )
    db.add(entry)


async def list_status_changes(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> List[OrderStatusLog]:
    result = await db.execute(
        select(OrderStatusLog)
        .where(OrderStatusLog.tenant_id == tenant_id, OrderStatusLog.order_id == order_id)
        .order_by(OrderStatusLog.timestamp, OrderStatusLog.id)
    )
    return list(result.scalars().all())
