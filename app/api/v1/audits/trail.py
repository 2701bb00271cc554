"""
Audit trail recorder. One append-only entry per changed field, written in the caller's
transaction; equal values record nothing. Sequence numbers come from the report's counter.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentUser
from app.core.clock import utcnow
from app.core.enums import AuditEntityType
from app.core.models import AuditReport, AuditTrailEntry

UPDATE = "UPDATE"


@dataclass(frozen=True)
class FieldChange:
    field: str
    old_value: Any
    new_value: Any


def diff_fields(obj, new_values: Mapping[str, Any]) -> List[FieldChange]:
    """Fields of obj whose value differs from new_values, in new_values order."""
    changes = []
    for field, new in new_values.items():
        old = getattr(obj, field)
        if old != new:
            changes.append(FieldChange(field=field, old_value=old, new_value=new))
    return changes


async def reserve_sequences(db: AsyncSession, report_id: UUID, count: int) -> int:
    """Atomically take `count` sequence numbers for a report; returns the first one."""
    await db.execute(
        update(AuditReport)
        .where(AuditReport.id == report_id)
        .values(trail_sequence=AuditReport.trail_sequence + count)
        .execution_options(synchronize_session=False)
    )
    last = (await db.execute(
        select(AuditReport.trail_sequence).where(AuditReport.id == report_id)
    )).scalar_one()
    return last - count + 1


async def record_changes(
    db: AsyncSession,
    report_id: UUID,
    actor: CurrentUser,
    entity_type: AuditEntityType,
    entity_id: UUID,
    entity_name: str,
    changes: List[FieldChange],
) -> List[AuditTrailEntry]:
    """Append one trail entry per change. Caller must commit."""
    if not changes:
        return []
    first = await reserve_sequences(db, report_id, len(changes))
    now = utcnow()
    entries = []
    for offset, change in enumerate(changes):
        entry = AuditTrailEntry(
            audit_report_id=report_id,
            sequence=first + offset,
            timestamp=now,
            actor_id=actor.id,
            actor_name=actor.name,
            action=UPDATE,
            entity_type=AuditEntityType(entity_type).value,
            entity_id=entity_id,
            entity_name=entity_name,
            field=change.field,
            old_value=change.old_value,
            new_value=change.new_value,
        )
        db.add(entry)
        entries.append(entry)
    return entries


async def list_trail(db: AsyncSession, report_id: UUID) -> List[AuditTrailEntry]:
    result = await db.execute(
        select(AuditTrailEntry)
        .where(AuditTrailEntry.audit_report_id == report_id)
        .order_by(AuditTrailEntry.sequence)
    )
    return list(result.scalars().all())


def as_values(changes: List[FieldChange]) -> Dict[str, Any]:
    return {c.field: c.new_value for c in changes}
