"""
Submitted-data snapshot: the baseline an audit compares against. Frozen once per report, on the
first audit access; the conditional write makes every later attempt a no-op.
"""

from typing import Any, Dict, Iterable, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import AuditReport


def _pick(submitted, current) -> int:
    return current if submitted is None else submitted


def build_snapshot(order, classes: Iterable, students: Iterable) -> Dict[str, Any]:
    """Submitted values, falling back to current values where nothing was submitted."""
    classes = sorted(classes, key=lambda c: (c.name or "", str(c.id)))
    students = sorted(students, key=lambda s: (s.full_name or "", str(s.id)))
    return {
        "session": {
            "total_students": _pick(order.submitted_total_students, order.total_students),
            "total_garments": _pick(order.submitted_total_garments, order.total_garments),
            "total_dark_garments": _pick(order.submitted_total_dark_garments, order.total_dark_garments),
            "total_light_garments": _pick(order.submitted_total_light_garments, order.total_light_garments),
            "total_classes": _pick(order.submitted_total_classes, order.total_classes_to_serve),
        },
        "classes": [
            {
                "id": str(c.id),
                "name": c.name,
                "submitted_students_count": _pick(c.submitted_students_count, c.total_students_to_serve_in_class),
            }
            for c in classes
        ],
        "students": [
            {
                "id": str(s.id),
                "full_name": s.full_name,
                "class_id": str(s.class_id),
                "submitted_light_garment_count": _pick(s.submitted_light_garment_count, s.total_light_garment_count),
                "submitted_dark_garment_count": _pick(s.submitted_dark_garment_count, s.total_dark_garment_count),
            }
            for s in students
        ],
    }


async def freeze_snapshot(db: AsyncSession, report_id, snapshot: Dict[str, Any]) -> bool:
    """Write the snapshot unless one exists. True when this call wrote it. Caller must commit."""
    result = await db.execute(
        update(AuditReport)
        .where(AuditReport.id == report_id, AuditReport.submitted_data.is_(None))
        .values(submitted_data=snapshot)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def snapshot_student(snapshot: Optional[Dict[str, Any]], student_id) -> Optional[Dict[str, Any]]:
    for entry in (snapshot or {}).get("students", []):
        if entry["id"] == str(student_id):
            return entry
    return None


def snapshot_class(snapshot: Optional[Dict[str, Any]], class_id) -> Optional[Dict[str, Any]]:
    for entry in (snapshot or {}).get("classes", []):
        if entry["id"] == str(class_id):
            return entry
    return None
