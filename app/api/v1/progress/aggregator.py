"""
Progress aggregation: per-student phase, per-class status, per-order completion and the
current class/student pointer. Pure functions over rows already read from the store; no caching,
so any number of viewers can run them concurrently and converge on the same answer.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from app.core.enums import ClassProgressStatus, StudentPhase


def student_phase(student) -> StudentPhase:
    """First match wins: served, both colours printed, anything printed, else waiting."""
    if student.is_served:
        return StudentPhase.COMPLETED
    if student.light_garments_printed and student.dark_garments_printed:
        return StudentPhase.PACKAGING
    if (student.printed_light_garment_count or 0) > 0 or (student.printed_dark_garment_count or 0) > 0:
        return StudentPhase.PRINTING
    return StudentPhase.WAITING


def class_status(phases: Sequence[StudentPhase]) -> ClassProgressStatus:
    # An empty roster has nothing done yet.
    if not phases:
        return ClassProgressStatus.PENDING
    if all(p == StudentPhase.COMPLETED for p in phases):
        return ClassProgressStatus.COMPLETED
    if all(p == StudentPhase.WAITING for p in phases):
        return ClassProgressStatus.PENDING
    return ClassProgressStatus.PRINTING


def completion_percentage(served: int, total: int) -> float:
    if not total or total <= 0:
        return 0.0
    return max(0.0, min(100.0, served / total * 100))


def _student_key(student):
    return (student.full_name or "", str(student.id))


def _class_key(school_class):
    return (school_class.name or "", str(school_class.id))


@dataclass
class StudentProgressItem:
    id: UUID
    full_name: str
    class_id: UUID
    phase: StudentPhase
    total_light_garment_count: int
    total_dark_garment_count: int
    printed_light_garment_count: int
    printed_dark_garment_count: int
    is_served: bool


@dataclass
class ClassProgressItem:
    id: UUID
    name: str
    status: ClassProgressStatus
    is_attended: bool
    total_students: int
    served_students: int
    percentage: float
    students: List[StudentProgressItem] = field(default_factory=list)


@dataclass
class CurrentPointer:
    class_id: UUID
    class_name: str
    student_id: UUID
    student_name: str


@dataclass
class OrderProgress:
    order_id: UUID
    status: str
    total_students: int
    served_students: int
    percentage: float
    total_classes: int
    completed_classes: int
    classes: List[ClassProgressItem]
    current: Optional[CurrentPointer]


def current_pointer(classes: Iterable, students: Iterable) -> Optional[CurrentPointer]:
    """
    First class by (name, id) that still has an unserved student, and the first unserved student
    in it by (full_name, id). Deterministic so concurrent viewers agree without coordinating.
    """
    by_class = {}
    for s in students:
        if not s.is_served:
            by_class.setdefault(s.class_id, []).append(s)
    for c in sorted(classes, key=_class_key):
        waiting = by_class.get(c.id)
        if waiting:
            first = min(waiting, key=_student_key)
            return CurrentPointer(
                class_id=c.id,
                class_name=c.name,
                student_id=first.id,
                student_name=first.full_name,
            )
    return None


def student_item(s) -> StudentProgressItem:
    return StudentProgressItem(
        id=s.id,
        full_name=s.full_name,
        class_id=s.class_id,
        phase=student_phase(s),
        total_light_garment_count=s.total_light_garment_count or 0,
        total_dark_garment_count=s.total_dark_garment_count or 0,
        printed_light_garment_count=s.printed_light_garment_count or 0,
        printed_dark_garment_count=s.printed_dark_garment_count or 0,
        is_served=bool(s.is_served),
    )


def class_progress(school_class, students: Iterable, include_students: bool = True) -> ClassProgressItem:
    items = [student_item(s) for s in sorted(students, key=_student_key)]
    served = sum(1 for i in items if i.is_served)
    # Class percentage is relative to the roster actually present
    return ClassProgressItem(
        id=school_class.id,
        name=school_class.name,
        status=class_status([i.phase for i in items]),
        is_attended=bool(school_class.is_attended),
        total_students=len(items),
        served_students=served,
        percentage=completion_percentage(served, len(items)),
        students=items if include_students else [],
    )


def order_progress(
    order,
    classes: Iterable,
    students: Iterable,
    include_pointer: bool = True,
    include_students: bool = False,
) -> OrderProgress:
    classes = sorted(classes, key=_class_key)
    students = list(students)
    by_class = {}
    for s in students:
        by_class.setdefault(s.class_id, []).append(s)

    class_items = [class_progress(c, by_class.get(c.id, []), include_students) for c in classes]
    served = sum(1 for s in students if s.is_served)
    return OrderProgress(
        order_id=order.id,
        status=order.status,
        total_students=order.total_students or 0,
        served_students=served,
        percentage=completion_percentage(served, order.total_students or 0),
        total_classes=order.total_classes_to_serve or len(classes),
        completed_classes=sum(1 for c in class_items if c.status == ClassProgressStatus.COMPLETED),
        classes=class_items,
        current=current_pointer(classes, students) if include_pointer else None,
    )
