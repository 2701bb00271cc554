"""
Audit reconciliation: open an audit (freezing the submitted snapshot), edit collected counts
with a field-level trail, track discrepancies, seal the report.

Edits target the order's current report: the open one, else the most recent. Once that report is
sealed every edit raises SealedReport and nothing is written.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentUser
from app.core.clock import as_utc, utcnow
from app.core.enums import AuditEntityType, AuditReportStatus, ChangeTable
from app.core.exceptions import NotFound, SealedReport, ServiceError, StateConflict
from app.core.models import AuditReport, Order, OrderClass, Student, StudentAudit
from app.realtime.notifier import get_change_notifier

from . import snapshot as snapshots
from . import trail
from .schemas import (
    AuditEditResult,
    AuditExport,
    AuditReportResponse,
    AuditView,
    ClassAuditUpdate,
    ClassDiscrepancy,
    OrderTotalsAuditUpdate,
    ReportDetails,
    StudentAuditResponse,
    StudentAuditUpdate,
    StudentComparison,
    TotalComparison,
    TrailEntryResponse,
)

logger = logging.getLogger(__name__)

# snapshot session key -> Order column
SESSION_FIELDS = {
    "total_students": "total_students",
    "total_garments": "total_garments",
    "total_dark_garments": "total_dark_garments",
    "total_light_garments": "total_light_garments",
    "total_classes": "total_classes_to_serve",
}


# ----- Loading -----

async def _get_order(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> Order:
    order = (await db.execute(
        select(Order).where(Order.id == order_id, Order.tenant_id == tenant_id)
    )).scalar_one_or_none()
    if not order:
        raise NotFound("Order not found")
    return order


async def _load_rows(db: AsyncSession, order_id: UUID) -> Tuple[List[OrderClass], List[Student]]:
    classes = (await db.execute(
        select(OrderClass).where(OrderClass.order_id == order_id).order_by(OrderClass.name, OrderClass.id)
    )).scalars().all()
    students = (await db.execute(
        select(Student).where(Student.order_id == order_id).order_by(Student.full_name, Student.id)
    )).scalars().all()
    return list(classes), list(students)


async def _open_report(db: AsyncSession, order_id: UUID) -> Optional[AuditReport]:
    return (await db.execute(
        select(AuditReport).where(
            AuditReport.order_id == order_id,
            AuditReport.status == AuditReportStatus.IN_PROGRESS.value,
        )
    )).scalar_one_or_none()


async def _current_report(db: AsyncSession, order_id: UUID) -> AuditReport:
    report = await _open_report(db, order_id)
    if report is None:
        report = (await db.execute(
            select(AuditReport)
            .where(AuditReport.order_id == order_id)
            .order_by(AuditReport.created_at.desc(), AuditReport.id)
            .limit(1)
        )).scalar_one_or_none()
    if report is None:
        raise NotFound("No audit has been opened for this order")
    return report


def _ensure_open(report: AuditReport) -> None:
    if report.status == AuditReportStatus.COMPLETED.value:
        raise SealedReport()


async def _lock_open_report(db: AsyncSession, report: AuditReport) -> None:
    """Guarded touch of the report row; serializes edits against sealing. Caller must commit."""
    result = await db.execute(
        update(AuditReport)
        .where(AuditReport.id == report.id, AuditReport.status == AuditReportStatus.IN_PROGRESS.value)
        .values(updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise SealedReport()


async def _ensure_snapshot(db: AsyncSession, order: Order, report: AuditReport) -> Dict[str, Any]:
    if report.submitted_data is not None:
        return report.submitted_data
    classes, students = await _load_rows(db, order.id)
    await snapshots.freeze_snapshot(db, report.id, snapshots.build_snapshot(order, classes, students))
    return (await db.execute(
        select(AuditReport.submitted_data).where(AuditReport.id == report.id)
    )).scalar_one()


# ----- Response builders -----

def _report_to_response(report: AuditReport, entries=None) -> AuditReportResponse:
    return AuditReportResponse(
        id=report.id,
        order_id=report.order_id,
        auditor_id=report.auditor_id,
        auditor_name=report.auditor_name,
        status=report.status,
        discrepancies_found=report.discrepancies_found,
        students_with_discrepancies=report.students_with_discrepancies,
        total_students_audited=report.total_students_audited,
        submitted_data=report.submitted_data,
        completed_at=as_utc(report.completed_at),
        created_at=as_utc(report.created_at),
        updated_at=as_utc(report.updated_at),
        report_details=ReportDetails(
            audit_trail=[TrailEntryResponse.model_validate(e) for e in (entries or [])]
        ),
    )


async def _report_with_trail(db: AsyncSession, report: AuditReport) -> AuditReportResponse:
    return _report_to_response(report, await trail.list_trail(db, report.id))


def _session_comparison(snapshot: Dict[str, Any], order: Order) -> List[TotalComparison]:
    session = (snapshot or {}).get("session", {})
    items = []
    for key, column in SESSION_FIELDS.items():
        current = getattr(order, column) or 0
        submitted = session.get(key, current)
        items.append(TotalComparison(field=key, submitted=submitted, current=current, difference=current - submitted))
    return items


def _class_discrepancies(snapshot: Dict[str, Any], classes: List[OrderClass]) -> List[ClassDiscrepancy]:
    items = []
    for c in classes:
        entry = snapshots.snapshot_class(snapshot, c.id)
        current = c.total_students_to_serve_in_class or 0
        if entry is not None:
            submitted = entry["submitted_students_count"]
        elif c.submitted_students_count is not None:
            submitted = c.submitted_students_count
        else:
            submitted = current
        items.append(ClassDiscrepancy(
            id=c.id,
            name=c.name,
            submitted_students_count=submitted,
            current_students_count=current,
            difference=current - submitted,
            has_discrepancy=current != submitted,
        ))
    return items


def _submitted_counts(snapshot: Dict[str, Any], student: Student) -> Tuple[int, int]:
    entry = snapshots.snapshot_student(snapshot, student.id)
    if entry is not None:
        return entry["submitted_light_garment_count"], entry["submitted_dark_garment_count"]
    light = student.submitted_light_garment_count
    dark = student.submitted_dark_garment_count
    return (
        student.total_light_garment_count if light is None else light,
        student.total_dark_garment_count if dark is None else dark,
    )


def _student_comparison(snapshot: Dict[str, Any], student: Student, class_name: Optional[str]) -> StudentComparison:
    sub_light, sub_dark = _submitted_counts(snapshot, student)
    light_diff = student.total_light_garment_count - sub_light
    dark_diff = student.total_dark_garment_count - sub_dark
    return StudentComparison(
        id=student.id,
        full_name=student.full_name,
        class_id=student.class_id,
        class_name=class_name,
        submitted_light_garment_count=sub_light,
        submitted_dark_garment_count=sub_dark,
        current_light_garment_count=student.total_light_garment_count,
        current_dark_garment_count=student.total_dark_garment_count,
        light_garments_discrepancy=light_diff,
        dark_garments_discrepancy=dark_diff,
        has_discrepancy=light_diff != 0 or dark_diff != 0,
        is_audited=bool(student.is_audited),
    )


async def _publish(order_id: UUID, *changes: Tuple[ChangeTable, Optional[UUID]]) -> None:
    notifier = get_change_notifier()
    for table, row_id in changes:
        await notifier.publish(table, order_id, "UPDATE", row_id)


# ----- Operations -----

async def open_audit(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    actor: CurrentUser,
) -> AuditReportResponse:
    """Return the order's open report, creating it if needed, with the snapshot frozen."""
    order = await _get_order(db, tenant_id, order_id)
    report = await _open_report(db, order.id)
    created = False
    if report is None:
        report = AuditReport(
            tenant_id=tenant_id,
            order_id=order.id,
            auditor_id=actor.id,
            auditor_name=actor.name,
            status=AuditReportStatus.IN_PROGRESS.value,
        )
        db.add(report)
        try:
            await db.flush()
            created = True
        except IntegrityError:
            # Another auditor opened it first
            await db.rollback()
            order = await _get_order(db, tenant_id, order_id)
            report = await _open_report(db, order.id)
            if report is None:
                raise ServiceError("Could not open the audit; retry", status.HTTP_409_CONFLICT)

    classes, students = await _load_rows(db, order.id)
    wrote = await snapshots.freeze_snapshot(db, report.id, snapshots.build_snapshot(order, classes, students))
    await db.commit()
    await db.refresh(report)
    if created:
        logger.info("Audit %s opened for order %s by %s", report.id, order.id, actor.id)
        await get_change_notifier().publish(ChangeTable.AUDIT_REPORTS, order.id, "INSERT", report.id)
    elif wrote:
        await get_change_notifier().publish(ChangeTable.AUDIT_REPORTS, order.id, "UPDATE", report.id)
    return await _report_with_trail(db, report)


async def get_audit_view(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> AuditView:
    order = await _get_order(db, tenant_id, order_id)
    report = await _current_report(db, order.id)
    classes, students = await _load_rows(db, order.id)
    snapshot = report.submitted_data or {}
    names = {c.id: c.name for c in classes}
    return AuditView(
        report=await _report_with_trail(db, report),
        session=_session_comparison(snapshot, order),
        classes=_class_discrepancies(snapshot, classes),
        students=[_student_comparison(snapshot, s, names.get(s.class_id)) for s in students],
    )


async def load_audit_view(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> Optional[Dict[str, Any]]:
    """JSON-ready audit view for live viewers; None while the order has no report."""
    try:
        view = await get_audit_view(db, tenant_id, order_id)
    except NotFound:
        return None
    return view.model_dump(mode="json")


async def _edit_result(db: AsyncSession, report: AuditReport, entries) -> AuditEditResult:
    await db.refresh(report)
    return AuditEditResult(
        report=await _report_with_trail(db, report),
        changes=[TrailEntryResponse.model_validate(e) for e in entries],
    )


async def update_order_totals(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    payload: OrderTotalsAuditUpdate,
    actor: CurrentUser,
) -> AuditEditResult:
    """Edit order totals. total_garments is re-derived and trailed like any other field."""
    order = await _get_order(db, tenant_id, order_id)
    report = await _current_report(db, order.id)
    _ensure_open(report)

    values = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    dark = values.get("total_dark_garments", order.total_dark_garments)
    light = values.get("total_light_garments", order.total_light_garments)
    values["total_garments"] = dark + light
    changes = trail.diff_fields(order, values)
    if not changes:
        return await _edit_result(db, report, [])

    await _lock_open_report(db, report)
    entries = await trail.record_changes(
        db, report.id, actor, AuditEntityType.ORDER, order.id, order.external_ref, changes
    )
    for field, value in trail.as_values(changes).items():
        setattr(order, field, value)
    await db.commit()
    logger.info("Audit %s: order %s totals edited %s", report.id, order.id, [c.field for c in changes])
    await _publish(order.id, (ChangeTable.ORDERS, order.id), (ChangeTable.AUDIT_REPORTS, report.id))
    return await _edit_result(db, report, entries)


async def update_class_count(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    class_id: UUID,
    payload: ClassAuditUpdate,
    actor: CurrentUser,
) -> AuditEditResult:
    order = await _get_order(db, tenant_id, order_id)
    report = await _current_report(db, order.id)
    _ensure_open(report)
    school_class = (await db.execute(
        select(OrderClass).where(OrderClass.id == class_id, OrderClass.order_id == order.id)
    )).scalar_one_or_none()
    if not school_class:
        raise NotFound("Class not found")

    changes = trail.diff_fields(
        school_class, {"total_students_to_serve_in_class": payload.total_students_to_serve_in_class}
    )
    if not changes:
        return await _edit_result(db, report, [])

    await _lock_open_report(db, report)
    entries = await trail.record_changes(
        db, report.id, actor, AuditEntityType.CLASS, school_class.id, school_class.name, changes
    )
    school_class.total_students_to_serve_in_class = payload.total_students_to_serve_in_class
    await db.commit()
    await _publish(order.id, (ChangeTable.CLASSES, school_class.id), (ChangeTable.AUDIT_REPORTS, report.id))
    return await _edit_result(db, report, entries)


async def update_student_counts(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    student_id: UUID,
    payload: StudentAuditUpdate,
    actor: CurrentUser,
) -> AuditEditResult:
    """
    Save a student's collected counts. Marks the student audited, fills the submitted baseline
    from the snapshot, and keeps the report's discrepancy counters in step.
    """
    order = await _get_order(db, tenant_id, order_id)
    report = await _current_report(db, order.id)
    _ensure_open(report)
    student = (await db.execute(
        select(Student).where(Student.id == student_id, Student.order_id == order.id)
    )).scalar_one_or_none()
    if not student:
        raise NotFound("Student not found")
    school_class = (await db.execute(
        select(OrderClass).where(OrderClass.id == student.class_id)
    )).scalar_one_or_none()

    values = {
        k: v
        for k, v in payload.model_dump(exclude_unset=True).items()
        if k in ("total_light_garment_count", "total_dark_garment_count") and v is not None
    }
    changes = trail.diff_fields(student, values)
    new_light = values.get("total_light_garment_count", student.total_light_garment_count)
    new_dark = values.get("total_dark_garment_count", student.total_dark_garment_count)
    if student.is_served and (
        new_light > student.printed_light_garment_count or new_dark > student.printed_dark_garment_count
    ):
        raise StateConflict("Student is already served; counts cannot exceed what was printed")

    await _lock_open_report(db, report)
    snapshot = await _ensure_snapshot(db, order, report)
    sub_light, sub_dark = _submitted_counts(snapshot, student)

    entries = await trail.record_changes(
        db, report.id, actor, AuditEntityType.STUDENT, student.id, student.full_name, changes
    )
    for field, value in trail.as_values(changes).items():
        setattr(student, field, value)
    if student.submitted_light_garment_count is None:
        student.submitted_light_garment_count = sub_light
    if student.submitted_dark_garment_count is None:
        student.submitted_dark_garment_count = sub_dark
    student.is_audited = True

    light_diff = student.total_light_garment_count - sub_light
    dark_diff = student.total_dark_garment_count - sub_dark
    has_discrepancy = light_diff != 0 or dark_diff != 0

    row = (await db.execute(
        select(StudentAudit).where(
            StudentAudit.audit_report_id == report.id,
            StudentAudit.student_id == student.id,
        )
    )).scalar_one_or_none()
    counters: Dict[str, Any] = {}
    if row is None:
        row = StudentAudit(
            audit_report_id=report.id,
            student_id=student.id,
            student_name=student.full_name,
            class_name=school_class.name if school_class else None,
        )
        db.add(row)
        previous = False
        counters["total_students_audited"] = AuditReport.total_students_audited + 1
    else:
        previous = bool(row.has_discrepancy)

    row.submitted_light_garments = sub_light
    row.submitted_dark_garments = sub_dark
    row.collected_light_garments = student.total_light_garment_count
    row.collected_dark_garments = student.total_dark_garment_count
    row.light_garments_discrepancy = light_diff
    row.dark_garments_discrepancy = dark_diff
    row.has_discrepancy = has_discrepancy
    row.audited_at = utcnow()
    if "auditor_notes" in payload.model_fields_set:
        row.auditor_notes = payload.auditor_notes

    if has_discrepancy and not previous:
        counters["students_with_discrepancies"] = AuditReport.students_with_discrepancies + 1
    elif previous and not has_discrepancy:
        counters["students_with_discrepancies"] = AuditReport.students_with_discrepancies - 1
    if has_discrepancy:
        # Sticky: never reset once any discrepancy was seen
        counters["discrepancies_found"] = True
    if counters:
        await db.execute(
            update(AuditReport)
            .where(AuditReport.id == report.id)
            .values(**counters)
            .execution_options(synchronize_session=False)
        )

    await db.commit()
    logger.info(
        "Audit %s: student %s saved (changes=%d, discrepancy=%s)",
        report.id, student.id, len(changes), has_discrepancy,
    )
    await _publish(order.id, (ChangeTable.STUDENTS, student.id), (ChangeTable.AUDIT_REPORTS, report.id))
    return await _edit_result(db, report, entries)


async def complete_audit(
    db: AsyncSession,
    tenant_id: UUID,
    order_id: UUID,
    actor: CurrentUser,
) -> AuditReportResponse:
    """Seal the report. Sealing an already sealed report changes nothing."""
    order = await _get_order(db, tenant_id, order_id)
    report = await _current_report(db, order.id)
    if report.status == AuditReportStatus.COMPLETED.value:
        return await _report_with_trail(db, report)

    now = utcnow()
    result = await db.execute(
        update(AuditReport)
        .where(AuditReport.id == report.id, AuditReport.status == AuditReportStatus.IN_PROGRESS.value)
        .values(status=AuditReportStatus.COMPLETED.value, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        await db.refresh(report)
        return await _report_with_trail(db, report)

    await db.commit()
    await db.refresh(report)
    logger.info("Audit %s sealed by %s", report.id, actor.id)
    await _publish(order.id, (ChangeTable.AUDIT_REPORTS, report.id))
    return await _report_with_trail(db, report)


async def get_trail(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> List[TrailEntryResponse]:
    order = await _get_order(db, tenant_id, order_id)
    report = await _current_report(db, order.id)
    return [TrailEntryResponse.model_validate(e) for e in await trail.list_trail(db, report.id)]


async def export_report(db: AsyncSession, tenant_id: UUID, order_id: UUID) -> AuditExport:
    order = await _get_order(db, tenant_id, order_id)
    report = await _current_report(db, order.id)
    classes, _ = await _load_rows(db, order.id)
    entries = await trail.list_trail(db, report.id)
    rows = (await db.execute(
        select(StudentAudit)
        .where(StudentAudit.audit_report_id == report.id)
        .order_by(StudentAudit.class_name, StudentAudit.student_name)
    )).scalars().all()
    return AuditExport(
        report=_report_to_response(report, entries),
        snapshot=report.submitted_data,
        audit_trail=[TrailEntryResponse.model_validate(e) for e in entries],
        student_audits=[StudentAuditResponse.model_validate(r) for r in rows],
        class_discrepancies=_class_discrepancies(report.submitted_data or {}, classes),
    )
