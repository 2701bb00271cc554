"""Per-student audit outcome within one audit report: submitted vs collected counts."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid

from app.core.clock import utcnow
from app.db.session import Base


class StudentAudit(Base):
    __tablename__ = "student_audits"
    __table_args__ = (
        UniqueConstraint("audit_report_id", "student_id", name="uq_student_audit_report_student"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    audit_report_id = Column(
        Uuid, ForeignKey("audit_reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    student_name = Column(String(255), nullable=False)
    class_name = Column(String(100), nullable=True)
    submitted_light_garments = Column(Integer, nullable=False, default=0)
    submitted_dark_garments = Column(Integer, nullable=False, default=0)
    collected_light_garments = Column(Integer, nullable=False, default=0)
    collected_dark_garments = Column(Integer, nullable=False, default=0)
    light_garments_discrepancy = Column(Integer, nullable=False, default=0)
    dark_garments_discrepancy = Column(Integer, nullable=False, default=0)
    has_discrepancy = Column(Boolean, nullable=False, default=False)
    auditor_notes = Column(Text, nullable=True)
    audited_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
