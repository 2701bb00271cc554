"""
Audit report: one per order audit cycle. submitted_data is written once (first audit access)
and never rewritten. status IN_PROGRESS -> COMPLETED is one-way (sealing).
"""

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from app.core.enums import AuditReportStatus
from app.db.session import Base

# none_as_null: a missing snapshot is SQL NULL, so "IS NULL" guards the single write.
SnapshotJSON = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


class AuditReport(Base):
    __tablename__ = "audit_reports"
    __table_args__ = (
        # At most one open audit per order
        Index(
            "uq_audit_reports_open_order",
            "order_id",
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    auditor_id = Column(Uuid, nullable=True)
    auditor_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=AuditReportStatus.IN_PROGRESS.value)

    discrepancies_found = Column(Boolean, nullable=False, default=False)
    students_with_discrepancies = Column(Integer, nullable=False, default=0)
    total_students_audited = Column(Integer, nullable=False, default=0)

    submitted_data = Column(SnapshotJSON, nullable=True)
    # Last trail sequence handed out for this report
    trail_sequence = Column(Integer, nullable=False, default=0)

    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    order = relationship("Order")
    trail_entries = relationship(
        "AuditTrailEntry",
        back_populates="audit_report",
        order_by="AuditTrailEntry.sequence",
        cascade="all, delete-orphan",
    )
