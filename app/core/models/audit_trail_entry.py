"""Audit trail: append-only field-level change history per audit report. Rows are never updated or deleted."""

import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from app.db.session import Base


class AuditTrailEntry(Base):
    """One changed field: who changed what, when, from what, to what."""

    __tablename__ = "audit_trail_entries"
    __table_args__ = (
        UniqueConstraint("audit_report_id", "sequence", name="uq_audit_trail_report_sequence"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    audit_report_id = Column(
        Uuid, ForeignKey("audit_reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sequence = Column(Integer, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    actor_id = Column(Uuid, nullable=True)
    actor_name = Column(String(255), nullable=True)
    action = Column(String(30), nullable=False)  # UPDATE
    entity_type = Column(String(20), nullable=False)  # order | class | student
    entity_id = Column(Uuid, nullable=False)
    entity_name = Column(String(255), nullable=True)
    field = Column(String(100), nullable=False)
    old_value = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)
    new_value = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    audit_report = relationship("AuditReport", back_populates="trail_entries")
