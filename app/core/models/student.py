"""
Student: one garment-count record in a class. order_id is redundant with class -> order and kept
for order-wide filtering.

Counts:
- total_*: collected on site (current); auditors edit these.
- submitted_*: the school's submitted baseline; NULL until the student is audited.
- printed_*: what the printing team has produced so far.
"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from app.db.session import Base


class Student(Base):
    __tablename__ = "students"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)

    total_light_garment_count = Column(Integer, nullable=False, default=0)
    total_dark_garment_count = Column(Integer, nullable=False, default=0)
    submitted_light_garment_count = Column(Integer, nullable=True)
    submitted_dark_garment_count = Column(Integer, nullable=True)
    printed_light_garment_count = Column(Integer, nullable=False, default=0)
    printed_dark_garment_count = Column(Integer, nullable=False, default=0)

    light_garments_printed = Column(Boolean, nullable=False, default=False)
    dark_garments_printed = Column(Boolean, nullable=False, default=False)
    is_served = Column(Boolean, nullable=False, default=False)
    is_audited = Column(Boolean, nullable=False, default=False)
    printing_done_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    school_class = relationship("OrderClass", back_populates="students")
