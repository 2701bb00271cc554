"""Roster group inside an order. Model named OrderClass to avoid Python 'class' keyword."""
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from app.db.session import Base


class OrderClass(Base):
    """A class of students within one order. Student count may disagree with the roster while an audit is editing it."""

    __tablename__ = "classes"
    __table_args__ = (
        UniqueConstraint("order_id", "name", name="uq_class_order_name"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    is_attended = Column(Boolean, nullable=False, default=False)
    total_students_to_serve_in_class = Column(Integer, nullable=False, default=0)
    submitted_students_count = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    order = relationship("Order", back_populates="classes")
    students = relationship(
        "Student",
        back_populates="school_class",
        cascade="all, delete-orphan",
        order_by="Student.full_name",
    )
