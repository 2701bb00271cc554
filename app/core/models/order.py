"""
Order (a school's printing session). Root aggregate for classes and students.
Created together with its classes and students at approval time; status moves through the
fulfillment state machine (see api/v1/orders/state_machine.py).
"""

import uuid

from sqlalchemy import Column, DateTime, Float, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from app.core.enums import OrderStatus
from app.db.session import Base


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "external_ref", name="uq_order_tenant_external_ref"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    # Human-readable order code shown to schools and staff
    external_ref = Column(String(50), nullable=False)
    school_name = Column(String(255), nullable=True)
    status = Column(String(30), nullable=False, default=OrderStatus.SUBMITTED.value, index=True)

    scheduled_date = Column(DateTime(timezone=True), nullable=True)
    estimated_duration_hours = Column(Float, nullable=True)
    # Set when the order enters SUBMITTED; the auto-confirm job ages orders from here
    submitted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    # Stamped once when the order enters QUEUED; never rewritten afterwards
    queued_at = Column(DateTime(timezone=True), nullable=True)
    auto_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    total_students = Column(Integer, nullable=False, default=0)
    total_garments = Column(Integer, nullable=False, default=0)
    total_dark_garments = Column(Integer, nullable=False, default=0)
    total_light_garments = Column(Integer, nullable=False, default=0)
    total_classes_to_serve = Column(Integer, nullable=False, default=0)

    # Audit baseline mirrors; NULL means "use the current value"
    submitted_total_students = Column(Integer, nullable=True)
    submitted_total_garments = Column(Integer, nullable=True)
    submitted_total_dark_garments = Column(Integer, nullable=True)
    submitted_total_light_garments = Column(Integer, nullable=True)
    submitted_total_classes = Column(Integer, nullable=True)

    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    classes = relationship(
        "OrderClass",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderClass.name",
    )
