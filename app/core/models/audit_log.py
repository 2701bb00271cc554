"""
Status log for order state changes. Every accepted status transition is logged; rejected and
no-op transitions are not.
"""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from app.db.session import Base


class OrderStatusLog(Base):
    __tablename__ = "order_status_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(String(30), nullable=True)
    to_status = Column(String(30), nullable=True)
    action = Column(String(100), nullable=False)
    performed_by = Column(Uuid, nullable=True)
    performed_by_role = Column(String(50), nullable=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    remarks = Column(Text, nullable=True)

    order = relationship("Order", foreign_keys=[order_id])
