from app.core.models.order import Order
from app.core.models.class_model import OrderClass
from app.core.models.student import Student
from app.core.models.audit_report import AuditReport
from app.core.models.audit_trail_entry import AuditTrailEntry
from app.core.models.student_audit import StudentAudit
from app.core.models.audit_log import OrderStatusLog

__all__ = [
    "Order",
    "OrderClass",
    "Student",
    "AuditReport",
    "AuditTrailEntry",
    "StudentAudit",
    "OrderStatusLog",
]
