from enum import Enum


class OrderStatus(str, Enum):
    UNSUBMITTED = "UNSUBMITTED"
    SUBMITTED = "SUBMITTED"
    CONFIRMED = "CONFIRMED"
    AUTO_CONFIRMED = "AUTO_CONFIRMED"
    QUEUED = "QUEUED"
    PICKUP = "PICKUP"
    ONGOING = "ONGOING"
    PACKAGING = "PACKAGING"
    DELIVERY = "DELIVERY"
    COMPLETED = "COMPLETED"
    DONE = "DONE"
    ABORTED = "ABORTED"


class StudentPhase(str, Enum):
    WAITING = "Waiting"
    PRINTING = "Printing"
    PACKAGING = "Packaging"
    COMPLETED = "Completed"


class ClassProgressStatus(str, Enum):
    PENDING = "Pending"
    PRINTING = "Printing"
    COMPLETED = "Completed"


class AuditReportStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class AuditEntityType(str, Enum):
    ORDER = "order"
    CLASS = "class"
    STUDENT = "student"


class ChangeTable(str, Enum):
    """Tables a live viewer can subscribe to, per order."""

    ORDERS = "orders"
    CLASSES = "classes"
    STUDENTS = "students"
    AUDIT_REPORTS = "audit_reports"
