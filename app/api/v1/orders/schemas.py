from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.core.enums import OrderStatus


# ----- Approval payload (order + classes + students created together) -----

class StudentCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    light_garment_count: int = Field(0, ge=0)
    dark_garment_count: int = Field(0, ge=0)


class ClassCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    total_students_to_serve_in_class: Optional[int] = Field(
        None, ge=0, description="Defaults to the number of students listed"
    )
    students: List[StudentCreate] = Field(default_factory=list)


class OrderCreate(BaseModel):
    """Approved submission. Totals are optional; when given they must reconcile with the roster."""

    external_ref: str = Field(..., min_length=1, max_length=50)
    school_name: Optional[str] = Field(None, max_length=255)
    status: OrderStatus = Field(OrderStatus.SUBMITTED, description="UNSUBMITTED or SUBMITTED")
    total_students: Optional[int] = Field(None, ge=0)
    total_garments: Optional[int] = Field(None, ge=0)
    total_dark_garments: Optional[int] = Field(None, ge=0)
    total_light_garments: Optional[int] = Field(None, ge=0)
    classes: List[ClassCreate] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_initial_status_and_class_names(self) -> "OrderCreate":
        if self.status not in (OrderStatus.UNSUBMITTED, OrderStatus.SUBMITTED):
            raise ValueError("New orders start as UNSUBMITTED or SUBMITTED")
        names = [c.name.strip().lower() for c in self.classes]
        if len(names) != len(set(names)):
            raise ValueError("Class names must be unique within an order")
        return self


# ----- Transitions -----

class OrderTransitionRequest(BaseModel):
    target_status: str = Field(..., description="Target status, e.g. CONFIRMED, PICKUP, ONGOING, ABORTED")
    remarks: Optional[str] = Field(None, max_length=2000)


class OrderScheduleRequest(BaseModel):
    scheduled_date: datetime
    remarks: Optional[str] = Field(None, max_length=2000)


# ----- Responses -----

class CountdownResponse(BaseModel):
    is_overdue: bool
    display: str
    seconds_remaining: int

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    external_ref: str
    school_name: Optional[str] = None
    status: str
    scheduled_date: Optional[datetime] = None
    estimated_duration_hours: Optional[float] = None
    duration_display: str
    submitted_at: Optional[datetime] = None
    queued_at: Optional[datetime] = None
    auto_confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_students: int
    total_garments: int
    total_dark_garments: int
    total_light_garments: int
    total_classes_to_serve: int
    submitted_total_students: Optional[int] = None
    submitted_total_garments: Optional[int] = None
    submitted_total_dark_garments: Optional[int] = None
    submitted_total_light_garments: Optional[int] = None
    submitted_total_classes: Optional[int] = None
    countdown: Optional[CountdownResponse] = None
    created_at: datetime
    updated_at: datetime


class TransitionResult(BaseModel):
    """changed=False means the request matched the current state and nothing was written."""

    changed: bool
    from_status: str
    order: OrderResponse


class QueuedOrderItem(BaseModel):
    id: UUID
    external_ref: str
    school_name: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    estimated_duration_hours: Optional[float] = None
    duration_display: str
    total_garments: int
    countdown: Optional[CountdownResponse] = None


class QueueBoardResponse(BaseModel):
    orders: List[QueuedOrderItem]
    has_overdue: bool
    status_counts: Dict[str, int]


class OrderStatusLogEntry(BaseModel):
    id: UUID
    order_id: UUID
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    action: str
    performed_by: Optional[UUID] = None
    performed_by_role: Optional[str] = None
    timestamp: datetime
    remarks: Optional[str] = None

    class Config:
        from_attributes = True
