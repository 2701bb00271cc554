from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from app.core.enums import ClassProgressStatus, StudentPhase


class StudentProgressResponse(BaseModel):
    id: UUID
    full_name: str
    class_id: UUID
    phase: StudentPhase
    total_light_garment_count: int
    total_dark_garment_count: int
    printed_light_garment_count: int
    printed_dark_garment_count: int
    is_served: bool

    class Config:
        from_attributes = True


class ClassProgressResponse(BaseModel):
    id: UUID
    name: str
    status: ClassProgressStatus
    is_attended: bool
    total_students: int
    served_students: int
    percentage: float
    students: List[StudentProgressResponse] = []

    class Config:
        from_attributes = True


class CurrentPointerResponse(BaseModel):
    """Where printing is right now. Computed on every read, never stored."""

    class_id: UUID
    class_name: str
    student_id: UUID
    student_name: str

    class Config:
        from_attributes = True


class OrderProgressResponse(BaseModel):
    order_id: UUID
    status: str
    total_students: int
    served_students: int
    percentage: float
    total_classes: int
    completed_classes: int
    classes: List[ClassProgressResponse]
    current: Optional[CurrentPointerResponse] = None

    class Config:
        from_attributes = True
