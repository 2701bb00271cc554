from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


# ----- Edits -----

class _AtLeastOneField(BaseModel):
    @model_validator(mode="after")
    def validate_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class OrderTotalsAuditUpdate(_AtLeastOneField):
    """total_garments is not accepted; it is always dark + light."""

    total_students: Optional[int] = Field(None, ge=0)
    total_dark_garments: Optional[int] = Field(None, ge=0)
    total_light_garments: Optional[int] = Field(None, ge=0)
    total_classes_to_serve: Optional[int] = Field(None, ge=0)


class ClassAuditUpdate(BaseModel):
    total_students_to_serve_in_class: int = Field(..., ge=0)


class StudentAuditUpdate(_AtLeastOneField):
    total_light_garment_count: Optional[int] = Field(None, ge=0)
    total_dark_garment_count: Optional[int] = Field(None, ge=0)
    auditor_notes: Optional[str] = Field(None, max_length=2000)


# ----- Responses -----

class TrailEntryResponse(BaseModel):
    id: UUID
    sequence: int
    timestamp: datetime
    actor_id: Optional[UUID] = None
    actor_name: Optional[str] = None
    action: str
    entity_type: str
    entity_id: UUID
    entity_name: Optional[str] = None
    field: str
    old_value: Any = None
    new_value: Any = None

    class Config:
        from_attributes = True


class ReportDetails(BaseModel):
    audit_trail: List[TrailEntryResponse] = []


class AuditReportResponse(BaseModel):
    id: UUID
    order_id: UUID
    auditor_id: Optional[UUID] = None
    auditor_name: Optional[str] = None
    status: str
    discrepancies_found: bool
    students_with_discrepancies: int
    total_students_audited: int
    submitted_data: Optional[Dict[str, Any]] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    report_details: ReportDetails = ReportDetails()


class TotalComparison(BaseModel):
    field: str
    submitted: int
    current: int
    difference: int


class ClassDiscrepancy(BaseModel):
    """Display-only: snapshot count vs current count."""

    id: UUID
    name: str
    submitted_students_count: int
    current_students_count: int
    difference: int
    has_discrepancy: bool


class StudentComparison(BaseModel):
    id: UUID
    full_name: str
    class_id: UUID
    class_name: Optional[str] = None
    submitted_light_garment_count: int
    submitted_dark_garment_count: int
    current_light_garment_count: int
    current_dark_garment_count: int
    light_garments_discrepancy: int
    dark_garments_discrepancy: int
    has_discrepancy: bool
    is_audited: bool


class AuditView(BaseModel):
    report: AuditReportResponse
    session: List[TotalComparison]
    classes: List[ClassDiscrepancy]
    students: List[StudentComparison]


class StudentAuditResponse(BaseModel):
    id: UUID
    student_id: UUID
    student_name: str
    class_name: Optional[str] = None
    submitted_light_garments: int
    submitted_dark_garments: int
    collected_light_garments: int
    collected_dark_garments: int
    light_garments_discrepancy: int
    dark_garments_discrepancy: int
    has_discrepancy: bool
    auditor_notes: Optional[str] = None
    audited_at: datetime

    class Config:
        from_attributes = True


class AuditEditResult(BaseModel):
    """changes lists the trail entries this edit appended (empty when nothing differed)."""

    report: AuditReportResponse
    changes: List[TrailEntryResponse]


class AuditExport(BaseModel):
    """Everything a report renderer needs."""

    report: AuditReportResponse
    snapshot: Optional[Dict[str, Any]] = None
    audit_trail: List[TrailEntryResponse]
    student_audits: List[StudentAuditResponse]
    class_discrepancies: List[ClassDiscrepancy]
