from typing import Optional

from pydantic import BaseModel, Field, model_validator


class StudentProgressUpdate(BaseModel):
    """Printing-floor update for one student. Only provided fields are applied."""

    printed_light_garment_count: Optional[int] = Field(None, ge=0)
    printed_dark_garment_count: Optional[int] = Field(None, ge=0)
    light_garments_printed: Optional[bool] = None
    dark_garments_printed: Optional[bool] = None
    is_served: Optional[bool] = None

    @model_validator(mode="after")
    def validate_not_empty(self) -> "StudentProgressUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class ClassAttendanceUpdate(BaseModel):
    is_attended: bool
