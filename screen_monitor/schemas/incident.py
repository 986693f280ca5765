from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Literal

IncidentStatusLiteral = Literal["verification", "not_resolved", "in_progress", "resolved"]


class IncidentCreate(BaseModel):
    """Payload sent by the defect-detection pipeline."""
    video_screen: Optional[int] = None
    defect_types: list[str] = Field(default_factory=list)
    defect_photo: Optional[str] = None
    extra_photos: list[str] = Field(default_factory=list)
    check: Optional[int] = None
    responsible: Optional[int] = None     # Overrides the screen's assigned technician


class IncidentUpdate(BaseModel):
    """Operator edits. Only fields that are set are applied."""
    status: Optional[IncidentStatusLiteral] = None
    responsible: Optional[int] = None
    defect_types: Optional[list[str]] = None
    extra_photos: list[str] = Field(default_factory=list)   # Newly attached photos


class IncidentOut(BaseModel):
    id: int
    video_screen_id: int
    defect_types: list[str]
    defect_photo_id: Optional[str]
    extra_photo_ids: list[str] = Field(default_factory=list)
    check_id: Optional[int]
    responsible_id: Optional[int]
    status: str
    button_change_status: Optional[str]
    created_at: datetime
    repairs_started_at: Optional[datetime]
    closed_at: Optional[datetime]

    class Config:
        from_attributes = True
