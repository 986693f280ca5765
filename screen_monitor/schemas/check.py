from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class CheckCreate(BaseModel):
    video_screen: int
    frames: list[str] = Field(default_factory=list)    # File ids, in capture order
    is_successful: Optional[bool] = None


class CheckUpdate(BaseModel):
    is_successful: bool


class CheckOut(BaseModel):
    id: int
    video_screen_id: int
    is_successful: Optional[bool]
    created_at: datetime
    frame_ids: list[str] = Field(default_factory=list)

    class Config:
        from_attributes = True
