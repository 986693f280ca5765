from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class ScreenOut(BaseModel):
    id: int
    installation_code: str
    ip: Optional[str]
    status: str
    assigned_user_id: Optional[int]
    company_id: Optional[int]
    uptime: Optional[int]
    downtime_notified: bool

    class Config:
        from_attributes = True


class PingOut(BaseModel):
    id: int
    video_screen_id: int
    up: bool
    created_at: datetime

    class Config:
        from_attributes = True
