# screen_monitor/models/check.py
"""
Automated inspection passes. Each check owns an ordered list of frame images;
when a newer check arrives for the same screen the older frames are purged,
but the check rows themselves stay for reporting.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from screen_monitor.database import Base


class CheckFrame(Base):
    __tablename__ = "check_frames"

    id = Column(Integer, primary_key=True, autoincrement=True)
    check_id = Column(Integer, ForeignKey("checks.id"), nullable=False, index=True)
    file_id = Column(String(36), ForeignKey("files.id"), nullable=False)
    sort = Column(Integer, default=0, nullable=False)


class Check(Base):
    __tablename__ = "checks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    video_screen_id = Column(Integer, ForeignKey("video_screens.id"), nullable=False, index=True)
    is_successful = Column(Boolean)
    created_at = Column(DateTime, nullable=False)

    video_screen = relationship("VideoScreen")
    frames = relationship("CheckFrame", order_by=CheckFrame.sort, cascade="all, delete-orphan")

    @property
    def frame_ids(self):
        return [frame.file_id for frame in self.frames]

    def __repr__(self):
        return f"<Check {self.id} screen={self.video_screen_id} ok={self.is_successful}>"
