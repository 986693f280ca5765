# screen_monitor/models/screen.py
"""
Video screens table — the monitored display units.
`uptime` is written only by the monthly aggregation job.
`downtime_notified` marks that the current down streak was already escalated.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from screen_monitor.database import Base


class VideoScreen(Base):
    __tablename__ = "video_screens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    installation_code = Column(String(100), unique=True, nullable=False, index=True)
    ip = Column(String(255))
    status = Column(String(20), default="active", nullable=False, index=True)   # active | inactive
    assigned_user_id = Column(Integer, ForeignKey("users.id"))
    company_id = Column(Integer, ForeignKey("companies.id"))
    uptime = Column(Integer)                       # 0–100, last monthly value
    downtime_notified = Column(Boolean, default=False, nullable=False)

    assigned_user = relationship("User")
    company = relationship("Company")

    def __repr__(self):
        return f"<VideoScreen {self.id} code={self.installation_code} status={self.status}>"
