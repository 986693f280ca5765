# screen_monitor/models/ping.py
"""
Reachability samples — one row per screen per monitoring cycle.
Append-only; read back for the consecutive-failure rule and monthly uptime.
"""

from sqlalchemy import Column, Integer, DateTime, ForeignKey, Boolean
from screen_monitor.database import Base


class Ping(Base):
    __tablename__ = "pings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    video_screen_id = Column(Integer, ForeignKey("video_screens.id"), nullable=False, index=True)
    up = Column(Boolean, nullable=False)
    created_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<Ping screen={self.video_screen_id} up={self.up} at={self.created_at}>"
