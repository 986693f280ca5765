# screen_monitor/models/incident.py
"""
Incidents table — one tracked defect/outage per screen.
At most one incident per screen may be in a status other than `resolved`;
the incident service enforces this before every insert.
Incidents are never deleted (historical record for reports).
"""

import enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Table
from sqlalchemy.orm import relationship
from screen_monitor.database import Base


class IncidentStatus(str, enum.Enum):
    VERIFICATION = "verification"
    NOT_RESOLVED = "not_resolved"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


incident_photos = Table(
    "incident_photos",
    Base.metadata,
    Column("incident_id", Integer, ForeignKey("incidents.id"), primary_key=True),
    Column("file_id", String(36), ForeignKey("files.id"), primary_key=True),
)


class Incident(Base):
    __tablename__ = "incidents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    video_screen_id = Column(Integer, ForeignKey("video_screens.id"), nullable=False, index=True)
    defect_types = Column(JSON, nullable=False, default=list)
    defect_photo_id = Column(String(36), ForeignKey("files.id"))
    check_id = Column(Integer, ForeignKey("checks.id"))
    responsible_id = Column(Integer, ForeignKey("users.id"))
    status = Column(String(20), default=IncidentStatus.VERIFICATION.value, nullable=False, index=True)
    button_change_status = Column(String(20))   # UI hint: next action offered to the client
    created_at = Column(DateTime, nullable=False, index=True)
    repairs_started_at = Column(DateTime)
    closed_at = Column(DateTime)

    video_screen = relationship("VideoScreen")
    responsible = relationship("User")
    defect_photo = relationship("StoredFile")
    extra_photos = relationship("StoredFile", secondary=incident_photos)

    @property
    def extra_photo_ids(self):
        return [photo.id for photo in self.extra_photos]

    def __repr__(self):
        return f"<Incident {self.id} screen={self.video_screen_id} status={self.status}>"
