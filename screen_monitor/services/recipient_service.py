# screen_monitor/services/recipient_service.py
"""
Recipient directory — who gets told about an incident.

Resolves the responsible technician, the owning company's manager and the
optional system administrator into Recipient projections. Nothing here is
persisted; the projection is rebuilt for every notification.
"""

from dataclasses import dataclass, field
from typing import Optional
from sqlalchemy.orm import Session
from screen_monitor.config import settings
from screen_monitor.models.incident import Incident
from screen_monitor.services.notification_service import Recipient

# Human-readable labels for defect codes produced by the detection pipeline
DEFECT_TYPE_LABELS = {
    "segment_off": "Segment off",
    "module_off": "Module off",
    "screen_off": "Screen off",
    "no_signal": "No signal",
    "frozen_image": "Frozen image",
    "color_distortion": "Color distortion",
    "dead_pixels": "Dead pixels",
    "brightness": "Brightness deviation",
}


@dataclass
class IncidentContacts:
    incident_id: int
    installation_code: Optional[str]
    defect_types: list = field(default_factory=list)
    responsible: Optional[Recipient] = None
    manager: Optional[Recipient] = None
    admin: Optional[Recipient] = None

    @property
    def defect_names(self) -> str:
        return ", ".join(DEFECT_TYPE_LABELS.get(t, t) for t in self.defect_types)


def recipient_from_user(user) -> Optional[Recipient]:
    if user is None:
        return None
    return Recipient(email=user.email or None, telegram_id=user.telegram_id or None)


def system_admin_recipient() -> Optional[Recipient]:
    if not settings.ADMIN_EMAIL and not settings.ADMIN_TELEGRAM_ID:
        return None
    return Recipient(email=settings.ADMIN_EMAIL, telegram_id=settings.ADMIN_TELEGRAM_ID)


def screen_manager(screen):
    if screen is None or screen.company is None:
        return None
    return screen.company.manager


def get_incident_contacts(db: Session, incident_id: int) -> Optional[IncidentContacts]:
    """
    Read responsible.*, video_screen.installation_code and
    video_screen.company.manager.* for an incident. None if it doesn't exist.
    """
    incident = db.query(Incident).filter(Incident.id == incident_id).first()
    if incident is None:
        return None

    screen = incident.video_screen
    return IncidentContacts(
        incident_id=incident.id,
        installation_code=screen.installation_code if screen is not None else None,
        defect_types=list(incident.defect_types or []),
        responsible=recipient_from_user(incident.responsible),
        manager=recipient_from_user(screen_manager(screen)),
        admin=system_admin_recipient(),
    )


def incident_url(incident_id: int) -> str:
    return f"{settings.PUBLIC_URL.rstrip('/')}/admin/content/incidents/{incident_id}"


def screen_url(screen_id: int) -> str:
    return f"{settings.PUBLIC_URL.rstrip('/')}/admin/content/video_screens/{screen_id}"
