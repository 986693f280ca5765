# screen_monitor/services/incident_service.py
"""
Incident lifecycle manager.

State machine:
    create                          -> verification
    verification  -- re-flag        -> not_resolved
    verification  -- check passes   -> resolved     (notification is a policy flag)
    not_resolved / in_progress      -> in_progress  (stamps repairs_started_at once)
    not_resolved / in_progress      -> resolved     (stamps closed_at once, notifies)

Invariant: at most one incident per screen is in a status other than
`resolved`. The store is re-queried inside every create, so the check and the
insert happen in one transaction; two truly simultaneous creates for the same
screen can still race (no DB-level partial unique index is assumed).

Store errors roll the session back and propagate. Notification failures never
do: the post-commit notifiers log and swallow everything.
"""

from datetime import datetime
from html import escape
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from screen_monitor.config import settings
from screen_monitor.exceptions import (
    RecordNotUniqueError, MissingScreenError, IncidentNotFoundError,
    CheckNotFoundError, ResourceNotFoundError,
)
from screen_monitor.models.check import Check
from screen_monitor.models.incident import Incident, IncidentStatus
from screen_monitor.models.screen import VideoScreen
from screen_monitor.models.stored_file import StoredFile
from screen_monitor.schemas.incident import IncidentCreate, IncidentUpdate
from screen_monitor.services.file_service import move_to_incidents_folder
from screen_monitor.services.notification_service import NotificationDispatcher
from screen_monitor.services.recipient_service import get_incident_contacts, incident_url
from screen_monitor.utils.logger import get_logger

logger = get_logger(__name__)

RESOLVED = IncidentStatus.RESOLVED.value
VERIFICATION = IncidentStatus.VERIFICATION.value
NOT_RESOLVED = IncidentStatus.NOT_RESOLVED.value
IN_PROGRESS = IncidentStatus.IN_PROGRESS.value


def find_open_incidents(db: Session, screen_id: int, exclude_id: Optional[int] = None) -> list[Incident]:
    q = db.query(Incident).filter(
        Incident.video_screen_id == screen_id,
        Incident.status != RESOLVED,
    )
    if exclude_id is not None:
        q = q.filter(Incident.id != exclude_id)
    return q.all()


def derive_status_fields(incident, new_status: str, now: datetime) -> dict:
    """
    Fields implied by moving `incident` into `new_status`.
    Pure: reads the current timestamps, returns what to set.
    """
    derived = {}
    if new_status == IN_PROGRESS and incident.repairs_started_at is None:
        derived["repairs_started_at"] = now
    if new_status == RESOLVED and incident.closed_at is None:
        derived["closed_at"] = now
    if new_status == NOT_RESOLVED:
        derived["button_change_status"] = IN_PROGRESS
    return derived


def _apply_status(incident: Incident, new_status: str, now: datetime):
    for key, value in derive_status_fields(incident, new_status, now).items():
        setattr(incident, key, value)
    incident.status = new_status


def _load_files(db: Session, file_ids: list[str]) -> list[StoredFile]:
    if not file_ids:
        return []
    files = db.query(StoredFile).filter(StoredFile.id.in_(file_ids)).all()
    missing = set(file_ids) - {f.id for f in files}
    if missing:
        logger.warning(f"[INCIDENT] Unknown photo ids ignored: {sorted(missing)}")
    by_id = {f.id: f for f in files}
    return [by_id[i] for i in dict.fromkeys(file_ids) if i in by_id]


def create_incident(db: Session, data: IncidentCreate) -> Incident:
    """
    Create an incident unless the screen already has an open one.

    Raises MissingScreenError without a screen, RecordNotUniqueError when an
    open incident exists (a `verification` one is re-flagged to `not_resolved`
    first). Photo relocation and the insert are committed together.
    """
    if not data.video_screen:
        logger.error("[INCIDENT] video_screen missing, rejecting")
        raise MissingScreenError()

    screen_id = data.video_screen
    try:
        open_incidents = find_open_incidents(db, screen_id)
        logger.debug(f"[INCIDENT] Open incidents for screen {screen_id}: {len(open_incidents)}")

        if open_incidents:
            unverified = next((i for i in open_incidents if i.status == VERIFICATION), None)
            if unverified is not None:
                logger.info(f"[INCIDENT] Re-flagging incident #{unverified.id} as not_resolved")
                _apply_status(unverified, NOT_RESOLVED, datetime.utcnow())
                db.commit()
            logger.info(f"[INCIDENT] Screen {screen_id} already has an open incident, skipping create")
            raise RecordNotUniqueError(collection="incidents", field="defect_types")

        screen = db.query(VideoScreen).filter(VideoScreen.id == screen_id).first()
        if screen is None:
            raise ResourceNotFoundError("VideoScreen", screen_id)

        responsible_id = data.responsible
        if responsible_id is None and screen.assigned_user_id:
            logger.info(f"[INCIDENT] Responsible taken from screen {screen.installation_code}")
            responsible_id = screen.assigned_user_id

        photo_ids = [data.defect_photo] + list(data.extra_photos)
        move_to_incidents_folder(db, photo_ids)

        incident = Incident(
            video_screen_id=screen_id,
            defect_types=list(data.defect_types),
            defect_photo_id=data.defect_photo,
            check_id=data.check,
            responsible_id=responsible_id,
            status=VERIFICATION,
            created_at=datetime.utcnow(),
        )
        incident.extra_photos = _load_files(db, list(data.extra_photos))
        db.add(incident)
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"[INCIDENT] Store error while creating incident for screen {screen_id}: {e}")
        db.rollback()
        raise

    db.refresh(incident)
    logger.info(f"[INCIDENT] Created #{incident.id} for screen {screen_id} defects={incident.defect_types}")
    return incident


def update_incident(db: Session, incident_id: int, data: IncidentUpdate) -> tuple[Incident, str]:
    """
    Apply an operator update. Returns the incident and its status before
    the update, so callers can tell a real transition into `resolved`.
    """
    try:
        incident = db.query(Incident).filter(Incident.id == incident_id).first()
        if incident is None:
            raise IncidentNotFoundError(incident_id)
        previous_status = incident.status

        if data.extra_photos:
            move_to_incidents_folder(db, data.extra_photos)
            known = set(incident.extra_photo_ids)
            incident.extra_photos.extend(
                f for f in _load_files(db, list(data.extra_photos)) if f.id not in known
            )

        if data.responsible is not None:
            incident.responsible_id = data.responsible
        if data.defect_types is not None:
            incident.defect_types = list(data.defect_types)

        if data.status is not None and data.status != previous_status:
            if previous_status == RESOLVED and find_open_incidents(db, incident.video_screen_id, exclude_id=incident.id):
                raise RecordNotUniqueError(collection="incidents", field="status")
            _apply_status(incident, data.status, datetime.utcnow())
            logger.info(f"[INCIDENT] #{incident.id}: {previous_status} -> {data.status}")

        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"[INCIDENT] Store error while updating incident #{incident_id}: {e}")
        db.rollback()
        raise
    except RecordNotUniqueError:
        db.rollback()
        raise

    db.refresh(incident)
    return incident, previous_status


async def _notify_contacts(dispatcher: NotificationDispatcher, contacts, subject: str, text: str, html: str):
    for role in ("responsible", "manager", "admin"):
        recipient = getattr(contacts, role)
        if recipient is None:
            logger.info(f"[INCIDENT] No {role} contact for incident #{contacts.incident_id}, skipped")
            continue
        await dispatcher.send(recipient, text=text, html=html, subject=subject)


def _load_contacts(db: Session, incident_id: int):
    try:
        return get_incident_contacts(db, incident_id)
    except Exception as e:
        logger.error(f"[INCIDENT] Failed to read contacts for incident #{incident_id}: {e}")
        return None


async def notify_incident_created(db: Session, incident_id: int, dispatcher: NotificationDispatcher):
    """Post-commit: tell the responsible technician and the manager. Never raises."""
    contacts = _load_contacts(db, incident_id)
    if contacts is None:
        logger.info(f"[INCIDENT] No contact data for incident #{incident_id}, notifications not sent")
        return

    link = incident_url(incident_id)
    head = f"New incident #{incident_id} ({contacts.defect_names}) for screen {contacts.installation_code}"
    await _notify_contacts(
        dispatcher, contacts,
        subject=f"New incident #{incident_id} ({contacts.defect_names})",
        text=f"{head}: {link}",
        html=f'{escape(head)}: <a href="{link}">{link}</a>',
    )


async def notify_incident_closed(db: Session, incident_id: int, dispatcher: NotificationDispatcher):
    """Tell the technician and the manager an incident was closed. Never raises."""
    contacts = _load_contacts(db, incident_id)
    if contacts is None:
        logger.info(f"[INCIDENT] No contact data for incident #{incident_id}, closure not announced")
        return

    link = incident_url(incident_id)
    head = f"Incident #{incident_id} ({contacts.defect_names}) for screen {contacts.installation_code} closed"
    await _notify_contacts(
        dispatcher, contacts,
        subject=f"Incident #{incident_id} ({contacts.defect_names}) closed",
        text=f"{head}: {link}",
        html=f'{escape(head)}: <a href="{link}">{link}</a>',
    )


async def resolve_verified_incidents_for_check(db: Session, check_id: int,
                                               dispatcher: Optional[NotificationDispatcher] = None,
                                               notify: Optional[bool] = None) -> list[int]:
    """
    A check on the screen passed: every incident of that screen still in
    `verification` is closed. Closure notices only go out when `notify`
    (default AUTO_RESOLVE_NOTIFY) is on.
    """
    if notify is None:
        notify = settings.AUTO_RESOLVE_NOTIFY

    try:
        check = db.query(Check).filter(Check.id == check_id).first()
        if check is None:
            raise CheckNotFoundError(check_id)

        incidents = db.query(Incident).filter(
            Incident.video_screen_id == check.video_screen_id,
            Incident.status == VERIFICATION,
        ).all()
        logger.info(f"[INCIDENT] Check #{check_id} passed, {len(incidents)} incident(s) in verification")
        if not incidents:
            return []

        now = datetime.utcnow()
        for incident in incidents:
            _apply_status(incident, RESOLVED, now)
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"[INCIDENT] Store error while auto-resolving for check #{check_id}: {e}")
        db.rollback()
        raise

    resolved_ids = [i.id for i in incidents]
    if notify and dispatcher is not None:
        for incident_id in resolved_ids:
            await notify_incident_closed(db, incident_id, dispatcher)
    return resolved_ids
