# screen_monitor/routers/incidents.py
"""
Incident endpoints — the entry points the detection pipeline and operators call.
POST  /incidents       — create (or re-flag an open one and reject with 409)
PATCH /incidents/{id}  — status changes, extra photos, reassignment
GET   /incidents       — list with filters
Notifications run as background tasks after the response is committed.
"""

from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session
from screen_monitor.database import get_db, SessionLocal
from screen_monitor.dependencies import get_dispatcher
from screen_monitor.exceptions import RecordNotUniqueError, MissingScreenError, ResourceNotFoundError
from screen_monitor.models.incident import Incident, IncidentStatus
from screen_monitor.schemas.incident import IncidentCreate, IncidentUpdate, IncidentOut
from screen_monitor.services.incident_service import (
    create_incident, update_incident, notify_incident_created, notify_incident_closed,
)
from screen_monitor.services.notification_service import NotificationDispatcher
from screen_monitor.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


def _not_unique(e: RecordNotUniqueError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"message": e.message, "code": "RECORD_NOT_UNIQUE",
                "collection": e.collection, "field": e.field},
    )


async def _run_with_session(notifier, incident_id: int, dispatcher: NotificationDispatcher):
    # The request session is closed by the time background tasks run
    db = SessionLocal()
    try:
        await notifier(db, incident_id, dispatcher)
    except Exception as e:
        logger.error(f"[INCIDENT] Notification task failed for #{incident_id}: {e}", exc_info=True)
    finally:
        db.close()


@router.post("/incidents", response_model=IncidentOut, status_code=status.HTTP_201_CREATED,
             summary="Create incident — one open incident per screen")
def post_incident(body: IncidentCreate, background_tasks: BackgroundTasks,
                  db: Session = Depends(get_db),
                  dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    try:
        incident = create_incident(db, body)
    except MissingScreenError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except RecordNotUniqueError as e:
        raise _not_unique(e)
    except ResourceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

    background_tasks.add_task(_run_with_session, notify_incident_created, incident.id, dispatcher)
    return incident


@router.patch("/incidents/{incident_id}", response_model=IncidentOut, summary="Update incident")
def patch_incident(incident_id: int, body: IncidentUpdate, background_tasks: BackgroundTasks,
                   db: Session = Depends(get_db),
                   dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    try:
        incident, previous_status = update_incident(db, incident_id, body)
    except ResourceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except RecordNotUniqueError as e:
        raise _not_unique(e)

    if incident.status == IncidentStatus.RESOLVED.value and previous_status != IncidentStatus.RESOLVED.value:
        background_tasks.add_task(_run_with_session, notify_incident_closed, incident.id, dispatcher)
    return incident


@router.get("/incidents", response_model=list[IncidentOut], summary="List incidents")
def list_incidents(video_screen: Optional[int] = None, status: Optional[str] = None,
                   open_only: bool = False, limit: int = 50, db: Session = Depends(get_db)):
    q = db.query(Incident)
    if video_screen is not None:
        q = q.filter(Incident.video_screen_id == video_screen)
    if status:
        q = q.filter(Incident.status == status)
    if open_only:
        q = q.filter(Incident.status != IncidentStatus.RESOLVED.value)
    return q.order_by(Incident.created_at.desc()).limit(limit).all()


@router.get("/incidents/{incident_id}", response_model=IncidentOut, summary="Get incident")
def get_incident(incident_id: int, db: Session = Depends(get_db)):
    incident = db.query(Incident).filter(Incident.id == incident_id).first()
    if not incident:
        raise HTTPException(status_code=404, detail=f"Incident {incident_id} not found")
    return incident
