# screen_monitor/routers/checks.py
"""
Check endpoints.
POST  /checks       — store a new inspection pass and purge the screen's older frames
PATCH /checks/{id}  — record the outcome; a pass closes incidents awaiting verification
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from screen_monitor.database import get_db
from screen_monitor.dependencies import get_dispatcher
from screen_monitor.exceptions import CheckNotFoundError
from screen_monitor.schemas.check import CheckCreate, CheckUpdate, CheckOut
from screen_monitor.services.check_service import create_check, update_check
from screen_monitor.services.notification_service import NotificationDispatcher

router = APIRouter()


@router.post("/checks", response_model=CheckOut, status_code=status.HTTP_201_CREATED,
             summary="Create check")
def post_check(body: CheckCreate, db: Session = Depends(get_db)):
    return create_check(db, body)


@router.patch("/checks/{check_id}", response_model=CheckOut, summary="Record check outcome")
async def patch_check(check_id: int, body: CheckUpdate, db: Session = Depends(get_db),
                      dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    try:
        return await update_check(db, check_id, body, dispatcher=dispatcher)
    except CheckNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
