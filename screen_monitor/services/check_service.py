# screen_monitor/services/check_service.py
"""
Checks and frame cleanup.

Every new check for a screen makes the frames of the screen's earlier checks
obsolete. Those frames are deleted from the checks-frames folder to bound
storage; the check rows stay. Frames already moved to the incidents folder
(used as defect photos) are not touched.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import exists
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from screen_monitor.config import settings
from screen_monitor.exceptions import CheckNotFoundError
from screen_monitor.models.check import Check, CheckFrame
from screen_monitor.models.stored_file import StoredFile
from screen_monitor.schemas.check import CheckCreate, CheckUpdate
from screen_monitor.services.file_service import delete_files_in_folder, remove_blobs
from screen_monitor.services.incident_service import resolve_verified_incidents_for_check
from screen_monitor.services.notification_service import NotificationDispatcher
from screen_monitor.utils.logger import get_logger

logger = get_logger(__name__)


def create_check(db: Session, data: CheckCreate) -> Check:
    check = Check(
        video_screen_id=data.video_screen,
        is_successful=data.is_successful,
        created_at=datetime.utcnow(),
    )
    check.frames = [CheckFrame(file_id=file_id, sort=i) for i, file_id in enumerate(data.frames)]
    try:
        db.add(check)
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"[CHECK] Failed to store check for screen {data.video_screen}: {e}")
        db.rollback()
        raise

    db.refresh(check)
    logger.info(f"[CHECK] Created #{check.id} screen={check.video_screen_id} frames={len(data.frames)}")
    # The check is already committed; a failed cleanup only leaves old frames behind
    check_id = check.id
    try:
        purge_superseded_frames(db, check)
    except Exception as e:
        logger.error(f"[CHECK] Frame cleanup after check #{check_id} failed: {e}", exc_info=True)
    return check


def purge_superseded_frames(db: Session, check: Check) -> list[str]:
    """
    Delete frame files of the screen's other checks that still have frames.
    Returns the ids of the deleted files.
    """
    try:
        older = (
            db.query(Check)
            .filter(
                Check.video_screen_id == check.video_screen_id,
                Check.id != check.id,
                exists().where(CheckFrame.check_id == Check.id),
            )
            .all()
        )
        logger.debug(f"[CHECK] {len(older)} superseded check(s) with frames for screen {check.video_screen_id}")
        if not older:
            return []

        frame_ids = list(dict.fromkeys(
            frame.file_id for old in older for frame in old.frames if frame.file_id
        ))
        current = {frame.file_id for frame in check.frames}
        candidates = [f for f in frame_ids if f not in current]
        purgeable = [
            row.id for row in
            db.query(StoredFile.id)
            .filter(StoredFile.folder == settings.CHECKS_FRAMES_FOLDER, StoredFile.id.in_(candidates))
            .all()
        ]
        logger.info(f"[CHECK] Deleting {len(purgeable)} of {len(frame_ids)} old frame(s)")

        filenames = []
        if purgeable:
            # Frame links go first, the file rows are referenced by them
            db.query(CheckFrame).filter(CheckFrame.file_id.in_(purgeable)).delete(synchronize_session=False)
            filenames = delete_files_in_folder(db, purgeable, settings.CHECKS_FRAMES_FOLDER)
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"[CHECK] Failed to purge frames for screen {check.video_screen_id}: {e}")
        db.rollback()
        raise

    remove_blobs(filenames)
    return purgeable


async def update_check(db: Session, check_id: int, data: CheckUpdate,
                       dispatcher: Optional[NotificationDispatcher] = None) -> Check:
    """Record a check outcome; a passing check closes incidents awaiting verification."""
    check = db.query(Check).filter(Check.id == check_id).first()
    if check is None:
        raise CheckNotFoundError(check_id)

    try:
        check.is_successful = data.is_successful
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"[CHECK] Failed to update check #{check_id}: {e}")
        db.rollback()
        raise
    logger.info(f"[CHECK] Updated #{check_id} is_successful={data.is_successful}")

    if data.is_successful:
        await resolve_verified_incidents_for_check(db, check_id, dispatcher=dispatcher)

    db.refresh(check)
    return check
