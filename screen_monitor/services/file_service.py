# screen_monitor/services/file_service.py
"""
File relocation and purge.

Photos attached to incidents are moved (folder reassignment, not a copy) out
of the checks-frames folder so the frame cleanup never deletes them.
Moving a file that already sits in the target folder is a no-op.
"""

import os
from typing import Iterable, Optional
from sqlalchemy.orm import Session
from screen_monitor.config import settings
from screen_monitor.models.stored_file import StoredFile
from screen_monitor.utils.logger import get_logger

logger = get_logger(__name__)


def _clean_ids(file_ids: Iterable[Optional[str]]) -> list[str]:
    seen = []
    for file_id in file_ids:
        if file_id and file_id not in seen:
            seen.append(file_id)
    return seen


def move_to_folder(db: Session, file_ids: Iterable[Optional[str]], folder: str) -> int:
    """
    Reassign files to `folder`. Flushes but does not commit, so the caller's
    transaction decides whether the move lands. Returns the number moved.
    """
    ids = _clean_ids(file_ids)
    if not ids:
        return 0

    logger.info(f"[FILES] Moving {len(ids)} file(s) to '{folder}'")
    moved = (
        db.query(StoredFile)
        .filter(StoredFile.id.in_(ids), StoredFile.folder.is_distinct_from(folder))
        .update({StoredFile.folder: folder}, synchronize_session=False)
    )
    db.flush()
    logger.debug(f"[FILES] {moved} moved, {len(ids) - moved} already in place or unknown")
    return moved


def move_to_incidents_folder(db: Session, file_ids: Iterable[Optional[str]]) -> int:
    return move_to_folder(db, file_ids, settings.INCIDENTS_FRAMES_FOLDER)


def remove_blobs(filenames: Iterable[str]):
    """Remove on-disk blobs. Call after the deleting transaction committed."""
    for filename_disk in filenames:
        path = os.path.join(settings.MEDIA_ROOT, filename_disk)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[FILES] Could not remove {path}: {e}")


def delete_files_in_folder(db: Session, file_ids: Iterable[Optional[str]], folder: str) -> list[str]:
    """
    Delete file records among `file_ids` that live in `folder` and return their
    on-disk names. Files elsewhere, e.g. relocated incident photos, are left alone.
    """
    ids = _clean_ids(file_ids)
    if not ids:
        return []

    files = (
        db.query(StoredFile)
        .filter(StoredFile.folder == folder, StoredFile.id.in_(ids))
        .all()
    )
    filenames = [f.filename_disk for f in files]
    for f in files:
        db.delete(f)
    db.flush()
    return filenames
