"""Unit tests for check storage and superseded-frame cleanup."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import patch
from sqlalchemy.exc import OperationalError
from screen_monitor.config import settings
from screen_monitor.exceptions import CheckNotFoundError
from screen_monitor.models import Check, CheckFrame, StoredFile, Incident
from screen_monitor.schemas.check import CheckCreate, CheckUpdate
from screen_monitor.schemas.incident import IncidentCreate
from screen_monitor.services.check_service import create_check, update_check, purge_superseded_frames
from screen_monitor.services.incident_service import create_incident
from conftest import make_screen, make_file


def file_ids(db):
    return {f.id for f in db.query(StoredFile).all()}


class TestFrameCleanup:
    def test_first_check_deletes_nothing(self, db):
        screen = make_screen(db)
        frame = make_file(db)
        check = create_check(db, CheckCreate(video_screen=screen.id, frames=[frame.id]))

        assert check.frame_ids == [frame.id]
        assert frame.id in file_ids(db)

    def test_new_check_purges_older_frames(self, db):
        screen = make_screen(db)
        old_frames = [make_file(db, name=f"old-{i}.jpg") for i in range(3)]
        old_check = create_check(db, CheckCreate(video_screen=screen.id, frames=[f.id for f in old_frames]))
        new_frame = make_file(db, name="new.jpg")

        with patch("screen_monitor.services.check_service.remove_blobs") as remove_blobs:
            create_check(db, CheckCreate(video_screen=screen.id, frames=[new_frame.id]))

        remaining = file_ids(db)
        assert new_frame.id in remaining
        assert not any(f.id in remaining for f in old_frames)
        remove_blobs.assert_called_once()
        assert sorted(remove_blobs.call_args.args[0]) == ["old-0.jpg", "old-1.jpg", "old-2.jpg"]
        # The check record itself is kept
        assert db.query(Check).filter(Check.id == old_check.id).count() == 1
        assert db.query(CheckFrame).filter(CheckFrame.check_id == old_check.id).count() == 0

    def test_other_screens_untouched(self, db):
        a = make_screen(db, code="A")
        b = make_screen(db, code="B")
        frame_b = make_file(db)
        create_check(db, CheckCreate(video_screen=b.id, frames=[frame_b.id]))

        create_check(db, CheckCreate(video_screen=a.id, frames=[make_file(db).id]))
        assert frame_b.id in file_ids(db)

    def test_relocated_incident_photo_survives(self, db):
        screen = make_screen(db)
        photo = make_file(db)
        plain = make_file(db)
        create_check(db, CheckCreate(video_screen=screen.id, frames=[photo.id, plain.id]))
        create_incident(db, IncidentCreate(video_screen=screen.id, defect_photo=photo.id))

        create_check(db, CheckCreate(video_screen=screen.id, frames=[]))
        remaining = file_ids(db)
        assert photo.id in remaining
        assert plain.id not in remaining
        incident = db.query(Incident).first()
        assert incident.defect_photo_id == photo.id

    def test_frame_shared_with_current_check_kept(self, db):
        screen = make_screen(db)
        shared = make_file(db)
        create_check(db, CheckCreate(video_screen=screen.id, frames=[shared.id]))
        check = create_check(db, CheckCreate(video_screen=screen.id, frames=[shared.id]))

        assert shared.id in file_ids(db)
        assert purge_superseded_frames(db, check) == []

    def test_frames_keep_capture_order(self, db):
        screen = make_screen(db)
        frames = [make_file(db, name=f"{i}.jpg") for i in range(4)]
        check = create_check(db, CheckCreate(video_screen=screen.id, frames=[f.id for f in reversed(frames)]))
        assert check.frame_ids == [f.id for f in reversed(frames)]

    def test_failed_cleanup_keeps_saved_check(self, db):
        screen = make_screen(db)
        old = make_file(db, name="old.jpg")
        create_check(db, CheckCreate(video_screen=screen.id, frames=[old.id]))
        new = make_file(db, name="new.jpg")

        with patch("screen_monitor.services.check_service.delete_files_in_folder",
                   side_effect=OperationalError("DELETE", {}, Exception("database is locked"))):
            check = create_check(db, CheckCreate(video_screen=screen.id, frames=[new.id]))

        assert check.id is not None
        assert check.frame_ids == [new.id]
        assert db.query(Check).count() == 2
        # nothing was purged, the old frame is still linked
        assert old.id in file_ids(db)


class TestCheckOutcome:
    @pytest.mark.asyncio
    async def test_unknown_check(self, db, dispatcher):
        with pytest.raises(CheckNotFoundError):
            await update_check(db, 404, CheckUpdate(is_successful=True), dispatcher)

    @pytest.mark.asyncio
    async def test_success_resolves_incidents_in_verification(self, db, dispatcher):
        screen = make_screen(db)
        incident = create_incident(db, IncidentCreate(video_screen=screen.id))
        check = create_check(db, CheckCreate(video_screen=screen.id))

        check = await update_check(db, check.id, CheckUpdate(is_successful=True), dispatcher)

        assert check.is_successful is True
        db.refresh(incident)
        assert incident.status == "resolved"
        dispatcher.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_leaves_incidents_open(self, db, dispatcher):
        screen = make_screen(db)
        incident = create_incident(db, IncidentCreate(video_screen=screen.id))
        check = create_check(db, CheckCreate(video_screen=screen.id))

        await update_check(db, check.id, CheckUpdate(is_successful=False), dispatcher)

        db.refresh(incident)
        assert incident.status == "verification"

    @pytest.mark.asyncio
    async def test_auto_resolve_notify_setting(self, db, dispatcher):
        screen = make_screen(db)
        create_incident(db, IncidentCreate(video_screen=screen.id))
        check = create_check(db, CheckCreate(video_screen=screen.id))

        with patch.object(settings, "AUTO_RESOLVE_NOTIFY", True):
            await update_check(db, check.id, CheckUpdate(is_successful=True), dispatcher)
        assert dispatcher.send.await_count == 2
