"""End-to-end tests of the HTTP surface with an in-memory store."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient
from screen_monitor.config import settings
from screen_monitor.database import get_db
from screen_monitor.dependencies import get_dispatcher
from screen_monitor.main import app
from screen_monitor.models import StoredFile, Incident, Check
from conftest import make_screen, make_file


@pytest.fixture
def client(session_factory, dispatcher):
    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    with patch("screen_monitor.routers.incidents.SessionLocal", session_factory), \
         patch.object(settings, "ADMIN_EMAIL", None), \
         patch.object(settings, "ADMIN_TELEGRAM_ID", None):
        yield TestClient(app)
    app.dependency_overrides.clear()


class TestIncidentFlow:
    def test_create_conflict_and_close(self, client, db, dispatcher):
        screen = make_screen(db)
        photo = make_file(db, name="defect.jpg")
        extra = make_file(db, name="extra.jpg")

        resp = client.post("/api/v1/incidents", json={
            "video_screen": screen.id,
            "defect_types": ["segment_off"],
            "defect_photo": photo.id,
            "extra_photos": [extra.id],
        })
        assert resp.status_code == 201
        first = resp.json()
        assert first["status"] == "verification"
        assert first["extra_photo_ids"] == [extra.id]

        db.expire_all()
        folders = {f.id: f.folder for f in db.query(StoredFile).all()}
        assert folders[photo.id] == settings.INCIDENTS_FRAMES_FOLDER
        assert folders[extra.id] == settings.INCIDENTS_FRAMES_FOLDER
        # technician and manager
        assert dispatcher.send.await_count == 2
        assert "Segment off" in dispatcher.send.await_args.kwargs["text"]

        resp = client.post("/api/v1/incidents", json={"video_screen": screen.id, "defect_types": ["screen_off"]})
        assert resp.status_code == 409
        detail = resp.json()["detail"]
        assert detail["code"] == "RECORD_NOT_UNIQUE"
        assert detail["message"]
        assert detail["collection"] == "incidents"
        assert detail["field"] == "defect_types"
        db.expire_all()
        assert db.query(Incident).count() == 1
        assert db.query(Incident).one().status == "not_resolved"
        assert dispatcher.send.await_count == 2

        resp = client.patch(f"/api/v1/incidents/{first['id']}", json={"status": "resolved"})
        assert resp.status_code == 200
        assert resp.json()["closed_at"] is not None
        assert dispatcher.send.await_count == 4
        assert "closed" in dispatcher.send.await_args.kwargs["text"]

    def test_missing_screen_is_rejected(self, client):
        resp = client.post("/api/v1/incidents", json={"defect_types": ["segment_off"]})
        assert resp.status_code == 400

    def test_unknown_screen(self, client):
        resp = client.post("/api/v1/incidents", json={"video_screen": 999})
        assert resp.status_code == 404

    def test_unknown_incident(self, client):
        assert client.patch("/api/v1/incidents/999", json={"status": "resolved"}).status_code == 404
        assert client.get("/api/v1/incidents/999").status_code == 404

    def test_list_open_incidents(self, client, db):
        a = make_screen(db, code="A")
        b = make_screen(db, code="B")
        client.post("/api/v1/incidents", json={"video_screen": a.id})
        created = client.post("/api/v1/incidents", json={"video_screen": b.id}).json()
        client.patch(f"/api/v1/incidents/{created['id']}", json={"status": "resolved"})

        resp = client.get("/api/v1/incidents", params={"open_only": True})
        assert [i["video_screen_id"] for i in resp.json()] == [a.id]


class TestChecks:
    def test_check_lifecycle(self, client, db, dispatcher):
        screen = make_screen(db)
        incident = client.post("/api/v1/incidents", json={"video_screen": screen.id}).json()
        frame = make_file(db)

        resp = client.post("/api/v1/checks", json={"video_screen": screen.id, "frames": [frame.id]})
        assert resp.status_code == 201
        check = resp.json()
        assert check["frame_ids"] == [frame.id]

        resp = client.patch(f"/api/v1/checks/{check['id']}", json={"is_successful": True})
        assert resp.status_code == 200
        assert client.get(f"/api/v1/incidents/{incident['id']}").json()["status"] == "resolved"

    def test_unknown_check(self, client):
        assert client.patch("/api/v1/checks/999", json={"is_successful": True}).status_code == 404

    def test_create_succeeds_when_cleanup_fails(self, client, db):
        screen = make_screen(db)
        client.post("/api/v1/checks", json={"video_screen": screen.id, "frames": [make_file(db).id]})

        with patch("screen_monitor.services.check_service.purge_superseded_frames",
                   side_effect=RuntimeError("storage offline")):
            resp = client.post("/api/v1/checks", json={"video_screen": screen.id, "frames": [make_file(db).id]})

        assert resp.status_code == 201
        assert db.query(Check).count() == 2


class TestScreens:
    def test_list_and_pings(self, client, db):
        screen = make_screen(db)
        resp = client.get("/api/v1/screens")
        assert resp.status_code == 200
        assert resp.json()[0]["installation_code"] == "SCR-001"
        assert client.get(f"/api/v1/screens/{screen.id}/pings").json() == []
        assert client.get("/api/v1/screens/999/pings").status_code == 404

    def test_manual_uptime_run(self, client):
        resp = client.post("/api/v1/monitor/uptime")
        assert resp.json() == {"status": "ok"}


class TestHealth:
    def test_reports_database_and_channels(self, client):
        body = client.get("/api/v1/health").json()
        assert body["database"] == "ok"
        assert body["status"] == "ok"
        assert set(body["channels"]) == {"telegram", "email"}
