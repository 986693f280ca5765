"""Shared fixtures: an in-memory SQLite store and a recording dispatcher."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Keep the app's own engine off any real database during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///./.pytest_screen_monitor.db")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from datetime import datetime
from unittest.mock import MagicMock, AsyncMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from screen_monitor.config import settings
from screen_monitor.database import create_tables
from screen_monitor.models import User, Company, VideoScreen, StoredFile, Ping
from screen_monitor.services.notification_service import NotificationDispatcher


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def dispatcher():
    d = MagicMock(spec=NotificationDispatcher)
    d.send = AsyncMock()
    return d


def make_screen(db, code="SCR-001", ip="10.0.0.5", with_technician=True, with_manager=True,
                status="active"):
    technician = None
    if with_technician:
        technician = User(name="Tech", email=f"tech-{code}@example.com", telegram_id=f"1{len(code)}01")
        db.add(technician)
    manager = None
    if with_manager:
        manager = User(name="Manager", email=f"manager-{code}@example.com", telegram_id="2002", role="manager")
        db.add(manager)
    company = Company(name=f"Company {code}", manager=manager)
    db.add(company)
    db.flush()
    screen = VideoScreen(
        installation_code=code,
        ip=ip,
        status=status,
        assigned_user_id=technician.id if technician else None,
        company_id=company.id,
    )
    db.add(screen)
    db.commit()
    return screen


def make_file(db, folder=None, name=None):
    f = StoredFile(filename_disk=name or "frame.jpg", folder=folder or settings.CHECKS_FRAMES_FOLDER,
                   created_at=datetime.utcnow())
    db.add(f)
    db.commit()
    return f


def add_pings(db, screen_id, states, start=None, step_minutes=5):
    """Insert samples oldest → newest from `states` (True = up)."""
    from datetime import timedelta
    start = start or datetime.utcnow() - timedelta(minutes=step_minutes * (len(states) + 1))
    for i, up in enumerate(states):
        db.add(Ping(video_screen_id=screen_id, up=up, created_at=start + timedelta(minutes=step_minutes * i)))
    db.commit()
