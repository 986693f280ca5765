# screen_monitor/database.py
"""
Database connection, session management, and table creation.
PostgreSQL in production; a SQLite url works for local runs and tests
(the scheduler and background tasks share the connection across threads).
All models are auto-imported in create_tables() so one call creates every table.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from screen_monitor.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,   # Auto-reconnect if DB connection drops
        "pool_size": 10,
        "max_overflow": 20,
    }


engine = create_engine(settings.DATABASE_URL, echo=False, **_engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency — yields a DB session and closes it after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    """
    Creates all DB tables on startup. Safe to call multiple times.
    Import all models here so SQLAlchemy knows about them.
    """
    from screen_monitor.models.user import User, Company          # noqa
    from screen_monitor.models.screen import VideoScreen          # noqa
    from screen_monitor.models.stored_file import StoredFile      # noqa
    from screen_monitor.models.incident import Incident           # noqa
    from screen_monitor.models.check import Check                 # noqa
    from screen_monitor.models.ping import Ping                   # noqa

    Base.metadata.create_all(bind=bind or engine)
