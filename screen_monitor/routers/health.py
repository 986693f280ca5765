# screen_monitor/routers/health.py
"""
System health check endpoint.
Returns status of backend + DB + configured notification channels + scheduler.
"""

from datetime import datetime
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.orm import Session
from screen_monitor.config import settings
from screen_monitor.database import get_db

router = APIRouter()


@router.get("/health", summary="System health check")
def health_check(request: Request, db: Session = Depends(get_db)):
    result = {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "backend": "ok",
        "database": "unknown",
        "channels": {
            "telegram": "configured" if settings.TELEGRAM_ENABLED else "disabled",
            "email": "configured" if settings.EMAIL_ENABLED else "disabled",
        },
        "scheduler": "disabled",
    }

    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"

    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is not None:
        result["scheduler"] = "running" if scheduler.running else "stopped"

    return result
