# screen_monitor/routers/screens.py
"""Screens — current state, uptime, ping history, and manual monitor runs."""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from screen_monitor.database import get_db
from screen_monitor.dependencies import get_dispatcher
from screen_monitor.models.ping import Ping
from screen_monitor.models.screen import VideoScreen
from screen_monitor.schemas.screen import ScreenOut, PingOut
from screen_monitor.services.availability_service import ping_all_screens, calculate_monthly_uptime
from screen_monitor.services.notification_service import NotificationDispatcher

router = APIRouter()


@router.get("/screens", response_model=list[ScreenOut])
def list_screens(status: Optional[str] = None, db: Session = Depends(get_db)):
    """All screens with their last monthly uptime."""
    q = db.query(VideoScreen)
    if status:
        q = q.filter(VideoScreen.status == status)
    return q.order_by(VideoScreen.installation_code).all()


@router.get("/screens/{screen_id}/pings", response_model=list[PingOut])
def list_screen_pings(screen_id: int, limit: int = 100, db: Session = Depends(get_db)):
    """Latest reachability samples for a screen, newest first."""
    screen = db.query(VideoScreen).filter(VideoScreen.id == screen_id).first()
    if not screen:
        raise HTTPException(status_code=404, detail=f"Screen {screen_id} not found")
    return (
        db.query(Ping)
        .filter(Ping.video_screen_id == screen_id)
        .order_by(Ping.created_at.desc(), Ping.id.desc())
        .limit(limit)
        .all()
    )


@router.post("/monitor/ping", summary="Run one ping cycle now")
async def run_ping(db: Session = Depends(get_db),
                   dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    results = await ping_all_screens(db, dispatcher)
    return {
        "checked": len(results),
        "down": sum(1 for r in results if not r.up),
        "escalated": [r.video_screen for r in results if r.escalated],
    }


@router.post("/monitor/uptime", summary="Recalculate monthly uptime now")
def run_uptime(db: Session = Depends(get_db)):
    ok = calculate_monthly_uptime(db)
    return {"status": "ok" if ok else "partial"}
