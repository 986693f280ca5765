# screen_monitor/services/availability_service.py
"""
Availability monitor — screen reachability sampling and monthly uptime.

Ping cycle (every few minutes):
    1) Load active screens with an ip, plus their most recent samples.
    2) Probe all screens concurrently: GET http://{ip} with a bounded timeout.
       Any HTTP answer (200–599) counts as up; only transport errors are down.
    3) Escalate a down streak once: current sample down, the previous
       PING_HISTORY_WINDOW samples down, and the streak not yet acknowledged.
       The acknowledgement (`downtime_notified`) is cleared by the next up sample,
       so escalation does not depend on the polling cadence.
    4) Store one sample per screen in a single batch.

Monthly aggregation: uptime = 100 * up / total, rounded half-up, over the trailing
UPTIME_WINDOW_DAYS, written to the screen. Screens are processed one at a time,
each in its own transaction, so one failure doesn't abort the batch.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from html import escape
from typing import Optional, Sequence
import httpx
from sqlalchemy import exists, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from screen_monitor.config import settings
from screen_monitor.models.ping import Ping
from screen_monitor.models.screen import VideoScreen
from screen_monitor.models.user import Company
from screen_monitor.services.notification_service import NotificationDispatcher, Recipient
from screen_monitor.services.recipient_service import (
    recipient_from_user, screen_manager, screen_url, system_admin_recipient,
)
from screen_monitor.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ScreenTarget:
    id: int
    ip: str
    installation_code: str
    assigned_user: Optional[Recipient] = None
    manager: Optional[Recipient] = None
    recent_pings: list = field(default_factory=list)   # most recent first, True = up
    downtime_notified: bool = False


@dataclass
class PingResult:
    video_screen: int
    up: bool
    escalated: bool = False


def fetch_recent_pings(db: Session, screen_ids: list[int], history: int) -> dict[int, list[bool]]:
    """Latest `history` samples per screen in one windowed query, most recent first."""
    if history <= 0 or not screen_ids:
        return {}
    rank = func.row_number().over(
        partition_by=Ping.video_screen_id,
        order_by=(Ping.created_at.desc(), Ping.id.desc()),
    ).label("position")
    ranked = (
        db.query(Ping.video_screen_id, Ping.up, rank)
        .filter(Ping.video_screen_id.in_(screen_ids))
        .subquery()
    )
    rows = (
        db.query(ranked.c.video_screen_id, ranked.c.up)
        .filter(ranked.c.position <= history)
        .order_by(ranked.c.video_screen_id, ranked.c.position)
        .all()
    )
    recent: dict[int, list[bool]] = {}
    for row in rows:
        recent.setdefault(row.video_screen_id, []).append(row.up)
    return recent


def fetch_active_screens(db: Session, history: Optional[int] = None) -> list[ScreenTarget]:
    """Active screens with an ip, each with its `history` latest samples."""
    history = settings.PING_HISTORY_WINDOW if history is None else history
    screens = (
        db.query(VideoScreen)
        .options(
            selectinload(VideoScreen.assigned_user),
            selectinload(VideoScreen.company).selectinload(Company.manager),
        )
        .filter(VideoScreen.status == "active", VideoScreen.ip.isnot(None), VideoScreen.ip != "")
        .all()
    )
    recent = fetch_recent_pings(db, [s.id for s in screens], history)

    targets = [
        ScreenTarget(
            id=screen.id,
            ip=screen.ip,
            installation_code=screen.installation_code,
            assigned_user=recipient_from_user(screen.assigned_user),
            manager=recipient_from_user(screen_manager(screen)),
            recent_pings=recent.get(screen.id, []),
            downtime_notified=bool(screen.downtime_notified),
        )
        for screen in screens
    ]
    logger.debug(f"[PING] Active screens to probe: {len(targets)}")
    return targets


async def probe_screen(client: httpx.AsyncClient, target: ScreenTarget,
                       timeout: Optional[float] = None) -> bool:
    timeout = settings.PING_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        resp = await client.get(f"http://{target.ip}", timeout=timeout)
        up = 200 <= resp.status_code < 600
        logger.debug(f"[PING] {target.installation_code} ({target.ip}) → HTTP {resp.status_code}")
        return up
    except httpx.HTTPError as e:
        logger.warning(f"[PING] {target.installation_code} ({target.ip}) unreachable: {type(e).__name__}: {e}")
        return False


def should_escalate(up: bool, recent: Sequence[bool], window: Optional[int] = None,
                    already_notified: bool = False) -> bool:
    """Down now, exactly `window` previous samples all down, streak not yet acknowledged."""
    window = settings.PING_HISTORY_WINDOW if window is None else window
    if up or already_notified:
        return False
    last = list(recent)[:window]
    return len(last) == window and not any(last)


async def escalate_downtime(target: ScreenTarget, dispatcher: NotificationDispatcher,
                            window: Optional[int] = None):
    window = settings.PING_HISTORY_WINDOW if window is None else window
    link = screen_url(target.id)
    head = (f"Screen {target.installation_code} ({target.ip}) is unreachable. "
            f"The last {window + 1} checks failed. Screen:")
    subject = f"Screen {target.installation_code} is unreachable"
    logger.warning(f"[PING] Screen {target.installation_code} down, sending notifications")

    for role, recipient in (("technician", target.assigned_user),
                            ("manager", target.manager),
                            ("admin", system_admin_recipient())):
        if recipient is None:
            logger.info(f"[PING] No {role} contact for screen {target.installation_code}, skipped")
            continue
        await dispatcher.send(
            recipient,
            subject=subject,
            text=f"{head} {link}",
            html=f'{escape(head)} <a href="{link}">{link}</a>',
        )


async def _ping_one(client, target, dispatcher) -> PingResult:
    up = await probe_screen(client, target)
    result = PingResult(video_screen=target.id, up=up)
    if should_escalate(up, target.recent_pings, already_notified=target.downtime_notified):
        result.escalated = True
        try:
            await escalate_downtime(target, dispatcher)
        except Exception as e:
            logger.error(f"[PING] Escalation failed for screen {target.id}: {e}", exc_info=True)
    return result


def save_pings(db: Session, results: list[PingResult], targets: list[ScreenTarget]):
    """Write all samples in one transaction and move the streak markers."""
    now = datetime.utcnow()
    by_id = {t.id: t for t in targets}
    try:
        db.add_all([Ping(video_screen_id=r.video_screen, up=r.up, created_at=now) for r in results])

        notified = [r.video_screen for r in results if r.escalated]
        recovered = [r.video_screen for r in results if r.up and by_id[r.video_screen].downtime_notified]
        if notified:
            db.query(VideoScreen).filter(VideoScreen.id.in_(notified)).update(
                {VideoScreen.downtime_notified: True}, synchronize_session=False)
        if recovered:
            db.query(VideoScreen).filter(VideoScreen.id.in_(recovered)).update(
                {VideoScreen.downtime_notified: False}, synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"[PING] Failed to save {len(results)} ping result(s): {e}")
        db.rollback()
        raise
    logger.debug(f"[PING] Saved {len(results)} ping result(s)")


async def ping_all_screens(db: Session, dispatcher: NotificationDispatcher,
                           client: Optional[httpx.AsyncClient] = None) -> list[PingResult]:
    """One monitoring cycle. Errors are logged, never raised to the scheduler."""
    logger.debug("[PING] Cycle started")
    try:
        targets = fetch_active_screens(db)
        if not targets:
            return []

        if client is None:
            async with httpx.AsyncClient(follow_redirects=False) as own_client:
                results = await asyncio.gather(*(_ping_one(own_client, t, dispatcher) for t in targets))
        else:
            results = await asyncio.gather(*(_ping_one(client, t, dispatcher) for t in targets))

        results = list(results)
        save_pings(db, results, targets)
    except Exception as e:
        logger.error(f"[PING] Cycle failed: {e}", exc_info=True)
        return []

    down = sum(1 for r in results if not r.up)
    logger.info(f"[PING] Cycle done: {len(results)} screen(s), {down} down")
    return results


def compute_uptime_percent(samples: Sequence[bool]) -> Optional[int]:
    if not samples:
        return None
    up = sum(1 for s in samples if s)
    # Half-up: 12.5 -> 13
    return (up * 200 + len(samples)) // (len(samples) * 2)


def fetch_screens_with_pings(db: Session) -> list[int]:
    rows = (
        db.query(VideoScreen.id)
        .filter(exists().where(Ping.video_screen_id == VideoScreen.id))
        .all()
    )
    return [row.id for row in rows]


def fetch_pings_since(db: Session, screen_id: int, since: datetime) -> list[bool]:
    rows = (
        db.query(Ping.up)
        .filter(Ping.video_screen_id == screen_id, Ping.created_at >= since)
        .all()
    )
    return [row.up for row in rows]


def calculate_monthly_uptime(db: Session, now: Optional[datetime] = None) -> bool:
    """
    Recompute `uptime` for every screen that has samples.
    Returns True when every screen was processed without error.
    """
    now = now or datetime.utcnow()
    since = now - timedelta(days=settings.UPTIME_WINDOW_DAYS)
    logger.debug("[UPTIME] Monthly calculation started")

    try:
        screen_ids = fetch_screens_with_pings(db)
    except SQLAlchemyError as e:
        logger.error(f"[UPTIME] Failed to list screens: {e}")
        return False

    all_ok = True
    for screen_id in screen_ids:
        try:
            samples = fetch_pings_since(db, screen_id, since)
            uptime = compute_uptime_percent(samples)
            if uptime is None:
                logger.warning(f"[UPTIME] No pings in the last {settings.UPTIME_WINDOW_DAYS} days for screen {screen_id}")
                continue
            db.query(VideoScreen).filter(VideoScreen.id == screen_id).update(
                {VideoScreen.uptime: uptime}, synchronize_session=False)
            db.commit()
            logger.debug(f"[UPTIME] Screen {screen_id}: {uptime}% over {len(samples)} samples")
        except Exception as e:
            all_ok = False
            db.rollback()
            logger.error(f"[UPTIME] Failed for screen {screen_id}: {e}", exc_info=True)

    logger.info(f"[UPTIME] Monthly calculation done for {len(screen_ids)} screen(s)")
    return all_ok
