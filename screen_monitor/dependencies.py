# screen_monitor/dependencies.py
"""FastAPI dependencies shared by the routers."""

from fastapi import Request
from screen_monitor.services.notification_service import NotificationDispatcher, build_dispatcher


def get_dispatcher(request: Request) -> NotificationDispatcher:
    """The dispatcher built at startup; falls back to one built from settings."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        dispatcher = build_dispatcher()
        request.app.state.dispatcher = dispatcher
    return dispatcher
