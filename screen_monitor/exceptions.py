# screen_monitor/exceptions.py
"""
Named error signals raised by the core operations.

Routers translate these into HTTP status codes; anything not listed here is
an unexpected failure and ends up in the global 500 handler.
"""

from typing import Optional


class ScreenMonitorError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class RecordNotUniqueError(ScreenMonitorError):
    """A record with the same identity already exists (expected rejection)."""

    def __init__(self, collection: str, field: str, details: Optional[dict] = None):
        self.collection = collection
        self.field = field
        super().__init__(f"Value for field '{field}' in collection '{collection}' has to be unique", details)


class MissingScreenError(ScreenMonitorError):
    """An incident was submitted without a screen reference."""

    def __init__(self):
        super().__init__("video_screen is required")


class ResourceNotFoundError(ScreenMonitorError):
    def __init__(self, resource_type: str, resource_id=None):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = resource_type
        if resource_id is not None:
            message += f" with id '{resource_id}'"
        super().__init__(message + " not found")


class IncidentNotFoundError(ResourceNotFoundError):
    def __init__(self, incident_id):
        super().__init__("Incident", incident_id)


class CheckNotFoundError(ResourceNotFoundError):
    def __init__(self, check_id):
        super().__init__("Check", check_id)


class NotificationDeliveryError(ScreenMonitorError):
    """A transport rejected or failed to deliver a message."""

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(f"{channel}: {message}")
