"""Calendar domain errors."""

from __future__ import annotations

from src.cally.core.errors import DomainError, NotFoundError


class CalendarEventNotFound(NotFoundError):
    def __init__(self, event_id: str) -> None:
        super().__init__("Event not found")
        self.event_id = event_id


class InvalidEventTimes(DomainError):
    """Raised for unparseable times or an end that is not after the start."""


class EventNotCancellable(DomainError):
    def __init__(self, status: str) -> None:
        super().__init__(f"Booking cannot be cancelled (status: {status})")
        self.status = status


class VideoNotConfigured(DomainError):
    def __init__(self) -> None:
        super().__init__("Video conferencing is not configured")


class VideoProvisioningFailed(DomainError):
    status_code = 500

    def __init__(self) -> None:
        super().__init__("Failed to create video room")


class RecurringVideoUnsupported(DomainError):
    def __init__(self) -> None:
        super().__init__("Video conferencing is not supported for recurring events")


class NoVideoRoom(DomainError):
    def __init__(self) -> None:
        super().__init__("Event does not have a video room")
