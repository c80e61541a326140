"""Errors raised by the booking engine and its record store."""


class SchedulingError(Exception):
    """Base class for booking engine failures."""


class SlotUnavailable(SchedulingError):
    """The requested interval is outside working hours or overlaps an active booking."""


class InvalidTransition(SchedulingError):
    """The requested status change is not allowed from the booking's current status."""

    def __init__(self, current_status: str, requested_status: str):
        super().__init__(f"Cannot move appointment from '{current_status}' to '{requested_status}'.")
        self.current_status = current_status
        self.requested_status = requested_status


class NotAuthorized(SchedulingError):
    """The acting user may not modify this resource."""


class RecordNotFound(SchedulingError):
    """A referenced row does not exist."""


class StoreError(SchedulingError):
    """The underlying record store failed."""
