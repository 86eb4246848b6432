"""Domain errors raised by the booking services.

Each error carries the HTTP status and client-facing message the API layer
responds with.
"""

from fastapi import status


class BookingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Booking request failed.'

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Required fields are missing.'


class ConflictError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Slot already exists.'


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Slot not found.'


class SlotUnavailableError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Slot is not (or no longer) available.'


class SlotFullError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Slot is fully booked.'


class StorageFailure(BookingError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Something went wrong. Please try again later.'


class CalendarSyncError(Exception):
    """Raised by the calendar client when an event cannot be created."""
