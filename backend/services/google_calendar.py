"""
Google Calendar mirroring for admitted bookings.

Uses a long-lived OAuth refresh token; the access token is refreshed by
google-auth on first use.
"""

import logging

from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from backend.core import config
from backend.core.clock import as_utc
from backend.models.booking import Booking
from backend.services.errors import CalendarSyncError

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = ["https://www.googleapis.com/auth/calendar.events"]


def build_event(booking: Booking, time_zone: str) -> dict:
    """Build the Calendar API event body for a booking.

    Stored times are naive UTC and go out with an explicit +00:00 offset.
    """
    return {
        "summary": f"Consultation: {booking.name}",
        "description": f"Email: {booking.email}\nPhone: {booking.phone or 'n/a'}",
        "start": {
            "dateTime": as_utc(booking.start_time).isoformat(),
            "timeZone": time_zone,
        },
        "end": {
            "dateTime": as_utc(booking.end_time).isoformat(),
            "timeZone": time_zone,
        },
        "attendees": [{"email": booking.email}],
    }


class GoogleCalendarSync:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        calendar_id: str = "primary",
        time_zone: str = "UTC",
        service=None,
    ):
        self.calendar_id = calendar_id
        self.time_zone = time_zone
        self.service = service or self._build_service(client_id, client_secret, refresh_token)

    @staticmethod
    def _build_service(client_id: str, client_secret: str, refresh_token: str):
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=client_id,
            client_secret=client_secret,
            scopes=SCOPES,
        )
        return build("calendar", "v3", credentials=credentials, cache_discovery=False)

    def sync_to_calendar(self, booking: Booking) -> str:
        """Create an event for the booking and return its id."""
        try:
            created_event = self.service.events().insert(
                calendarId=self.calendar_id,
                body=build_event(booking, self.time_zone),
            ).execute()
        except (HttpError, GoogleAuthError, OSError) as e:
            raise CalendarSyncError(f"Failed to create calendar event: {e}") from e

        event_id = created_event.get("id")
        if not event_id:
            raise CalendarSyncError("Calendar API returned an event without an id")

        return event_id


def build_calendar_sync() -> GoogleCalendarSync | None:
    if not config.calendar_configured():
        logger.info("Google Calendar not configured")
        return None

    try:
        calendar = GoogleCalendarSync(
            client_id=config.GOOGLE_CLIENT_ID,
            client_secret=config.GOOGLE_CLIENT_SECRET,
            refresh_token=config.GOOGLE_REFRESH_TOKEN,
            calendar_id=config.GOOGLE_CALENDAR_ID,
            time_zone=config.CALENDAR_TIME_ZONE,
        )
    except (GoogleAuthError, HttpError, OSError, ValueError):
        logger.exception("Google Calendar setup failed")
        return None

    logger.info("Google Calendar configured (sync %s)", "enabled" if config.SYNC_TO_GOOGLE else "disabled")
    return calendar
