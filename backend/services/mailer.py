"""
Email notifications for new bookings.

Sends two messages per booking over SMTP:
- an admin notification with the client's contact details
- a confirmation to the client
"""

import logging
import smtplib
from datetime import datetime
from email.message import EmailMessage
from html import escape
from zoneinfo import ZoneInfo

from backend.core import config
from backend.core.clock import as_utc
from backend.models.booking import Booking

logger = logging.getLogger(__name__)

# Well-known SMTP services, selectable with SMTP_SERVICE
SMTP_SERVICES = {
    "gmail": ("smtp.gmail.com", 465),
    "outlook": ("smtp-mail.outlook.com", 587),
    "hotmail": ("smtp-mail.outlook.com", 587),
    "office365": ("smtp.office365.com", 587),
    "yahoo": ("smtp.mail.yahoo.com", 465),
}

SMTP_TIMEOUT_SECONDS = 20
DATETIME_FORMAT = "%d/%m/%Y %H:%M"
TIME_FORMAT = "%H:%M"


def resolve_smtp_server(service: str, host: str = "", port: int | None = None) -> tuple[str, int]:
    if host:
        return host, port or 587

    try:
        default_host, default_port = SMTP_SERVICES[service.strip().lower()]
    except KeyError as exc:
        raise ValueError(f"Unknown SMTP service: {service}") from exc

    return default_host, port or default_port


class SmtpMailer:
    def __init__(self, host: str, port: int, username: str, password: str):
        self.host = host
        self.port = port
        self.username = username
        self.password = password

    def _connect(self) -> smtplib.SMTP:
        if self.port == 465:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS)

        server = smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS)
        server.starttls()
        return server

    def send(self, sender: str, recipient: str, subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable email client.")
        message.add_alternative(html, subtype="html")

        with self._connect() as server:
            server.login(self.username, self.password)
            server.send_message(message)


def _local(value: datetime, time_zone: str) -> datetime:
    return as_utc(value).astimezone(ZoneInfo(time_zone))


def render_admin_notification(booking: Booking, time_zone: str = "UTC") -> str:
    return (
        "<h3>New consultation booked</h3>"
        f"<p><strong>Name:</strong> {escape(booking.name)}</p>"
        f"<p><strong>Email:</strong> {escape(booking.email)}</p>"
        f"<p><strong>Phone:</strong> {escape(booking.phone or 'Not provided')}</p>"
        f"<p><strong>Date/time:</strong> {_local(booking.start_time, time_zone).strftime(DATETIME_FORMAT)}"
        f" - {_local(booking.end_time, time_zone).strftime(TIME_FORMAT)}</p>"
    )


def render_client_confirmation(booking: Booking, time_zone: str = "UTC") -> str:
    return (
        "<h3>Consultation confirmation</h3>"
        f"<p>Dear {escape(booking.name)},</p>"
        "<p>Your consultation is scheduled for "
        f"<strong>{_local(booking.start_time, time_zone).strftime(DATETIME_FORMAT)}</strong>.</p>"
        "<p>We look forward to meeting you!</p>"
    )


class BookingNotifier:
    def __init__(self, mailer: SmtpMailer, sender: str, admin_address: str, time_zone: str = "UTC"):
        self.mailer = mailer
        self.sender = sender
        self.admin_address = admin_address
        self.time_zone = time_zone

    def notify(self, booking: Booking) -> bool:
        """Send the admin notification and the client confirmation.

        Returns True only when both messages went out. Each failure is logged
        on its own so one bad address does not hide the other send.
        """
        messages = [
            (self.admin_address, "New consultation booked", render_admin_notification(booking, self.time_zone)),
            (booking.email, "Consultation confirmation", render_client_confirmation(booking, self.time_zone)),
        ]

        delivered = True
        for recipient, subject, html in messages:
            try:
                self.mailer.send(self.sender, recipient, subject, html)
            except (smtplib.SMTPException, OSError):
                delivered = False
                logger.exception("Mail '%s' for booking %s failed", subject, booking.id)

        return delivered


def build_notifier() -> BookingNotifier | None:
    if not config.email_configured():
        logger.info("Email not configured - set EMAIL_USER and EMAIL_PASS to enable notifications")
        return None

    try:
        host, port = resolve_smtp_server(config.SMTP_SERVICE, config.SMTP_HOST, config.SMTP_PORT)
    except ValueError:
        logger.exception("Email setup failed")
        return None

    mailer = SmtpMailer(host, port, config.EMAIL_USER, config.EMAIL_PASS)
    logger.info("Email transporter configured (%s:%s)", host, port)
    return BookingNotifier(
        mailer,
        sender=config.EMAIL_FROM,
        admin_address=config.ADMIN_EMAIL,
        time_zone=config.CALENDAR_TIME_ZONE,
    )
