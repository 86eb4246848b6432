import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./bookings.db")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["*"])

ADMIN_BOOKINGS_LIMIT = int(os.getenv("ADMIN_BOOKINGS_LIMIT", "50"))


EMAIL_USER = os.getenv("EMAIL_USER", "")
EMAIL_PASS = os.getenv("EMAIL_PASS", "")
EMAIL_FROM = os.getenv("EMAIL_FROM") or EMAIL_USER
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL") or EMAIL_USER
SMTP_SERVICE = os.getenv("SMTP_SERVICE", "gmail")
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT") or 0) or None

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REFRESH_TOKEN = os.getenv("GOOGLE_REFRESH_TOKEN", "")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
CALENDAR_TIME_ZONE = os.getenv("CALENDAR_TIME_ZONE", "Europe/Brussels")
SYNC_TO_GOOGLE = _get_bool(os.getenv("SYNC_TO_GOOGLE"), default=False)


def email_configured() -> bool:
    return bool(EMAIL_USER and EMAIL_PASS)


def calendar_configured() -> bool:
    return bool(GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET and GOOGLE_REFRESH_TOKEN)


def validate_runtime_config() -> None:
    if ADMIN_BOOKINGS_LIMIT < 1:
        raise RuntimeError("ADMIN_BOOKINGS_LIMIT must be a positive integer.")
