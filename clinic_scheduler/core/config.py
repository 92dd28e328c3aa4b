import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic_scheduler.db")

BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "Asia/Kolkata")
# 0 = Monday ... 6 = Sunday
WEEKLY_CLOSURE_DAY = int(os.getenv("WEEKLY_CLOSURE_DAY", "6"))
MIN_BOOKING_LEAD_SECONDS = int(os.getenv("MIN_BOOKING_LEAD_SECONDS", "60"))

REMINDERS_ENABLED = _get_bool(os.getenv("REMINDERS_ENABLED"), default=True)
REMINDER_LEAD_MINUTES = int(os.getenv("REMINDER_LEAD_MINUTES", "60"))
REMINDER_POLL_INTERVAL_MINUTES = int(os.getenv("REMINDER_POLL_INTERVAL_MINUTES", "10"))
REMINDER_WORKER_CONCURRENCY = int(os.getenv("REMINDER_WORKER_CONCURRENCY", "5"))
REMINDER_JOB_TIMEOUT_SECONDS = float(os.getenv("REMINDER_JOB_TIMEOUT_SECONDS", "30"))
REMINDER_WORKER_IDLE_SECONDS = float(os.getenv("REMINDER_WORKER_IDLE_SECONDS", "2"))
REMINDER_MAX_ATTEMPTS = int(os.getenv("REMINDER_MAX_ATTEMPTS", "0"))

WHATSAPP_API_URL = os.getenv("WHATSAPP_API_URL", "https://graph.facebook.com/v19.0")
WHATSAPP_PHONE_NUMBER_ID = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
WHATSAPP_ACCESS_TOKEN = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
WHATSAPP_TEMPLATE_LANGUAGE = os.getenv("WHATSAPP_TEMPLATE_LANGUAGE", "en")

RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "noreply@example.com")

NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "20"))


def validate_runtime_config() -> None:
    from clinic_scheduler.core.clock import TimeZoneClock
    from clinic_scheduler.core.errors import ConfigurationError

    TimeZoneClock(BUSINESS_TIMEZONE)

    if not 0 <= WEEKLY_CLOSURE_DAY <= 6:
        raise ConfigurationError("WEEKLY_CLOSURE_DAY must be between 0 (Monday) and 6 (Sunday).")
    if REMINDER_POLL_INTERVAL_MINUTES <= 0:
        raise ConfigurationError("REMINDER_POLL_INTERVAL_MINUTES must be positive.")
    if REMINDER_WORKER_CONCURRENCY <= 0:
        raise ConfigurationError("REMINDER_WORKER_CONCURRENCY must be positive.")
    if REMINDER_JOB_TIMEOUT_SECONDS <= 0:
        raise ConfigurationError("REMINDER_JOB_TIMEOUT_SECONDS must be positive.")
    if REMINDER_LEAD_MINUTES < 0:
        raise ConfigurationError("REMINDER_LEAD_MINUTES cannot be negative.")
    if MIN_BOOKING_LEAD_SECONDS < 0:
        raise ConfigurationError("MIN_BOOKING_LEAD_SECONDS cannot be negative.")
    if APP_ENV.lower() == "production" and REMINDERS_ENABLED and not (WHATSAPP_ACCESS_TOKEN and WHATSAPP_PHONE_NUMBER_ID):
        raise ConfigurationError("WHATSAPP_ACCESS_TOKEN and WHATSAPP_PHONE_NUMBER_ID are required in production.")
