"""Notification transports.

Every transport exposes ``send(recipient, template_id, variables)`` and reports
the outcome as a ``SendResult`` instead of raising, so callers treat WhatsApp,
email, or a dry-run logger the same way.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import httpx

from clinic_scheduler.core import config
from clinic_scheduler.core.clock import TimeZoneClock
from clinic_scheduler.core.errors import NotificationDeliveryFailed

logger = logging.getLogger(__name__)

TEMPLATE_REMINDER = 'appointment_reminder'
TEMPLATE_BOOKING_CONFIRMATION = 'booking_confirmation'
TEMPLATE_LAST_MINUTE_CONFIRMATION = 'last_minute_confirmation'

EMAIL_TEMPLATES = {
    TEMPLATE_REMINDER: (
        'Reminder: your appointment at {time}',
        'Hi {name}, this is a reminder of your appointment on {date} from {time} to {end_time}.',
    ),
    TEMPLATE_BOOKING_CONFIRMATION: (
        'Appointment confirmed for {date}',
        'Hi {name}, your appointment on {date} at {time} is confirmed.',
    ),
    TEMPLATE_LAST_MINUTE_CONFIRMATION: (
        'Appointment confirmed: starting soon at {time}',
        'Hi {name}, your appointment today at {time} is confirmed. See you soon.',
    ),
}

# Positional body parameters of the approved WhatsApp templates.
WHATSAPP_TEMPLATE_PARAMETERS = {
    TEMPLATE_REMINDER: ('name', 'date', 'time'),
    TEMPLATE_BOOKING_CONFIRMATION: ('date', 'time'),
    TEMPLATE_LAST_MINUTE_CONFIRMATION: ('time',),
}


@dataclass(frozen=True)
class Recipient:
    name: str
    phone: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: str | None = None


class NotificationSender(Protocol):
    channel: str

    def address_for(self, recipient: Recipient) -> str | None:
        ...

    def send(self, recipient: Recipient, template_id: str, variables: dict[str, str]) -> SendResult:
        ...


def build_message_variables(clock: TimeZoneClock, name: str, start_at: datetime, end_at: datetime | None) -> dict[str, str]:
    variables = {
        'name': name,
        'date': clock.format_date(start_at),
        'time': clock.format_time(start_at),
    }
    if end_at is not None:
        variables['end_time'] = clock.format_time(end_at)
    else:
        variables['end_time'] = variables['time']
    return variables


def _post_json(client: httpx.Client | None, url: str, payload: dict, headers: dict, timeout_seconds: float) -> None:
    """POST ``payload``; raises ``NotificationDeliveryFailed`` unless the API accepted it."""
    try:
        if client is not None:
            response = client.post(url, json=payload, headers=headers)
        else:
            with httpx.Client(timeout=timeout_seconds) as own_client:
                response = own_client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        raise NotificationDeliveryFailed(f'{type(exc).__name__}: {exc}') from exc

    if not response.is_success:
        raise NotificationDeliveryFailed(f'HTTP {response.status_code}: {response.text[:200]}')


class WhatsAppSender:
    channel = 'whatsapp'

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_url: str = config.WHATSAPP_API_URL,
        language: str = config.WHATSAPP_TEMPLATE_LANGUAGE,
        timeout_seconds: float = config.NOTIFICATION_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_url = api_url.rstrip('/')
        self.language = language
        self.timeout_seconds = timeout_seconds
        self._client = client

    def address_for(self, recipient: Recipient) -> str | None:
        if not recipient.phone:
            return None
        digits = ''.join(ch for ch in recipient.phone if ch.isdigit())
        return digits or None

    def build_payload(self, to: str, template_id: str, variables: dict[str, str]) -> dict:
        names = WHATSAPP_TEMPLATE_PARAMETERS.get(template_id, ())
        return {
            'messaging_product': 'whatsapp',
            'to': to,
            'type': 'template',
            'template': {
                'name': template_id,
                'language': {'code': self.language},
                'components': [
                    {
                        'type': 'body',
                        'parameters': [{'type': 'text', 'text': variables.get(name, '')} for name in names],
                    }
                ],
            },
        }

    def send(self, recipient: Recipient, template_id: str, variables: dict[str, str]) -> SendResult:
        to = self.address_for(recipient)
        if to is None:
            return SendResult(success=False, error='Recipient has no phone number.')

        url = f'{self.api_url}/{self.phone_number_id}/messages'
        headers = {'Authorization': f'Bearer {self.access_token}'}
        payload = self.build_payload(to, template_id, variables)

        try:
            _post_json(self._client, url, payload, headers, self.timeout_seconds)
        except NotificationDeliveryFailed as exc:
            return SendResult(success=False, error=str(exc))
        return SendResult(success=True)


class EmailSender:
    channel = 'email'

    def __init__(
        self,
        api_key: str,
        sender: str = config.EMAIL_FROM,
        api_url: str = config.RESEND_API_URL,
        timeout_seconds: float = config.NOTIFICATION_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.timeout_seconds = timeout_seconds
        self._client = client

    def address_for(self, recipient: Recipient) -> str | None:
        return recipient.email or None

    def send(self, recipient: Recipient, template_id: str, variables: dict[str, str]) -> SendResult:
        to = self.address_for(recipient)
        if to is None:
            return SendResult(success=False, error='Recipient has no email address.')
        if template_id not in EMAIL_TEMPLATES:
            return SendResult(success=False, error=f'Unknown template: {template_id}')

        subject, body = EMAIL_TEMPLATES[template_id]
        try:
            payload = {
                'from': self.sender,
                'to': [to],
                'subject': subject.format(**variables),
                'text': body.format(**variables),
            }
        except KeyError as exc:
            return SendResult(success=False, error=f'Missing template variable: {exc}')

        headers = {'Authorization': f'Bearer {self.api_key}'}
        try:
            _post_json(self._client, self.api_url, payload, headers, self.timeout_seconds)
        except NotificationDeliveryFailed as exc:
            return SendResult(success=False, error=str(exc))
        return SendResult(success=True)


class LoggingSender:
    """Dry-run transport used when no credentials are configured."""

    def __init__(self, channel: str) -> None:
        self.channel = channel

    def address_for(self, recipient: Recipient) -> str | None:
        return recipient.phone if self.channel == 'whatsapp' else recipient.email

    def send(self, recipient: Recipient, template_id: str, variables: dict[str, str]) -> SendResult:
        if not self.address_for(recipient):
            return SendResult(success=False, error=f'Recipient has no {self.channel} address.')
        logger.info('[DRY RUN] %s %s to %s', self.channel, template_id, recipient.name)
        return SendResult(success=True)


@dataclass(frozen=True)
class NotificationChannels:
    """``primary`` gates reminder completion; ``secondary`` is best-effort."""

    primary: NotificationSender
    secondary: tuple[NotificationSender, ...] = ()


def build_default_channels() -> NotificationChannels:
    if config.WHATSAPP_ACCESS_TOKEN and config.WHATSAPP_PHONE_NUMBER_ID:
        primary = WhatsAppSender(config.WHATSAPP_ACCESS_TOKEN, config.WHATSAPP_PHONE_NUMBER_ID)
    else:
        logger.warning('WhatsApp credentials missing; reminders will be logged instead of sent.')
        primary = LoggingSender('whatsapp')

    if config.RESEND_API_KEY:
        email = EmailSender(config.RESEND_API_KEY)
    else:
        email = LoggingSender('email')

    return NotificationChannels(primary=primary, secondary=(email,))
