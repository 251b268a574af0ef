"""
License notifications: template rendering plus email and Discord delivery.

Notifiers expose a single ``notify(event)`` method. The dispatcher calls
each of them and never lets a delivery failure escape, so the operation
that triggered the event has already succeeded by the time anything here
runs.
"""
import logging
import re
import smtplib
import ssl
import threading
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional, Protocol, Sequence

import httpx

from licensa.core.errors import NotificationError
from licensa.models.license import License
from licensa.models.settings import DEFAULT_SMTP_PORT, AppSettings
from licensa.services.security import mask_key

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_NAME = "Default"
BUILTIN_TEMPLATES = {
    "Default": "Your license has been {{type}}. Key: {{key}}",
    "Professional": (
        "Dear {{clientName}},\n\nYour Professional License has been {{type}}.\n"
        "Key: {{key}}\n\nThank you for choosing our service."
    ),
    "Urgent": "ACTION REQUIRED: Your license was {{type}}.\nKey: {{key}}\n\nPlease keep this safe.",
}
DISCORD_API_BASE = "https://discord.com/api/v10"
SMTP_SSL_PORT = 465

_PLACEHOLDER = re.compile(r"\{\{(type|key|clientName)\}\}")


@dataclass(frozen=True)
class LicenseEvent:
    """Snapshot of a license at the moment something happened to it."""

    event_type: str
    key: str
    client_name: str
    email: Optional[str] = None
    discord_id: Optional[str] = None

    @classmethod
    def from_license(cls, record: License, event_type: str) -> "LicenseEvent":
        return cls(
            event_type=event_type,
            key=record.key,
            client_name=record.client_name,
            email=record.email,
            discord_id=record.discord_id,
        )


@dataclass(frozen=True)
class MailConfig:
    host: Optional[str]
    port: int = DEFAULT_SMTP_PORT
    user: Optional[str] = None
    password: Optional[str] = None
    from_address: Optional[str] = None

    @classmethod
    def from_settings(cls, row: AppSettings) -> "MailConfig":
        return cls(
            host=row.smtp_host or None,
            port=int(row.smtp_port or DEFAULT_SMTP_PORT),
            user=row.smtp_user or None,
            password=row.smtp_password or None,
            from_address=row.smtp_from or None,
        )


def render_template(template: str, event_type: str, key: str, client_name: str) -> str:
    """
    Replace ``{{type}}``, ``{{key}}`` and ``{{clientName}}`` in one pass.

    Substituted values are never rescanned, and any other ``{{...}}`` text is
    left as it is.
    """
    values = {"type": event_type, "key": key, "clientName": client_name}
    return _PLACEHOLDER.sub(lambda match: values[match.group(1)], template)


def select_template(custom_template: Optional[str]) -> str:
    if custom_template and custom_template.strip():
        return custom_template
    return BUILTIN_TEMPLATES[DEFAULT_TEMPLATE_NAME]


class Notifier(Protocol):
    name: str

    def notify(self, event: LicenseEvent) -> bool:
        """Deliver ``event``. False means there was nothing to send."""
        ...


def _open_smtp(config: MailConfig, timeout: float) -> smtplib.SMTP:
    if config.port == SMTP_SSL_PORT:
        return smtplib.SMTP_SSL(
            config.host, config.port, timeout=timeout, context=ssl.create_default_context()
        )
    client = smtplib.SMTP(config.host, config.port, timeout=timeout)
    try:
        client.ehlo()
        if client.has_extn("starttls"):
            client.starttls(context=ssl.create_default_context())
            client.ehlo()
    except Exception:
        client.close()
        raise
    return client


class EmailNotifier:
    name = "email"

    def __init__(self, config: MailConfig, template: Optional[str] = None, timeout: float = 10.0):
        self.config = config
        self.template = select_template(template)
        self.timeout = timeout

    def build_message(self, event: LicenseEvent) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = f"License {event.event_type}"
        msg["From"] = self.config.from_address or self.config.user or ""
        msg["To"] = event.email or ""
        msg.set_content(render_template(self.template, event.event_type, event.key, event.client_name))
        return msg

    def notify(self, event: LicenseEvent) -> bool:
        if not self.config.host or not event.email:
            return False

        msg = self.build_message(event)
        try:
            with _open_smtp(self.config, self.timeout) as client:
                if self.config.user and self.config.password:
                    client.login(self.config.user, self.config.password)
                client.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"Email delivery failed: {exc}", channel=self.name) from exc
        return True


class DiscordNotifier:
    name = "discord"

    def __init__(
        self,
        token: Optional[str],
        channel_id: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.token = token
        self.channel_id = channel_id
        self.timeout = timeout
        self.transport = transport

    def format_message(self, event: LicenseEvent) -> str:
        return f"License {event.event_type} for **{event.client_name}**: `{mask_key(event.key)}`"

    def notify(self, event: LicenseEvent) -> bool:
        if not self.token or not self.channel_id:
            return False

        url = f"{DISCORD_API_BASE}/channels/{self.channel_id}/messages"
        headers = {"Authorization": f"Bot {self.token}"}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, headers=headers, json={"content": self.format_message(event)})
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Discord delivery failed: {exc}", channel=self.name) from exc
        return True


class NotificationDispatcher:
    def __init__(self, notifiers: Sequence[Notifier] = ()):
        self.notifiers = list(notifiers)

    def dispatch(self, event: LicenseEvent) -> dict[str, bool]:
        sent: dict[str, bool] = {}
        for notifier in self.notifiers:
            try:
                sent[notifier.name] = bool(notifier.notify(event))
            except Exception:
                sent[notifier.name] = False
                logger.warning(
                    "Notification via %s failed for license event %s",
                    notifier.name,
                    event.event_type,
                    exc_info=True,
                )
        return sent


def build_notifiers(row: Optional[AppSettings], timeout: float = 10.0) -> list[Notifier]:
    if row is None:
        return []
    return [
        EmailNotifier(MailConfig.from_settings(row), row.license_email_template, timeout=timeout),
        DiscordNotifier(row.discord_token, row.discord_logs_channel_id, timeout=timeout),
    ]


class NotifierRegistry:
    """
    Process-wide holder of the current notifiers.

    Rebuilt from the settings row at startup and after every settings write;
    readers always see either the old or the new dispatcher, never a mix.
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._lock = threading.Lock()
        self._dispatcher = NotificationDispatcher()

    @property
    def dispatcher(self) -> NotificationDispatcher:
        with self._lock:
            return self._dispatcher

    def rebuild(self, row: Optional[AppSettings]) -> NotificationDispatcher:
        dispatcher = NotificationDispatcher(build_notifiers(row, timeout=self.timeout))
        with self._lock:
            self._dispatcher = dispatcher
        logger.info("Notifiers rebuilt", extra={"notifiers": [n.name for n in dispatcher.notifiers]})
        return dispatcher

    def dispatch(self, event: LicenseEvent) -> dict[str, bool]:
        return self.dispatcher.dispatch(event)


def check_smtp_connection(config: MailConfig, timeout: float = 10.0) -> None:
    if not config.host:
        raise NotificationError("SMTP host is required", channel="email")
    try:
        with _open_smtp(config, timeout) as client:
            if config.user and config.password:
                client.login(config.user, config.password)
            client.noop()
    except (smtplib.SMTPException, OSError) as exc:
        raise NotificationError(f"SMTP connection failed: {exc}", channel="email") from exc
