"""Email notifications for appointment state changes."""

import asyncio
import smtplib
import ssl
from collections.abc import Callable
from email.message import EmailMessage
from email.utils import formataddr
from enum import Enum
from typing import Protocol

import structlog

from appointment_service.config import Settings, settings
from appointment_service.core.exceptions import NotificationFailure

logger = structlog.get_logger(__name__)


class NotificationKind(str, Enum):
    """Notification kinds, one per state change."""

    BOOKED = "booked"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    REVISIT = "revisit"
    COMPLETED = "completed"


class Notifier(Protocol):
    """One-way notification sink."""

    async def notify(
        self,
        kind: NotificationKind,
        recipient_email: str | None,
        patient_name: str | None,
        doctor_name: str | None,
        date: str,
        time: str,
        reason: str | None = None,
    ) -> None: ...


_SIGNATURE = """
Warm regards,
{clinic_name}
{clinic_phone_line}"""

TEMPLATES: dict[NotificationKind, tuple[str, str]] = {
    NotificationKind.BOOKED: (
        "Appointment request received",
        """Dear {patient_name},

We have received your request for an appointment with {doctor_name}.

Date: {date}
Time: {time}
Doctor: {doctor_name}

This is not yet a confirmation. You will receive another email once the
appointment has been confirmed, and we will let you know if it is rescheduled
or cancelled.
""",
    ),
    NotificationKind.CONFIRMED: (
        "Appointment confirmed",
        """Dear {patient_name},

Your appointment with {doctor_name} is confirmed.

Date: {date}
Time: {time}
Doctor: {doctor_name}

Please arrive 15 minutes early and bring any relevant medical records.
If you need to reschedule or cancel, contact us at least 24 hours in advance.
""",
    ),
    NotificationKind.CANCELLED: (
        "Appointment cancelled",
        """Dear {patient_name},

Your appointment with {doctor_name} on {date} at {time} has been cancelled.

Reason: {reason}

Contact us if you would like to book a new date and time.
""",
    ),
    NotificationKind.RESCHEDULED: (
        "Appointment rescheduled",
        """Dear {patient_name},

Your appointment with {doctor_name} has been moved.

New date: {date}
New time: {time}
Doctor: {doctor_name}

Please arrive 15 minutes early and bring any relevant medical records.
""",
    ),
    NotificationKind.REVISIT: (
        "Follow-up appointment scheduled",
        """Dear {patient_name},

A follow-up appointment with {doctor_name} has been scheduled based on your
previous consultation.

Date: {date}
Time: {time}
Doctor: {doctor_name}
Purpose: {reason}

Please bring reports from your previous visit and a list of your current
medications.
""",
    ),
    NotificationKind.COMPLETED: (
        "Appointment completed",
        """Dear {patient_name},

Your appointment with {doctor_name} on {date} has been marked as completed.

Please follow the instructions your doctor gave you and book a follow-up if
one was recommended.
""",
    ),
}


def render_notification(
    kind: NotificationKind,
    patient_name: str | None,
    doctor_name: str | None,
    date: str,
    time: str,
    reason: str | None = None,
    config: Settings = settings,
) -> tuple[str, str]:
    """Return ``(subject, body)`` for a notification."""
    subject, body = TEMPLATES[kind]
    fields = {
        "patient_name": patient_name or "Patient",
        "doctor_name": doctor_name or "your doctor",
        "date": date,
        "time": time,
        "reason": reason or "not specified",
        "clinic_name": config.clinic_name,
        "clinic_phone_line": f"Phone: {config.clinic_phone}" if config.clinic_phone else "",
    }
    text = (body + _SIGNATURE).format(**fields).rstrip() + "\n"
    return f"{subject} - {config.clinic_name}", text


class EmailNotificationService:
    """SMTP-backed notifier. Delivery runs in a worker thread with a bounded timeout."""

    def __init__(
        self,
        config: Settings = settings,
        smtp_factory: Callable[..., smtplib.SMTP] | None = None,
    ):
        self.config = config
        self.smtp_factory = smtp_factory

    async def notify(
        self,
        kind: NotificationKind,
        recipient_email: str | None,
        patient_name: str | None,
        doctor_name: str | None,
        date: str,
        time: str,
        reason: str | None = None,
    ) -> None:
        """
        Send a notification email.

        Missing recipients and disabled or unconfigured delivery are logged and
        skipped.

        Raises:
            NotificationFailure: If the SMTP exchange fails or times out
        """
        if not self.config.notifications_enabled:
            logger.debug("notification_disabled", kind=kind.value)
            return

        if not recipient_email or not recipient_email.strip():
            logger.warning("notification_skipped_no_recipient", kind=kind.value)
            return

        if not self.config.smtp_configured:
            logger.info(
                "notification_skipped_smtp_unconfigured",
                kind=kind.value,
                recipient=recipient_email,
            )
            return

        subject, body = render_notification(
            kind, patient_name, doctor_name, date, time, reason, config=self.config
        )
        message = self._build_message(recipient_email.strip(), subject, body)

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._send, message),
                timeout=self.config.smtp_timeout * 2,
            )
        except Exception as e:
            logger.error(
                "email_send_failed",
                kind=kind.value,
                recipient=recipient_email,
                error=str(e),
            )
            raise NotificationFailure(f"Failed to send {kind.value} email: {e}") from e

        logger.info("email_sent", kind=kind.value, recipient=recipient_email)

    def _build_message(self, recipient: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((self.config.mail_sender_name, self.config.mail_sender))
        message["To"] = recipient
        message.set_content(body)
        return message

    def _send(self, message: EmailMessage) -> None:
        host = self.config.smtp_host
        port = self.config.smtp_port
        timeout = self.config.smtp_timeout

        if self.smtp_factory is not None:
            server = self.smtp_factory(host, port, timeout=timeout)
        elif port == 465:
            server = smtplib.SMTP_SSL(
                host, port, context=ssl.create_default_context(), timeout=timeout
            )
        else:
            server = smtplib.SMTP(host, port, timeout=timeout)

        with server:
            if self.config.smtp_use_tls and port != 465:
                server.starttls(context=ssl.create_default_context())
            if self.config.smtp_username:
                server.login(self.config.smtp_username, self.config.smtp_password)
            server.send_message(message)
