"""
Notifications
=============

Delivery of detection notifications.

This module provides:
    - build_notification: subject/body layout shared by every backend
    - Notifier: protocol used by the batch processor
    - SmtpNotifier: e-mail with the winning frame attached
    - LogNotifier: writes the notification to the log (development)

Design Rules:
    - One best-effort attempt per detection, no retries
    - Every backend failure surfaces as NotificationError
"""

import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from typing import List, Optional, Protocol


logger = logging.getLogger(__name__)


NOTIFICATION_TIME_FORMAT = "%Y-%m-%d_%H:%M:%S"
DEFAULT_ATTACHMENT_NAME = "person.jpg"


class NotificationError(Exception):
    """Raised when a notification cannot be delivered."""
    pass


@dataclass(frozen=True, slots=True)
class Notification:
    """
    Content of one detection notification.

    Attributes:
        subject: Camera (stream) name
        body: Camera name, storage key and time
        attachment: JPEG bytes of the winning frame
        attachment_name: Attachment file name
        storage_key: Key the frame was stored under
    """

    subject: str
    body: str
    attachment: bytes
    attachment_name: str
    storage_key: str

    def __repr__(self) -> str:
        return (
            f"Notification(subject={self.subject!r}, storage_key={self.storage_key!r}, "
            f"attachment={len(self.attachment)} bytes)"
        )


def build_notification(
    camera_name: str,
    storage_key: str,
    timestamp: datetime,
    attachment: bytes,
    attachment_name: str = DEFAULT_ATTACHMENT_NAME,
) -> Notification:
    """Build the notification for a stored detection."""
    body = (
        f"Camera : {camera_name}\n"
        f"Database name : {storage_key}\n"
        f"Time : {timestamp.strftime(NOTIFICATION_TIME_FORMAT)}"
    )
    return Notification(
        subject=camera_name,
        body=body,
        attachment=attachment,
        attachment_name=attachment_name,
        storage_key=storage_key,
    )


class Notifier(Protocol):
    """Protocol for notification backends."""

    def notify(
        self,
        subject: str,
        body: str,
        attachment: bytes,
        attachment_name: str,
        storage_key: str,
    ) -> None:
        """
        Deliver one notification.

        Raises:
            NotificationError: If delivery fails
        """
        ...


class SmtpNotifier:
    """
    E-mail notifier over SMTP.

    Opens one connection per notification; notifications are rare
    (at most one per batch) so no connection is kept open.

    Attributes:
        host: SMTP host
        port: SMTP port
        sender: From address
        recipients: To addresses
    """

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        recipients: List[str],
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        if not recipients:
            raise ValueError("SmtpNotifier requires at least one recipient")

        self.host = host
        self.port = port
        self.sender = sender
        self.recipients = list(recipients)
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

        logger.info(
            f"SmtpNotifier initialized: {host}:{port}, recipients={self.recipients}"
        )

    def build_message(
        self,
        subject: str,
        body: str,
        attachment: bytes,
        attachment_name: str,
    ) -> EmailMessage:
        """Build the MIME message with the image attached."""
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = ", ".join(self.recipients)
        message["Subject"] = subject
        message.set_content(body)
        message.add_attachment(
            attachment,
            maintype="image",
            subtype="jpeg",
            filename=attachment_name,
        )
        return message

    def notify(
        self,
        subject: str,
        body: str,
        attachment: bytes,
        attachment_name: str,
        storage_key: str,
    ) -> None:
        message = self.build_message(subject, body, attachment, attachment_name)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Failed to send email for {storage_key}: {e}")

        logger.info(f"EMAIL : Sent image \"{storage_key}\" to: {', '.join(self.recipients)}")


class LogNotifier:
    """Notifier that only logs; used when no mail server is configured."""

    def __init__(self) -> None:
        self.sent_count: int = 0

    def notify(
        self,
        subject: str,
        body: str,
        attachment: bytes,
        attachment_name: str,
        storage_key: str,
    ) -> None:
        self.sent_count += 1
        logger.info(
            f"NOTIFY [{subject}] {body!r} "
            f"(attachment {attachment_name}, {len(attachment)} bytes)"
        )
