"""Email backend implementations for lifecycle delivery."""

from __future__ import annotations

import asyncio
import re
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, List, Optional, Protocol

import boto3
from loguru import logger

from bakeriq_api.core.settings import Settings

_SES_TAG_UNSAFE = re.compile(r"[^A-Za-z0-9_-]+")


class EmailBackend(Protocol):
    """Delivery capability: returns True only when the provider accepted the message."""

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str | None,
        *,
        body_html: str,
        idempotency_key: str | None = None,
    ) -> bool:
        ...


class SESEmailBackend:
    """Amazon SES backend offloading the blocking boto3 call to a thread."""

    def __init__(
        self,
        *,
        region: str,
        sender: str,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client: Any | None = None,
    ) -> None:
        self._sender = sender
        self._client = client or boto3.client(
            "ses",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str | None,
        *,
        body_html: str,
        idempotency_key: str | None = None,
    ) -> bool:
        body: dict[str, Any] = {"Html": {"Data": body_html, "Charset": "UTF-8"}}
        if body_text:
            body["Text"] = {"Data": body_text, "Charset": "UTF-8"}
        request: dict[str, Any] = {
            "Source": self._sender,
            "Destination": {"ToAddresses": [recipient]},
            "Message": {"Subject": {"Data": subject, "Charset": "UTF-8"}, "Body": body},
        }
        if idempotency_key:
            request["Tags"] = [{"Name": "idempotency_key", "Value": _SES_TAG_UNSAFE.sub("_", idempotency_key)}]

        await asyncio.to_thread(self._client.send_email, **request)
        return True


class SMTPEmailBackend:
    """SMTP-powered backend that sends emails via standard library."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        use_tls: bool,
        sender: str,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._sender = sender

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str | None,
        *,
        body_html: str,
        idempotency_key: str | None = None,
    ) -> bool:
        """Send email asynchronously by offloading blocking call."""

        message = _build_message(recipient, subject, body_text, body_html, idempotency_key)
        message["From"] = self._sender
        await asyncio.to_thread(self._send, message)
        return True

    def _send(self, message: EmailMessage) -> None:
        smtp = smtplib.SMTP(self._host, self._port, timeout=10)
        try:
            if self._use_tls:
                smtp.starttls()
            if self._username and self._password:
                smtp.login(self._username, self._password)
            smtp.send_message(message)
        finally:
            smtp.quit()


class DisabledEmailBackend:
    """Backend used when no provider is configured; nothing is ever delivered."""

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str | None,
        *,
        body_html: str,
        idempotency_key: str | None = None,
    ) -> bool:
        logger.info("Email delivery disabled, skipping send", recipient=recipient, subject=subject)
        return False


@dataclass
class InMemoryEmailBackend:
    """Test backend storing outbound messages in memory."""

    sent_messages: List[EmailMessage] = field(default_factory=list)
    fail_with: Exception | None = None
    accept: bool = True
    attempts: int = 0

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str | None,
        *,
        body_html: str,
        idempotency_key: str | None = None,
    ) -> bool:
        self.attempts += 1
        if self.fail_with is not None:
            raise self.fail_with
        if not self.accept:
            return False
        self.sent_messages.append(_build_message(recipient, subject, body_text, body_html, idempotency_key))
        return True


def _build_message(
    recipient: str,
    subject: str,
    body_text: str | None,
    body_html: str,
    idempotency_key: str | None,
) -> EmailMessage:
    message = EmailMessage()
    message["To"] = recipient
    message["Subject"] = subject
    if idempotency_key:
        message["X-Idempotency-Key"] = idempotency_key
    message.set_content(body_text or "")
    message.add_alternative(body_html, subtype="html")
    return message


def build_email_backend(settings: Settings) -> EmailBackend:
    """Construct the configured delivery backend."""

    sender = formataddr((settings.email_from_name, settings.email_from_address))
    if settings.email_backend == "ses":
        access_key_id, secret_access_key = settings.aws_access_key_id, settings.aws_secret_access_key
        if not access_key_id or not secret_access_key:
            # None lets boto3 walk its default credential provider chain.
            logger.info("SES backend using the default AWS credential chain", region=settings.aws_ses_region)
            access_key_id = secret_access_key = None
        return SESEmailBackend(
            region=settings.aws_ses_region,
            sender=sender,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
        )
    if settings.email_backend == "smtp":
        if not settings.smtp_host:
            logger.warning("SMTP backend selected without host; delivery disabled")
            return DisabledEmailBackend()
        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=sender,
        )
    return DisabledEmailBackend()


__all__ = [
    "DisabledEmailBackend",
    "EmailBackend",
    "InMemoryEmailBackend",
    "SESEmailBackend",
    "SMTPEmailBackend",
    "build_email_backend",
]
