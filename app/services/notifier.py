"""Delivery email for finished reports."""

import logging
import uuid
from html import escape
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("app.notifier")


@dataclass
class SendResult:
    """Result of a send operation."""

    success: bool
    provider: str
    message_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, provider: str, message_id: str = "") -> "SendResult":
        return cls(success=True, provider=provider, message_id=message_id)

    @classmethod
    def fail(cls, provider: str, error: str) -> "SendResult":
        return cls(success=False, provider=provider, error=error)


def compose(link: str, subject_context: str) -> tuple[str, str, str]:
    """Return (subject, text body, html body) for a report delivery email."""
    subject = f"Your report for {subject_context} is ready"
    text = (
        f"Thanks for your purchase.\n\n"
        f"Your report for {subject_context} is ready. Download it here:\n"
        f"{link}\n"
    )
    html = (
        f"<p>Thanks for your purchase.</p>"
        f"<p>Your report for <b>{escape(subject_context)}</b> is ready.</p>"
        f'<p><a href="{escape(link)}">{escape(link)}</a></p>'
    )
    return subject, text, html


class Notifier(ABC):
    provider_name: str = "base"

    @abstractmethod
    def send(self, to_address: str, link: str, subject_context: str) -> SendResult:
        raise NotImplementedError


class ConsoleNotifier(Notifier):
    """Logs the email instead of sending it (development)."""

    provider_name = "console"

    def send(self, to_address: str, link: str, subject_context: str) -> SendResult:
        subject, text, _ = compose(link, subject_context)
        logger.info("CONSOLE EMAIL to=%s subject=%r\n%s", to_address, subject, text)
        return SendResult.ok(self.provider_name, f"console-{uuid.uuid4().hex[:12]}")


class SESNotifier(Notifier):
    """Sends through AWS Simple Email Service using boto3."""

    provider_name = "ses"

    def __init__(self, client, from_address: str):
        self.client = client
        self.from_address = from_address

    def send(self, to_address: str, link: str, subject_context: str) -> SendResult:
        subject, text, html = compose(link, subject_context)
        try:
            response = self.client.send_email(
                Source=self.from_address,
                Destination={"ToAddresses": [to_address]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {
                        "Text": {"Data": text, "Charset": "UTF-8"},
                        "Html": {"Data": html, "Charset": "UTF-8"},
                    },
                },
            )
        except Exception as e:
            logger.warning("SES send to %s failed: %s", to_address, e)
            return SendResult.fail(self.provider_name, str(e))
        return SendResult.ok(self.provider_name, response.get("MessageId", ""))


def make_ses_client(settings):
    import boto3

    return boto3.client(
        "ses",
        region_name=settings.SES_REGION,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
    )
