from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..config import settings
from .aws import boto3_client

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    to: str
    subject: str
    text_body: str
    html_body: Optional[str] = None


class EmailClient:
    def send(self, message: EmailMessage) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class SesEmailClient(EmailClient):
    def __init__(self) -> None:
        self._client = boto3_client("ses")

    def send(self, message: EmailMessage) -> None:
        body: dict[str, dict[str, str]] = {"Text": {"Data": message.text_body}}
        if message.html_body:
            body["Html"] = {"Data": message.html_body}
        try:
            self._client.send_email(
                Source=settings.email_from,
                Destination={"ToAddresses": [message.to]},
                Message={"Subject": {"Data": message.subject}, "Body": body},
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("SES send_email failed: %s", exc)
            raise RuntimeError("Failed to send email") from exc


class ConsoleEmailClient(EmailClient):
    """Development sink: writes the message to the log instead of sending it."""

    def send(self, message: EmailMessage) -> None:
        logger.info("email_console to=%s subject=%s\n%s", message.to, message.subject, message.text_body)


def get_email_client() -> EmailClient:
    if settings.email_backend == "ses":
        return SesEmailClient()
    return ConsoleEmailClient()
