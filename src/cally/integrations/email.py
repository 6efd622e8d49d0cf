"""Transactional email through the Gmail API.

A Google service account with domain-wide delegation sends as the
configured Workspace mailbox. The Gmail service is built once and cached;
sends run in asyncio.to_thread() since the client library is blocking.
"""

from __future__ import annotations

import asyncio
import base64
from email.message import EmailMessage
from typing import Any

import structlog
from google.oauth2 import service_account
from googleapiclient.discovery import build

logger = structlog.get_logger(__name__)

GMAIL_SEND_SCOPES = ["https://www.googleapis.com/auth/gmail.send"]


class EmailSender:
    """Sends HTML email as ``sender_address``.

    Args:
        service_account_file: Path to the service account JSON key.
        sender_address: Mailbox the service account impersonates.
    """

    def __init__(self, service_account_file: str, sender_address: str) -> None:
        self._service_account_file = service_account_file
        self._sender_address = sender_address
        self._service: Any = None

    def _gmail(self) -> Any:
        if self._service is None:
            logger.info("email.building_gmail_service", sender=self._sender_address)
            credentials = service_account.Credentials.from_service_account_file(
                self._service_account_file, scopes=GMAIL_SEND_SCOPES
            ).with_subject(self._sender_address)
            self._service = build("gmail", "v1", credentials=credentials, cache_discovery=False)
        return self._service

    def _build_mime_message(
        self, to: str, subject: str, html: str, text: str | None, reply_to: str | None
    ) -> str:
        msg = EmailMessage()
        msg["From"] = self._sender_address
        msg["To"] = to
        msg["Subject"] = subject
        if reply_to:
            msg["Reply-To"] = reply_to
        if text:
            msg.set_content(text)
            msg.add_alternative(html, subtype="html")
        else:
            msg.set_content(html, subtype="html")
        return base64.urlsafe_b64encode(msg.as_bytes()).decode()

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
        reply_to: str | None = None,
    ) -> str:
        """Send one message. Returns the Gmail message id."""
        raw = self._build_mime_message(to, subject, html, text, reply_to)
        service = self._gmail()

        def _send() -> dict:
            return (
                service.users()
                .messages()
                .send(userId="me", body={"raw": raw})
                .execute(num_retries=3)
            )

        logger.info("email.sending", to=to, subject=subject)
        result = await asyncio.to_thread(_send)
        return result.get("id", "")
