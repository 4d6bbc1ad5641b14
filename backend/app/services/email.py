# backend/app/services/email.py
"""
Transactional email for payroll vouchers.

Config (env):
    NOM_EMAIL_API_KEY   provider key; when unset, messages are only logged (mock)
    NOM_EMAIL_API_URL   JSON endpoint (default: https://api.resend.com/emails)
    NOM_EMAIL_FROM      sender address
    NOM_EMAIL_TIMEOUT   seconds (default 15)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.resend.com/emails"


class EmailDeliveryError(RuntimeError):
    pass


@dataclass
class EmailMessage:
    to: List[str]
    subject: str
    body_html: str
    body_text: Optional[str] = None


class EmailSender:
    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        from_email: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("NOM_EMAIL_API_KEY")
        self.api_url = api_url or os.getenv("NOM_EMAIL_API_URL", DEFAULT_API_URL)
        self.from_email = from_email or os.getenv("NOM_EMAIL_FROM", "nomina@localhost")
        self.timeout = timeout or float(os.getenv("NOM_EMAIL_TIMEOUT", "15"))
        self.session = session or requests.Session()

    @property
    def is_mock(self) -> bool:
        return not self.api_key

    def send(self, message: EmailMessage) -> str:
        """
        Deliver one message. Returns the provider message id ("mock" when no key).

        Raises EmailDeliveryError on transport or provider failure.
        """
        if not message.to:
            raise ValueError("Email without recipients")

        if self.is_mock:
            logger.info("[mock email] to=%s subject=%r (%d bytes html)",
                        ",".join(message.to), message.subject, len(message.body_html or ""))
            return "mock"

        payload = {
            "from": self.from_email,
            "to": message.to,
            "subject": message.subject,
            "html": message.body_html,
        }
        if message.body_text:
            payload["text"] = message.body_text

        try:
            resp = self.session.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise EmailDeliveryError(f"Email transport error: {type(e).__name__}") from e

        if resp.status_code >= 400:
            raise EmailDeliveryError(f"Email provider returned {resp.status_code}: {resp.text[:200]}")

        try:
            msg_id = (resp.json() or {}).get("id") or ""
        except ValueError:
            msg_id = ""
        logger.info("Email sent to %s (id=%s)", ",".join(message.to), msg_id)
        return msg_id


def get_email_sender() -> EmailSender:
    return EmailSender()
