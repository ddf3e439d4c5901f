"""
Send one email via Resend (HTTP API) or SMTP.
Set RESEND_API_KEY, or SMTP_HOST / SMTP_USER / SMTP_PASSWORD in .env. Resend wins when both are set.

Every transport returns a SendOutcome instead of raising, so the dispatcher can decide:
SUCCESS, THROTTLED (transient: 429, 4xx SMTP codes, network errors; retry) or FAILURE (give up on this message).
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import Protocol

import httpx

from app.config import Settings, settings
from app.core.errors import TransportNotConfigured, is_throttle_message

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
SEND_TIMEOUT_SECONDS = 10.0

# SMTP reply codes that mean "try again later"
SMTP_TRANSIENT_CODES = frozenset({421, 450, 451, 452})


class SendOutcome(str, Enum):
    SUCCESS = "success"
    THROTTLED = "throttled"
    FAILURE = "failure"


class EmailTransport(Protocol):
    def send(self, to: str, subject: str, html: str, text: str | None = None) -> SendOutcome:
        ...


class ResendTransport:
    """Resend HTTP API. 429 and network errors are THROTTLED; other non-2xx are FAILURE."""

    def __init__(self, api_key: str, from_email: str, client: httpx.Client | None = None):
        self.api_key = api_key
        self.from_email = from_email
        self._client = client

    def _post(self, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        if self._client is not None:
            return self._client.post(RESEND_API_URL, json=payload, headers=headers)
        with httpx.Client(timeout=SEND_TIMEOUT_SECONDS) as client:
            return client.post(RESEND_API_URL, json=payload, headers=headers)

    def send(self, to: str, subject: str, html: str, text: str | None = None) -> SendOutcome:
        payload = {"from": self.from_email, "to": to, "subject": subject, "html": html}
        if text:
            payload["text"] = text
        try:
            resp = self._post(payload)
        except httpx.TransportError as e:
            logger.warning("Resend request to %s failed (network): %s", to, e)
            return SendOutcome.THROTTLED
        if 200 <= resp.status_code < 300:
            return SendOutcome.SUCCESS
        body = resp.text[:300]
        if resp.status_code == 429 or is_throttle_message(body):
            logger.warning("Resend throttled send to %s: %s", to, body)
            return SendOutcome.THROTTLED
        logger.error("Resend returned %s for %s: %s", resp.status_code, to, body)
        return SendOutcome.FAILURE


class SmtpTransport:
    """Plain SMTP with STARTTLS (port 465 = implicit SSL)."""

    def __init__(self, host: str, port: int, user: str, password: str, from_email: str):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_email = from_email

    def _message(self, to: str, subject: str, html: str, text: str | None) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        if text:
            msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))
        return msg

    def send(self, to: str, subject: str, html: str, text: str | None = None) -> SendOutcome:
        msg = self._message(to, subject, html, text)
        try:
            if self.port == 465:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=SEND_TIMEOUT_SECONDS)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=SEND_TIMEOUT_SECONDS)
            with server:
                if self.port != 465:
                    server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.sendmail(self.from_email, [to], msg.as_string())
            return SendOutcome.SUCCESS
        except smtplib.SMTPResponseException as e:
            if e.smtp_code in SMTP_TRANSIENT_CODES:
                logger.warning("SMTP transient %s for %s: %s", e.smtp_code, to, e.smtp_error)
                return SendOutcome.THROTTLED
            logger.error("SMTP rejected mail to %s: %s %s", to, e.smtp_code, e.smtp_error)
            return SendOutcome.FAILURE
        except (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError, OSError) as e:
            logger.warning("SMTP connection problem sending to %s: %s", to, e)
            return SendOutcome.THROTTLED
        except smtplib.SMTPException as e:
            logger.error("SMTP error sending to %s: %s", to, e)
            return SendOutcome.FAILURE


def get_transport(cfg: Settings = settings) -> EmailTransport:
    """Resend if RESEND_API_KEY is set, else SMTP. Raises TransportNotConfigured when neither is."""
    if cfg.resend_api_key:
        return ResendTransport(cfg.resend_api_key, cfg.planning_from_email)
    if cfg.smtp_host:
        return SmtpTransport(
            cfg.smtp_host,
            cfg.smtp_port,
            (cfg.smtp_user or "").strip(),
            (cfg.smtp_password or "").strip(),
            cfg.planning_from_email,
        )
    raise TransportNotConfigured("No email provider configured (set RESEND_API_KEY or SMTP_HOST)")
