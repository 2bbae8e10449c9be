from __future__ import annotations

import logging
import re
import smtplib
import time
from contextlib import contextmanager
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from backend.app.core.config import Settings

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(address: str | None) -> bool:
    return bool(address) and bool(EMAIL_RE.match(address))


class Notifier(Protocol):
    def send(self, to: str, subject: str, html_body: str, text_body: str) -> bool: ...


class EmailClient:
    """SMTP client with bounded retries and linear backoff."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        username: str | None,
        password: str | None,
        sender: str,
        use_ssl: bool = False,
        timeout: int = 10,
        max_retries: int = 3,
        retry_delay: int = 1,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_ssl = use_ssl
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @contextmanager
    def _connection(self):
        server = None
        try:
            if self.use_ssl:
                server = smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout)
                server.starttls()
            if self.username:
                server.login(self.username, self.password or "")
            yield server
        finally:
            if server:
                try:
                    server.quit()
                except smtplib.SMTPException as e:
                    logger.warning("Error closing SMTP connection: %s", e)

    def _build_message(self, to: str, subject: str, html_body: str, text_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(text_body or "", "plain"))
        msg.attach(MIMEText(html_body or text_body or "", "html"))
        return msg

    def send(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        if not is_valid_email(to):
            logger.error("Invalid recipient address: %s", to)
            return False
        if not subject or not (html_body or text_body):
            logger.error("Email to %s has no subject or body", to)
            return False

        msg = self._build_message(to, subject, html_body, text_body)

        for attempt in range(1, self.max_retries + 1):
            try:
                with self._connection() as server:
                    server.sendmail(self.sender, [to], msg.as_string())
                logger.info("Email sent to %s (attempt %s/%s)", to, attempt, self.max_retries)
                return True
            except smtplib.SMTPAuthenticationError:
                logger.error("SMTP authentication failed, not retrying")
                break
            except (smtplib.SMTPException, OSError) as e:
                logger.warning("Attempt %s/%s failed for %s: %s", attempt, self.max_retries, to, e)
                if attempt < self.max_retries:
                    time.sleep(self.retry_delay * attempt)

        logger.error("Failed to send email to %s after %s attempts", to, self.max_retries)
        return False


class NullNotifier:
    """Used when SMTP is not configured: nothing is sent."""

    def send(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        logger.warning("SMTP not configured, email '%s' to %s not sent", subject, to)
        return False


def build_notifier(settings: Settings) -> Notifier:
    if not settings.SMTP_HOST:
        return NullNotifier()
    return EmailClient(
        smtp_host=settings.SMTP_HOST,
        smtp_port=settings.SMTP_PORT,
        username=settings.SMTP_USERNAME,
        password=settings.SMTP_PASSWORD,
        sender=settings.EMAIL_SENDER,
        use_ssl=settings.SMTP_USE_SSL,
        timeout=settings.SMTP_TIMEOUT,
        max_retries=settings.EMAIL_MAX_RETRIES,
        retry_delay=settings.EMAIL_RETRY_DELAY,
    )
