"""SMTP sender used by the email application path."""
from __future__ import annotations

import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

from autoapply.errors import ExternalServiceError
from autoapply.log import get_logger
from autoapply.retry import retry

log = get_logger(__name__)


class SmtpMailer:
    def __init__(self, host: str, port: int, user: str, password: str, from_addr: str = "") -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_addr = from_addr or user

    @property
    def configured(self) -> bool:
        return all([self.host, self.user, self.password])

    @retry(max_attempts=3, base_delay=3.0, retryable=(smtplib.SMTPException, OSError))
    def _smtp_send(self, to_addr: str, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            server.starttls()
            server.login(self.user, self.password)
            server.sendmail(self.from_addr, [to_addr], msg.as_string())

    def send(
        self,
        to_addr: str,
        subject: str,
        body: str,
        *,
        reply_to: str = "",
        attachments: list[Path] | None = None,
    ) -> None:
        if not self.configured:
            raise ExternalServiceError("SMTP not configured (set SMTP_HOST, SMTP_USER, SMTP_PASSWORD)")

        msg = MIMEMultipart()
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = to_addr
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.attach(MIMEText(body, "plain", "utf-8"))
        for path in attachments or []:
            part = MIMEApplication(path.read_bytes(), Name=path.name)
            part["Content-Disposition"] = f'attachment; filename="{path.name}"'
            msg.attach(part)

        try:
            self._smtp_send(to_addr, msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise ExternalServiceError(f"SMTP send failed: {exc}") from exc
        log.info("Application email sent to %s", to_addr)
