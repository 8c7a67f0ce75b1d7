"""
Outbound email through an SMTP relay, plus an in-memory outbox for tests.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass, field
from email.header import Header
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

VERIFICATION_SUBJECT = "Your verification code • SnapBox"
RELAY_SUBJECT = "Software developed by FCB Health"


class MailDeliveryError(Exception):
    """Raised when the relay refuses or cannot be reached."""


class Mailer(Protocol):
    def send(self, to: list[str], subject: str, html: str) -> str:
        ...


def build_message(sender: str, to: list[str], subject: str, html: str) -> MIMEText:
    message = MIMEText(html, "html", "utf-8")
    message["Subject"] = Header(subject, "utf-8")
    message["From"] = sender
    message["To"] = ", ".join(to)
    domain = sender.rsplit("@", 1)[-1].rstrip(">") if "@" in sender else None
    message["Message-ID"] = make_msgid(domain=domain)
    return message


@dataclass
class SentMessage:
    to: list[str]
    subject: str
    html: str
    message_id: str


@dataclass
class InMemoryMailer:
    """Records messages instead of sending them."""

    sender: str = '"SnapBox" <noreply@example.test>'
    outbox: list[SentMessage] = field(default_factory=list)
    fail: bool = False

    def send(self, to: list[str], subject: str, html: str) -> str:
        if self.fail:
            raise MailDeliveryError("Simulated delivery failure")
        message = build_message(self.sender, to, subject, html)
        self.outbox.append(
            SentMessage(
                to=list(to), subject=subject, html=html, message_id=message["Message-ID"]
            )
        )
        return message["Message-ID"]

    def reset(self) -> None:
        self.outbox.clear()
        self.fail = False


@dataclass
class SmtpMailer:
    """
    Plain SMTP connection upgraded with STARTTLS when the relay offers it.
    """

    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = None
    sender_name: str = "SnapBox"
    timeout: float = 30.0

    @property
    def sender_address(self) -> str:
        return self.username or f"noreply@{self.host}"

    @property
    def sender(self) -> str:
        name = self.sender_name.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{name}" <{self.sender_address}>'

    def send(self, to: list[str], subject: str, html: str) -> str:
        message = build_message(self.sender, to, subject, html)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as mail:
                mail.ehlo()
                if mail.has_extn("starttls"):
                    mail.starttls()
                    mail.ehlo()
                if self.username and self.password:
                    mail.login(self.username, self.password)
                mail.sendmail(self.sender_address, to, message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery to %s failed: %s", to, e)
            raise MailDeliveryError(str(e)) from e
        logger.info("Sent '%s' to %d recipient(s)", subject, len(to))
        return message["Message-ID"]


def render_verification_email(code: str, year: int, ttl_minutes: int = 5) -> str:
    return f"""
      <div style="font-family: Arial, sans-serif; background-color: #f9f9f9; padding: 40px; text-align: center;">
        <h2 style="color: #333;">Hello!</h2>
        <p style="font-size: 16px; color: #555;">
          Your verification code to access SnapBox is:
        </p>
        <div style="margin: 30px 0;">
          <span style="
            font-size: 48px;
            font-weight: bold;
            color: #2c3e50;
            background: #ecf0f1;
            padding: 20px 40px;
            border-radius: 10px;
            display: inline-block;
            letter-spacing: 10px;
          ">{code}</span>
        </div>
        <p style="font-size: 14px; color: #999;">This code expires in {ttl_minutes} minutes.</p>
        <hr style="margin-top: 40px;" />
        <p style="font-size: 12px; color: #ccc;">SnapBox &copy; {year} | Developed by FCB Health</p>
      </div>
    """
