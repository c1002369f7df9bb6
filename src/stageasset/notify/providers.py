from __future__ import annotations

import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from pathlib import Path
from typing import Protocol

import requests
from jinja2 import Environment, FileSystemLoader, select_autoescape

from stageasset.config import Settings
from stageasset.errors import NotifierError

logger = logging.getLogger(__name__)

templates = Environment(
    loader=FileSystemLoader(str(Path(__file__).resolve().parent / "templates")),
    autoescape=select_autoescape(["html"]),
)


class Notifier(Protocol):
    def send_reminder(
        self,
        *,
        to_email: str,
        recipient_name: str,
        event_name: str,
        deadline: datetime,
        portal_url: str,
        subject: str,
        body: str,
    ) -> None: ...


@dataclass(slots=True)
class OutgoingEmail:
    to: str
    sender: str
    subject: str
    text: str
    html: str


def format_deadline(deadline: datetime) -> str:
    return deadline.strftime("%A, %d %B %Y")


def reminder_html(*, recipient_name: str, event_name: str, deadline: datetime, portal_url: str, body: str) -> str:
    paragraphs = [chunk.split("\n") for chunk in body.split("\n\n") if chunk.strip()]
    return templates.get_template("reminder.html").render(
        recipient_name=recipient_name,
        paragraphs=paragraphs,
        event_name=event_name,
        deadline=format_deadline(deadline),
        portal_url=portal_url,
    )


class EmailNotifier(ABC):
    def __init__(self, sender: str):
        self.sender = sender

    def send_reminder(
        self,
        *,
        to_email: str,
        recipient_name: str,
        event_name: str,
        deadline: datetime,
        portal_url: str,
        subject: str,
        body: str,
    ) -> None:
        if not to_email:
            raise NotifierError("recipient has no email address")
        message = OutgoingEmail(
            to=to_email,
            sender=self.sender,
            subject=subject,
            text=body,
            html=reminder_html(
                recipient_name=recipient_name,
                event_name=event_name,
                deadline=deadline,
                portal_url=portal_url,
                body=body,
            ),
        )
        self.deliver(message)

    @abstractmethod
    def deliver(self, message: OutgoingEmail) -> None: ...


class ConsoleNotifier(EmailNotifier):
    def deliver(self, message: OutgoingEmail) -> None:
        logger.info("Email (console backend) to=%s subject=%s\n%s", message.to, message.subject, message.text)


class SmtpNotifier(EmailNotifier):
    def __init__(
        self,
        *,
        sender: str,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout_sec: int = 30,
    ):
        super().__init__(sender)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout_sec = timeout_sec

    def deliver(self, message: OutgoingEmail) -> None:
        email = EmailMessage()
        email["From"] = message.sender
        email["To"] = message.to
        email["Subject"] = message.subject
        email.set_content(message.text)
        email.add_alternative(message.html, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout_sec) as client:
                if self.use_tls:
                    client.starttls()
                if self.username:
                    client.login(self.username, self.password)
                client.send_message(email)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotifierError(f"SMTP delivery to {message.to} failed: {exc}") from exc
        logger.info("Email sent via SMTP to=%s", message.to)


class SendGridNotifier(EmailNotifier):
    def __init__(self, *, sender: str, api_key: str, api_url: str, timeout_sec: int = 30):
        super().__init__(sender)
        self.api_key = api_key
        self.api_url = api_url
        self.timeout_sec = timeout_sec

    def deliver(self, message: OutgoingEmail) -> None:
        if not self.api_key:
            raise NotifierError("SendGrid API key is not configured")

        payload = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": message.sender},
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.html},
            ],
        }
        try:
            response = requests.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout_sec,
            )
        except requests.RequestException as exc:
            raise NotifierError(f"SendGrid request failed: {exc}") from exc

        if response.status_code >= 300:
            raise NotifierError(f"SendGrid returned {response.status_code}: {response.text[:200]}")
        logger.info("Email sent via SendGrid to=%s", message.to)


def build_notifier(settings: Settings) -> Notifier:
    if settings.email_backend == "smtp":
        return SmtpNotifier(
            sender=settings.email_from,
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout_sec=settings.email_timeout_sec,
        )
    if settings.email_backend == "sendgrid":
        return SendGridNotifier(
            sender=settings.email_from,
            api_key=settings.sendgrid_api_key,
            api_url=settings.sendgrid_api_url,
            timeout_sec=settings.email_timeout_sec,
        )
    return ConsoleNotifier(settings.email_from)
