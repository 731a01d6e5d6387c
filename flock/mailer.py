from __future__ import annotations

"""
Outbound email with fallback transports.

Transports are tried in order (SendGrid, Resend, SMTP) and the console
transport always closes the chain, so ``Notifier.send`` only fails on a
programming error. Callers still treat notification as best effort.
"""

import html
import logging
import smtplib
import time
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage as MIMEEmailMessage
from email.utils import parseaddr
from typing import Iterable, List, Optional, Sequence

import httpx

from .config import Settings


logger = logging.getLogger("flock.mailer")


@dataclass(frozen=True)
class EmailMessage:
    to: Sequence[str]
    subject: str
    text: str
    html: Optional[str] = None

    @property
    def html_body(self) -> str:
        return self.html or html.escape(self.text).replace("\n", "<br>")


@dataclass(frozen=True)
class DeliveryResult:
    mode: str
    message_id: Optional[str]
    recipients: int = 1


@dataclass(frozen=True)
class MemberContact:
    id: int
    name: str
    email: str
    uo_id: Optional[str] = None
    role_name: Optional[str] = None
    workplace_name: Optional[str] = None

    @classmethod
    def of(cls, member) -> "MemberContact":
        return cls(
            id=member.id,
            name=member.name,
            email=member.email,
            uo_id=member.uo_id,
            role_name=member.role_name,
            workplace_name=member.workplace_name,
        )


@dataclass(frozen=True)
class EventDetails:
    id: int
    title: str
    event_date: Optional[datetime]
    location: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def of(cls, event) -> "EventDetails":
        return cls(
            id=event.id,
            title=event.title,
            event_date=event.event_date,
            location=event.location,
            description=event.description,
        )


class TransportError(RuntimeError):
    pass


class EmailTransport:
    name = "base"

    def send(self, message: EmailMessage) -> str:  # pragma: no cover - interface
        raise NotImplementedError


def _bare_address(sender: str) -> str:
    # "Name <email>" -> "email"
    return parseaddr(sender)[1] or sender


class SendGridTransport(EmailTransport):
    name = "sendgrid"
    url = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self, api_key: str, sender: str, timeout: float) -> None:
        self.api_key = api_key
        self.sender = _bare_address(sender)
        self.timeout = timeout

    def send(self, message: EmailMessage) -> str:
        payload = {
            "personalizations": [{"to": [{"email": to} for to in message.to], "subject": message.subject}],
            "from": {"email": self.sender},
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.html_body},
            ],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(self.url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise TransportError(f"SendGrid request failed: {exc}") from exc
        if resp.status_code >= 300:
            raise TransportError(f"SendGrid API error ({resp.status_code}): {resp.text[:200]}")
        return resp.headers.get("x-message-id") or f"sg_{int(time.time() * 1000)}"


class ResendTransport(EmailTransport):
    name = "resend"
    url = "https://api.resend.com/emails"

    def __init__(self, api_key: str, sender: str, timeout: float) -> None:
        self.api_key = api_key
        self.sender = _bare_address(sender)
        self.timeout = timeout

    def send(self, message: EmailMessage) -> str:
        payload = {
            "from": self.sender,
            "to": list(message.to),
            "subject": message.subject,
            "text": message.text,
            "html": message.html_body,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(self.url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise TransportError(f"Resend request failed: {exc}") from exc
        if resp.status_code >= 300:
            raise TransportError(f"Resend API error ({resp.status_code}): {resp.text[:200]}")
        return str(resp.json().get("id") or f"rs_{int(time.time() * 1000)}")


class SmtpTransport(EmailTransport):
    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        user: Optional[str],
        password: Optional[str],
        sender: str,
        use_ssl: bool,
        timeout: float,
        org_name: str = "Flock Manager",
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.use_ssl = use_ssl
        self.timeout = timeout
        self.org_name = org_name

    def _connect(self) -> smtplib.SMTP:
        if self.use_ssl:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        server.ehlo()
        server.starttls()
        server.ehlo()
        return server

    def send(self, message: EmailMessage) -> str:
        mime = MIMEEmailMessage()
        mime["From"] = f'"{self.org_name}" <{_bare_address(self.sender)}>'
        mime["To"] = ", ".join(message.to)
        mime["Subject"] = message.subject
        mime.set_content(message.text)
        mime.add_alternative(message.html_body, subtype="html")
        try:
            server = self._connect()
            try:
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(mime)
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportError(f"SMTP delivery failed: {exc}") from exc
        return mime.get("Message-ID") or f"smtp_{int(time.time() * 1000)}"


class ConsoleTransport(EmailTransport):
    name = "console"

    def send(self, message: EmailMessage) -> str:
        logger.info(
            "EMAIL (console, no transport configured) to=%s subject=%s\n%s",
            ", ".join(message.to),
            message.subject,
            message.text,
        )
        return f"console_{int(time.time() * 1000)}"


class Notifier:
    def __init__(self, transports: Iterable[EmailTransport], org_name: str = "Flock Manager") -> None:
        self.transports: List[EmailTransport] = [t for t in transports if not isinstance(t, ConsoleTransport)]
        self.transports.append(ConsoleTransport())
        self.org_name = org_name

    @property
    def modes(self) -> List[str]:
        return [t.name for t in self.transports]

    def send(self, message: EmailMessage) -> DeliveryResult:
        for transport in self.transports:
            try:
                message_id = transport.send(message)
            except TransportError as exc:
                logger.error("Email transport %s failed, falling back: %s", transport.name, exc)
                continue
            logger.info("Email sent via %s: %s", transport.name, message_id)
            return DeliveryResult(mode=transport.name, message_id=message_id, recipients=len(message.to))
        # ConsoleTransport never raises TransportError
        raise TransportError("no email transport accepted the message")

    # High-level templates

    def _wrap_html(self, heading: str, color: str, body: str) -> str:
        return (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
            f'<h2 style="color: #333; border-bottom: 2px solid {color}; padding-bottom: 10px;">{heading}</h2>'
            f"{body}"
            f"<p>Best regards,<br><strong>{html.escape(self.org_name)}</strong></p>"
            "</div>"
        )

    def send_checkin_confirmation(self, member, event) -> DeliveryResult:
        when = _format_when(event.event_date)
        location = event.location or "TBD"
        text = (
            f"Dear {member.name},\n\n"
            "You have successfully checked in to:\n\n"
            f"Event: {event.title}\nDate: {when}\nLocation: {location}\n\n"
            "Thank you for your participation!\n\n"
            f"{self.org_name}"
        )
        body = (
            f"<p>Dear {html.escape(member.name)},</p>"
            "<p>You have successfully checked in to:</p>"
            '<div style="background-color: #f5f5f5; padding: 15px; border-radius: 5px; margin: 20px 0;">'
            f'<h3 style="margin-top: 0; color: #4CAF50;">{html.escape(event.title)}</h3>'
            f"<p><strong>Date:</strong> {html.escape(when)}</p>"
            f"<p><strong>Location:</strong> {html.escape(location)}</p>"
            "</div>"
            "<p>Thank you for your participation!</p>"
        )
        return self.send(
            EmailMessage(
                to=[member.email],
                subject=f"Check-in Confirmation - {event.title}",
                text=text,
                html=self._wrap_html("CHECK-IN CONFIRMATION", "#4CAF50", body),
            )
        )

    def send_magic_link(self, email: str, name: str, link: str, ttl_minutes: int) -> DeliveryResult:
        text = (
            f"Dear {name},\n\n"
            f"You requested a login link for {self.org_name}. Open the link below to access your account:\n\n"
            f"{link}\n\n"
            f"This link will expire in {ttl_minutes} minutes and can only be used once.\n\n"
            "If you did not request this login link, please ignore this email.\n\n"
            f"{self.org_name}"
        )
        safe_link = html.escape(link, quote=True)
        body = (
            f"<p>Dear {html.escape(name)},</p>"
            f"<p>You requested a login link for {html.escape(self.org_name)}.</p>"
            '<div style="text-align: center; margin: 30px 0;">'
            f'<a href="{safe_link}" style="background-color: #2196F3; color: white; padding: 15px 30px; '
            'text-decoration: none; border-radius: 5px; display: inline-block; font-weight: bold;">Log in</a>'
            "</div>"
            f'<p style="color: #666; font-size: 12px; word-break: break-all;">{safe_link}</p>'
            f'<p style="color: #999; font-size: 11px;">This link will expire in {ttl_minutes} minutes '
            "and can only be used once.</p>"
        )
        return self.send(
            EmailMessage(
                to=[email],
                subject=f"Your {self.org_name} Login Link",
                text=text,
                html=self._wrap_html("LOGIN LINK", "#2196F3", body),
            )
        )

    def send_member_welcome(self, member) -> DeliveryResult:
        workplace = member.workplace_name or "Not specified"
        role = member.role_name or "Member"
        text = (
            f"Dear {member.name},\n\n"
            "Your membership has been successfully registered.\n\n"
            f"Member Details:\n- Name: {member.name}\n- Email: {member.email}\n"
            f"- UO ID: {member.uo_id or '-'}\n- Workplace: {workplace}\n- Role: {role}\n\n"
            f"{self.org_name}"
        )
        body = (
            f"<p>Dear {html.escape(member.name)},</p>"
            "<p>Your membership has been successfully registered.</p>"
            '<ul style="list-style: none; padding: 0;">'
            f"<li><strong>Name:</strong> {html.escape(member.name)}</li>"
            f"<li><strong>Email:</strong> {html.escape(member.email)}</li>"
            f"<li><strong>UO ID:</strong> {html.escape(member.uo_id or '-')}</li>"
            f"<li><strong>Workplace:</strong> {html.escape(workplace)}</li>"
            f"<li><strong>Role:</strong> {html.escape(role)}</li>"
            "</ul>"
        )
        return self.send(
            EmailMessage(
                to=[member.email],
                subject=f"Welcome to {self.org_name} - Membership Confirmation",
                text=text,
                html=self._wrap_html("MEMBER CONFIRMATION", "#4CAF50", body),
            )
        )

    def send_event_reminder(self, event, recipients: Sequence) -> DeliveryResult:
        if not recipients:
            return DeliveryResult(mode="skipped", message_id=None, recipients=0)
        when = _format_when(event.event_date)
        location = event.location or "TBD"
        text = (
            f"Event: {event.title}\nDate: {when}\nLocation: {location}\n\n"
            f"{event.description or 'No description provided'}\n\n"
            "We look forward to seeing you there!\n\n"
            f"{self.org_name}"
        )
        body = (
            f'<h3 style="color: #2196F3;">{html.escape(event.title)}</h3>'
            f"<p><strong>Date:</strong> {html.escape(when)}</p>"
            f"<p><strong>Location:</strong> {html.escape(location)}</p>"
            f"<p>{html.escape(event.description or '')}</p>"
            "<p>We look forward to seeing you there!</p>"
        )
        return self.send(
            EmailMessage(
                to=[r.email for r in recipients],
                subject=f"Event Reminder - {event.title}",
                text=text,
                html=self._wrap_html("EVENT REMINDER", "#2196F3", body),
            )
        )


def _format_when(value: Optional[datetime]) -> str:
    if value is None:
        return "TBD"
    return value.strftime("%Y-%m-%d %H:%M")


def build_notifier(settings: Settings) -> Notifier:
    timeout = settings.external_timeout_seconds
    transports: List[EmailTransport] = []
    if settings.sendgrid_api_key:
        transports.append(SendGridTransport(settings.sendgrid_api_key, settings.email_from, timeout))
    if settings.resend_api_key:
        transports.append(ResendTransport(settings.resend_api_key, settings.email_from, timeout))
    if settings.smtp_host:
        transports.append(
            SmtpTransport(
                host=settings.smtp_host,
                port=settings.smtp_port,
                user=settings.smtp_user,
                password=settings.smtp_password,
                sender=settings.email_from,
                use_ssl=settings.smtp_use_ssl,
                timeout=timeout,
                org_name=settings.org_name,
            )
        )
    return Notifier(transports, org_name=settings.org_name)
