"""Outbound email: sender implementations and fire-and-forget notifications.

The sender is chosen once at startup (``build_email_sender``) and injected
into request handlers; nothing here is module-level mutable state. The
``notify_*`` helpers are meant to run as FastAPI background tasks: they never
raise, so a delivery failure cannot undo the state change that triggered it.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import resend

from student_events.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    to: str
    subject: str
    text: str


class EmailSender:
    """Interface for outbound email delivery."""

    def send(self, message: EmailMessage) -> None:
        raise NotImplementedError


class LoggingEmailSender(EmailSender):
    """Development and test sender. Writes the message to the log instead of delivering it."""

    def send(self, message: EmailMessage) -> None:
        logger.info("[email] to=%s subject=%r\n%s", message.to, message.subject, message.text)


class ResendEmailSender(EmailSender):
    """Live sender backed by the Resend API."""

    def __init__(self, api_key: str, from_address: str):
        self._api_key = api_key
        self._from_address = from_address

    def send(self, message: EmailMessage) -> None:
        resend.api_key = self._api_key
        response = resend.Emails.send({
            "from": self._from_address,
            "to": [message.to],
            "subject": message.subject,
            "text": message.text,
        })
        logger.info("Email %r sent to %s (id=%s)", message.subject, message.to, response.get("id"))


def build_email_sender(config: Settings) -> EmailSender:
    if config.EMAIL_BACKEND == "resend":
        if not config.RESEND_API_KEY:
            raise RuntimeError("EMAIL_BACKEND=resend requires RESEND_API_KEY")
        return ResendEmailSender(config.RESEND_API_KEY, config.EMAIL_FROM)
    if config.EMAIL_BACKEND == "console":
        return LoggingEmailSender()
    raise RuntimeError(f"Unknown EMAIL_BACKEND: {config.EMAIL_BACKEND!r}")


def _deliver(sender: EmailSender, message: EmailMessage) -> bool:
    try:
        sender.send(message)
        return True
    except Exception:
        logger.exception("Failed to send %r to %s", message.subject, message.to)
        return False


def notify_registration_otp(sender: EmailSender, email: str, code: str, name: Optional[str], ttl_minutes: int) -> bool:
    return _deliver(sender, EmailMessage(
        to=email,
        subject="Welcome to Student Events - Verify Your Email",
        text=(
            f"Hello {name or 'Student'},\n\n"
            f"Your verification code is {code}.\n"
            f"It expires in {ttl_minutes} minutes.\n\n"
            "If you didn't request this, please ignore this email."
        ),
    ))


def notify_password_reset_otp(sender: EmailSender, email: str, code: str, name: Optional[str], ttl_minutes: int) -> bool:
    return _deliver(sender, EmailMessage(
        to=email,
        subject="Password Reset Request - Student Events",
        text=(
            f"Hello {name or 'User'},\n\n"
            f"Your password reset code is {code}.\n"
            f"It expires in {ttl_minutes} minutes.\n\n"
            "If you didn't request a password reset, you can ignore this email."
        ),
    ))


def notify_otp(sender: EmailSender, email: str, code: str, purpose: str, ttl_minutes: int) -> bool:
    return _deliver(sender, EmailMessage(
        to=email,
        subject="Your one-time code - Student Events",
        text=f"Your {purpose.replace('_', ' ')} code is {code}. It expires in {ttl_minutes} minutes.",
    ))


def notify_event_approved(sender: EmailSender, email: str, event_title: str, name: Optional[str]) -> bool:
    return _deliver(sender, EmailMessage(
        to=email,
        subject="Your Event Has Been Approved!",
        text=(
            f"Great news, {name or 'Organizer'}!\n\n"
            f'Your event "{event_title}" has been approved and students can now RSVP.'
        ),
    ))


def notify_event_rejected(sender: EmailSender, email: str, event_title: str, name: Optional[str], reason: str) -> bool:
    return _deliver(sender, EmailMessage(
        to=email,
        subject="Your Event Submission Needs Changes",
        text=(
            f"Hello {name or 'Organizer'},\n\n"
            f'Your event "{event_title}" requires changes before it can be approved.\n\n'
            f"Admin feedback: {reason}"
        ),
    ))


def notify_rsvp_confirmation(
    sender: EmailSender,
    email: str,
    event_title: str,
    event_date: str,
    event_time: str,
    name: Optional[str],
) -> bool:
    return _deliver(sender, EmailMessage(
        to=email,
        subject=f"RSVP Confirmed: {event_title}",
        text=(
            f"Hi {name or 'Student'},\n\n"
            f'You are confirmed for "{event_title}" on {event_date} at {event_time}.'
        ),
    ))
