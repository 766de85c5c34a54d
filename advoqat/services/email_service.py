"""
Transactional email via Resend, plus the message bodies for workflow events.

Nothing here is called inline by business logic: services queue messages in
the email outbox and the outbox dispatcher hands them to ``EmailClient``.
"""
import logging
from html import escape
from typing import List, Union

import resend

from advoqat.config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY
from advoqat.errors import UpstreamError

logger = logging.getLogger(__name__)


class EmailClient:
    def __init__(self, api_key: str = RESEND_API_KEY, from_address: str = EMAIL_FROM_ADDRESS):
        self.api_key = api_key
        self.from_address = from_address

    def send(self, to: Union[str, List[str]], subject: str, html: str) -> str:
        """Send one message and return the provider message id."""
        if not self.api_key:
            raise UpstreamError("Email service not configured")

        recipients = [to] if isinstance(to, str) else list(to)
        resend.api_key = self.api_key
        try:
            response = resend.Emails.send({
                "from": self.from_address,
                "to": recipients,
                "subject": subject,
                "html": html,
            })
        except Exception as e:
            raise UpstreamError(f"Email provider rejected message: {e}") from e

        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(f"Email sent to {recipients} (id={message_id})")
        return message_id


def get_email_client() -> EmailClient:
    return EmailClient()

# =====================================================
# MESSAGE BODIES
# =====================================================

def _layout(title: str, body: str) -> str:
    return (
        "<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        f"<h2 style=\"color: #1a365d;\">{escape(title)}</h2>"
        f"{body}"
        f"<p style=\"color: #718096; font-size: 12px;\">Advoqat &middot; <a href=\"{FRONTEND_URL}\">{FRONTEND_URL}</a></p>"
        "</div>"
    )


def case_status_email(client_name: str, case_title: str, status: str, reason: str = None):
    headline = {
        "active": "Your case has been accepted",
        "declined": "Your case has been declined",
        "completed": "Your case has been completed",
    }.get(status, "Your case has been updated")
    body = (
        f"<p>Hello {escape(client_name or 'there')},</p>"
        f"<p>{headline}: <strong>{escape(case_title)}</strong>.</p>"
    )
    if reason:
        body += f"<p>Reason given: {escape(reason)}</p>"
    body += f"<p><a href=\"{FRONTEND_URL}/dashboard/cases\">View your cases</a></p>"
    return headline, _layout(headline, body)


def case_assigned_email(professional_name: str, case_title: str):
    subject = "A new case has been assigned to you"
    body = (
        f"<p>Hello {escape(professional_name or 'there')},</p>"
        f"<p>The case <strong>{escape(case_title)}</strong> has been assigned to you. "
        "Please accept or decline it from your dashboard.</p>"
    )
    return subject, _layout(subject, body)


def barrister_welcome_email(name: str):
    subject = "Welcome to Advoqat"
    body = (
        f"<p>Dear {escape(name or 'Barrister')},</p>"
        "<p>Your Public Access Barrister account has been created and your eligibility "
        "check is complete. The next step is uploading your practising documents.</p>"
    )
    return subject, _layout(subject, body)


def document_upload_confirmation_email(name: str):
    subject = "We have received your documents"
    body = (
        f"<p>Dear {escape(name or 'Barrister')},</p>"
        "<p>Thank you for uploading your verification documents. Our team will review "
        "them and let you know once your profile has been verified.</p>"
    )
    return subject, _layout(subject, body)


def barrister_review_email(name: str, status: str, notes: str = None):
    subject = {
        "APPROVED": "Your barrister profile has been approved",
        "REJECTED": "Your barrister application was not approved",
        "INCOMPLETE": "Your barrister application needs more information",
    }.get(status, "Your barrister application has been reviewed")
    body = f"<p>Dear {escape(name or 'Barrister')},</p><p>{subject}.</p>"
    if notes:
        body += f"<p>Reviewer notes: {escape(notes)}</p>"
    return subject, _layout(subject, body)
