from datetime import datetime
from html import escape
from typing import Optional

from core.config import settings


class EmailTemplate:
    def __init__(self, subject: str, html: str):
        self.subject = subject
        self.html = html

    def to_dict(self):
        return {
            'subject': self.subject,
            'html': self.html
        }


def _wrap(title: str, body: str) -> str:
    return (
        "<html><body style=\"font-family: Arial, sans-serif;\">"
        f"<h2>{escape(title)}</h2>{body}"
        "<p>QOLAE Readers Team</p>"
        "</body></html>"
    )


class VerificationCodeEmail(EmailTemplate):
    def __init__(self, reader_name: str, code: str, ttl_minutes: int):
        subject = "Your QOLAE Readers verification code"
        body = (
            f"<p>Hello {escape(reader_name)},</p>"
            f"<p>Your verification code is <strong>{escape(code)}</strong>.</p>"
            f"<p>It expires in {ttl_minutes} minutes.</p>"
        )
        super().__init__(subject, _wrap("Verification code", body))


class ReaderInvitationEmail(EmailTemplate):
    def __init__(self, reader_name: str, reader_pin: str, login_url: Optional[str] = None):
        login_url = login_url or f"{settings.READERS_PORTAL_URL}/readersLogin?readerPin={reader_pin}"
        subject = "Invitation to the QOLAE Readers Portal"
        body = (
            f"<p>Hello {escape(reader_name)},</p>"
            "<p>You have been invited to review reports for QOLAE.</p>"
            f"<p>Your Reader PIN is <strong>{escape(reader_pin)}</strong>.</p>"
            f"<p><a href=\"{escape(login_url)}\">Log in to the Readers Portal</a></p>"
        )
        super().__init__(subject, _wrap("Welcome to QOLAE", body))


class NdaSignedEmail(EmailTemplate):
    def __init__(self, reader_name: str, reader_pin: str, signed_at: Optional[datetime]):
        signed = signed_at.strftime("%d/%m/%Y %H:%M") if signed_at else ""
        subject = "Your QOLAE NDA has been signed"
        body = (
            f"<p>Hello {escape(reader_name)},</p>"
            f"<p>Your NDA ({escape(reader_pin)}) was signed on {signed} UTC.</p>"
            "<p>You can view or download it at any time from your dashboard.</p>"
        )
        super().__init__(subject, _wrap("NDA signed", body))
