import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib

from core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Async SMTP delivery. Sending is best effort: failures are logged and
    reported as False so callers can carry on without the email.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
    ):
        self.smtp_host = host or settings.SMTP_HOST
        self.smtp_port = port or settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER if user is None else user
        self.smtp_password = settings.SMTP_PASSWORD if password is None else password
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self.from_email = settings.EMAIL_FROM
        self.from_name = settings.EMAIL_FROM_NAME

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

    def build_message(self, to_email: str, subject: str, html_content: str,
                      text_content: Optional[str] = None) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = to_email
        message["Subject"] = subject
        if text_content:
            message.attach(MIMEText(text_content, "plain"))
        message.attach(MIMEText(html_content, "html"))
        return message

    async def send_email(self, to_email: str, subject: str, html_content: str,
                         text_content: Optional[str] = None) -> bool:
        if not self.is_configured:
            logger.warning("[Email] SMTP not configured, skipping '%s'", subject)
            return False

        message = self.build_message(to_email, subject, html_content, text_content)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.smtp_user,
                password=self.smtp_password,
                start_tls=self.use_tls,
                timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("[Email] Failed to send '%s' to %s: %s", subject, to_email, e)
            return False

        logger.info("[Email] Sent '%s' to %s", subject, to_email)
        return True


def get_email_service() -> EmailService:
    return EmailService()
