import logging
from email.message import EmailMessage
from typing import Optional

import aiosmtplib

from app.core.config import settings
from app.core.errors import InternalError

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, host: str, port: int, username: Optional[str], password: Optional[str], sender: str):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender

    async def send(self, to: str, subject: str, text: str, html: Optional[str] = None):
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        if html:
            message.add_alternative(html, subtype="html")
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=True,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("Mail to %s failed: %s", to, exc)
            raise InternalError("Could not send email")
        logger.info("Mail '%s' sent to %s", subject, to)


def get_mailer() -> Mailer:
    return Mailer(
        settings.MAIL_HOST,
        settings.MAIL_PORT,
        settings.MAIL_USERNAME,
        settings.MAIL_PASSWORD,
        settings.MAIL_FROM,
    )
