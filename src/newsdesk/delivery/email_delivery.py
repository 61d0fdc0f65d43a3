"""
SMTP mail transport
"""
import logging
from typing import Optional

import aiosmtplib

from newsdesk.core.errors import MailerUnavailable, MailRejected
from newsdesk.delivery.base import DigestEmail, Mailer

logger = logging.getLogger(__name__)

# Failures that say nothing about the recipient: the transport itself is down
# or refuses us entirely.
_UNAVAILABLE = (
    aiosmtplib.SMTPConnectError,
    aiosmtplib.SMTPConnectTimeoutError,
    aiosmtplib.SMTPTimeoutError,
    aiosmtplib.SMTPServerDisconnected,
    aiosmtplib.SMTPAuthenticationError,
    OSError,
)


class SmtpMailer(Mailer):
    name = "smtp"

    def __init__(
        self,
        *,
        smtp_host: Optional[str],
        smtp_port: Optional[int],
        username: Optional[str],
        password: Optional[str],
        sender: Optional[str],
        timeout: float = 30.0,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.sender = sender
        self.timeout = timeout

    async def send(self, email: DigestEmail) -> None:
        if not self.smtp_host or not self.smtp_port or not self.sender:
            raise MailerUnavailable("SMTP transport is not configured")

        msg = email.to_message(self.sender)
        try:
            await aiosmtplib.send(
                msg,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.username,
                password=self.password,
                start_tls=True,
                timeout=self.timeout,
            )
        except _UNAVAILABLE as e:
            logger.error(f"SMTP transport unavailable while sending to {email.recipient}: {e}")
            raise MailerUnavailable(str(e)) from e
        except aiosmtplib.SMTPException as e:
            logger.error(f"SMTP rejected email to {email.recipient}: {e}")
            raise MailRejected(str(e)) from e

        logger.info(f"Email sent successfully to {email.recipient}")
