"""
Module to contain base class for the Mailer collaborator
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage


@dataclass(frozen=True)
class DigestEmail:
    recipient: str
    subject: str
    plain_text: str
    html: str

    def to_message(self, sender: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = sender
        msg["To"] = self.recipient
        msg["Subject"] = self.subject

        # Plain text is the fallback, HTML the preferred alternative
        msg.set_content(self.plain_text)
        msg.add_alternative(self.html, subtype="html")
        return msg


class Mailer(ABC):
    """
    Base interface for outbound mail transports.
    """

    name: str

    @abstractmethod
    async def send(self, email: DigestEmail) -> None:
        """
        Send one email.
        Raises MailerUnavailable when the transport cannot be reached and
        MailRejected when this message or recipient is refused.
        """
        raise NotImplementedError
