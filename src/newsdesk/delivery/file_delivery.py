"""
File outbox mail transport, for local runs without an SMTP server
"""
import json
import logging
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path

from newsdesk.core.errors import MailerUnavailable
from newsdesk.delivery.base import DigestEmail, Mailer

logger = logging.getLogger(__name__)


class FileMailer(Mailer):
    name = "file"

    def __init__(self, output_dir: str = "output/outbox", sender: str = "newsdesk@localhost"):
        self.output_dir = Path(output_dir)
        self.sender = sender

    async def send(self, email: DigestEmail) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        safe_recipient = re.sub(r"[^A-Za-z0-9_.-]", "_", email.recipient)
        base = f"{stamp}_{safe_recipient}_{uuid.uuid4().hex[:8]}"
        eml_path = self.output_dir / f"{base}.eml"

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            eml_path.write_bytes(email.to_message(self.sender).as_bytes())
            (self.output_dir / f"{base}.json").write_text(
                json.dumps(
                    {"recipient": email.recipient, "subject": email.subject, "text": email.plain_text},
                    indent=2,
                ),
                encoding="utf-8",
            )
        except OSError as e:
            raise MailerUnavailable(f"outbox not writable: {e}") from e

        logger.info(f"Wrote email for {email.recipient} to {eml_path}")
