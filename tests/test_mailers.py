"""Tests for mail transports and the digest composer."""

import json
from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from newsdesk.core.entities import DigestEntry, UserProfile
from newsdesk.core.errors import MailerUnavailable, MailRejected
from newsdesk.delivery.base import DigestEmail
from newsdesk.delivery.composer import DigestComposer
from newsdesk.delivery.email_delivery import SmtpMailer
from newsdesk.delivery.file_delivery import FileMailer

from conftest import run

EMAIL = DigestEmail(
    recipient="alice@example.com",
    subject="Your daily digest",
    plain_text="hello",
    html="<p>hello</p>",
)


def smtp_mailer(**overrides):
    options = dict(
        smtp_host="smtp.example.com",
        smtp_port=587,
        username="newsdesk",
        password="pw",
        sender="newsdesk@example.com",
    )
    options.update(overrides)
    return SmtpMailer(**options)


class TestFileMailer:
    """Tests for the outbox transport."""

    def test_writes_eml_and_json(self, tmp_path):
        mailer = FileMailer(str(tmp_path / "outbox"))

        run(mailer.send(EMAIL))

        eml = list((tmp_path / "outbox").glob("*.eml"))
        meta = list((tmp_path / "outbox").glob("*.json"))
        assert len(eml) == 1 and len(meta) == 1
        assert "alice_example.com" in eml[0].name
        assert json.loads(meta[0].read_text())["recipient"] == "alice@example.com"
        assert b"Subject: Your daily digest" in eml[0].read_bytes()

    def test_unwritable_outbox_is_unavailable(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(MailerUnavailable):
            run(FileMailer(str(blocker / "outbox")).send(EMAIL))


class TestSmtpMailer:
    """Tests for SMTP error mapping."""

    def test_sends_multipart_message(self):
        with patch("newsdesk.delivery.email_delivery.aiosmtplib.send", AsyncMock()) as send:
            run(smtp_mailer().send(EMAIL))

        msg = send.call_args.args[0]
        assert msg["To"] == "alice@example.com"
        assert msg.is_multipart()
        assert send.call_args.kwargs["hostname"] == "smtp.example.com"

    def test_missing_configuration_is_unavailable(self):
        with pytest.raises(MailerUnavailable):
            run(smtp_mailer(smtp_host=None).send(EMAIL))

    def test_connection_failure_is_unavailable(self):
        error = aiosmtplib.SMTPConnectError("connection refused")

        with patch("newsdesk.delivery.email_delivery.aiosmtplib.send", AsyncMock(side_effect=error)):
            with pytest.raises(MailerUnavailable):
                run(smtp_mailer().send(EMAIL))

    def test_recipient_refusal_is_a_rejection(self):
        error = aiosmtplib.SMTPResponseException(550, "mailbox unavailable")

        with patch("newsdesk.delivery.email_delivery.aiosmtplib.send", AsyncMock(side_effect=error)):
            with pytest.raises(MailRejected):
                run(smtp_mailer().send(EMAIL))


class TestDigestComposer:
    """Tests for email composition."""

    def entry(self, title):
        return DigestEntry(
            article_id="a1",
            title=title,
            summary="Summary <b>bold</b>",
            url="https://news.example.com/a1",
            topics=("tech",),
            score=1.0,
        )

    def test_html_is_escaped_and_text_is_plain(self):
        user = UserProfile("alice", "alice@example.com", frozenset({"tech"}))
        composer = DigestComposer(preferences_url="https://newsdesk.example.com/preferences")

        email = composer.compose(user, "2024-06-01", [self.entry("Chips & <Dips>")])

        assert email.recipient == "alice@example.com"
        assert "2024-06-01" in email.subject
        assert "Chips &amp; &lt;Dips&gt;" in email.html
        assert "<Dips>" not in email.html
        assert "[1] Chips & <Dips>" in email.plain_text
        assert "Manage your topics: https://newsdesk.example.com/preferences" in email.plain_text
