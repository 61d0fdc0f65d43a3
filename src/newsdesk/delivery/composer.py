"""
Builds the HTML and plain-text digest emails.
"""
import html as html_escape
from typing import List, Optional

from newsdesk.core.entities import DigestEntry, UserProfile
from newsdesk.delivery.base import DigestEmail
from newsdesk.services.config import EmailColorsConfig


class DigestComposer:
    def __init__(
        self,
        colors: Optional[EmailColorsConfig] = None,
        preferences_url: Optional[str] = None,
    ):
        self.colors = (colors or EmailColorsConfig()).model_dump()
        self.preferences_url = preferences_url

    def subject(self, digest_date: str) -> str:
        return f"\U0001F4F0 Your daily digest – {digest_date}"

    def _build_html_template(self, digest_date: str, entries: List[DigestEntry]) -> str:
        """Build a visually appealing HTML email template."""
        c = self.colors

        entry_cards = []
        for idx, entry in enumerate(entries, 1):
            topic_badges = "".join(
                f'''<span style="display: inline-block; margin: 4px 6px 0 0; padding: 4px 10px;
                           background-color: {c['topic_bg']}; color: {c['topic_text']};
                           border-radius: 999px; font-size: 12px;">
                    {html_escape.escape(topic)}
                </span>'''
                for topic in entry.topics
            )

            card = f'''
            <div style="background-color: {c['card_bg']}; border-radius: 12px;
                        padding: 24px; margin-bottom: 20px;
                        box-shadow: 0 1px 3px rgba(0,0,0,0.1);
                        border-left: 4px solid {c['primary']};">

                <!-- Header with number and title -->
                <div style="margin-bottom: 16px;">
                    <span style="background-color: {c['primary']}; color: white;
                                 font-weight: bold; font-size: 14px;
                                 width: 28px; height: 28px; border-radius: 50%;
                                 display: inline-block; text-align: center;
                                 line-height: 28px; margin-right: 12px;">
                        {idx}
                    </span>
                    <a href="{html_escape.escape(entry.url)}"
                       style="color: {c['text_primary']}; font-size: 18px; font-weight: 600;
                              line-height: 1.4; text-decoration: none;">
                        {html_escape.escape(entry.title)}
                    </a>
                </div>

                <!-- Summary -->
                <p style="color: {c['text_primary']}; font-size: 15px; line-height: 1.6;
                          margin: 0 0 16px 0;">
                    {html_escape.escape(entry.summary)}
                </p>

                <!-- Matched topics -->
                <div>
                    {topic_badges}
                </div>
            </div>
            '''
            entry_cards.append(card)

        preferences = ""
        if self.preferences_url:
            preferences = f'''
            <p style="margin: 8px 0 0 0; font-size: 12px;">
                <a href="{html_escape.escape(self.preferences_url)}" style="color: {c['text_secondary']};">
                    Manage your topics
                </a>
            </p>'''

        return f'''
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Your daily digest</title>
</head>
<body style="margin: 0; padding: 0; background-color: {c['background']};
             font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto,
                          'Helvetica Neue', Arial, sans-serif;">

    <div style="max-width: 680px; margin: 0 auto; padding: 20px;">

        <!-- Header -->
        <div style="background: linear-gradient(135deg, {c['primary']} 0%, {c['primary_dark']} 100%);
                    border-radius: 16px 16px 0 0; padding: 32px; text-align: center;">
            <h1 style="margin: 0 0 8px 0; color: white; font-size: 28px; font-weight: 700;">
                Your daily digest
            </h1>
            <p style="margin: 12px 0 0 0; color: rgba(255,255,255,0.75); font-size: 14px;">
                {digest_date}
            </p>
        </div>

        <!-- Stats bar -->
        <div style="background-color: {c['card_bg']}; padding: 16px 24px;
                    border-bottom: 1px solid {c['border']}; text-align: center;">
            <span style="color: {c['text_secondary']}; font-size: 14px;">
                <strong style="color: {c['primary']};">{len(entries)}</strong> stories picked for your interests
            </span>
        </div>

        <!-- Content area -->
        <div style="background-color: {c['background']}; padding: 24px;
                    border-radius: 0 0 16px 16px;">
            {"".join(entry_cards)}
        </div>

        <!-- Footer -->
        <div style="text-align: center; padding: 24px; color: {c['text_secondary']};
                    font-size: 13px;">
            <p style="margin: 0;">You receive this because you subscribed to the daily digest.</p>
            {preferences}
        </div>

    </div>
</body>
</html>
'''

    def _build_plain_text(self, digest_date: str, entries: List[DigestEntry]) -> str:
        """Build a plain text version of the digest."""
        lines = [
            "=" * 60,
            "Your daily digest",
            f"Date: {digest_date}",
            "=" * 60,
            "",
            f"{len(entries)} stories picked for your interests",
            "",
        ]

        for idx, entry in enumerate(entries, 1):
            lines.extend([
                "-" * 60,
                f"[{idx}] {entry.title}",
                "-" * 60,
                "",
                entry.summary,
                "",
                f"Topics: {', '.join(entry.topics)}",
                f"Read more: {entry.url}",
                "",
            ])

        lines.append("=" * 60)
        if self.preferences_url:
            lines.append(f"Manage your topics: {self.preferences_url}")
        return "\n".join(lines)

    def compose(self, user: UserProfile, digest_date: str, entries: List[DigestEntry]) -> DigestEmail:
        return DigestEmail(
            recipient=user.email,
            subject=self.subject(digest_date),
            plain_text=self._build_plain_text(digest_date, entries),
            html=self._build_html_template(digest_date, entries),
        )
