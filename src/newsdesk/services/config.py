"""
Loads and handles config from config.yml
Secrets (SERVICE_AUTH_TOKEN, USER_TOKENS, EMAIL_PASSWORD, SCRAPER_API_KEY) are loaded from .env
"""
import logging
import os
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

_URL_ADAPTER = TypeAdapter(HttpUrl)


class EmailColorsConfig(BaseModel):
    """Configuration for email template colors."""
    primary: str = "#6366f1"
    primary_dark: str = "#4f46e5"
    background: str = "#f8fafc"
    card_bg: str = "#ffffff"
    text_primary: str = "#1e293b"
    text_secondary: str = "#64748b"
    border: str = "#e2e8f0"
    accent: str = "#f59e0b"
    topic_bg: str = "#fef3c7"
    topic_text: str = "#92400e"


class Config(BaseModel):
    # Core
    DATABASE_PATH: str = "data/newsdesk.db"
    API_BASE_URL: Optional[str] = None
    SERVICE_AUTH_TOKEN: Optional[str] = None
    USER_TOKENS: Dict[str, str] = {}  # token -> user_id

    # Provider keys (presence only is reported)
    EMAIL_PASSWORD: Optional[str] = None
    SCRAPER_API_KEY: Optional[str] = None

    # Scrape orchestration
    SCRAPE_POOL_WIDTH: int = Field(4, ge=1)
    SCRAPE_SOURCE_TIMEOUT: float = Field(30.0, gt=0)
    SCRAPE_RUN_STALE_MINUTES: int = Field(120, ge=1)
    SCRAPER_USER_AGENT: str = "newsdesk/1.0 (+feed reader)"

    # Personalization
    DIGEST_WINDOW_HOURS: int = Field(24, ge=1)
    DIGEST_SIZE: int = Field(5, ge=1, le=5)
    RECENCY_MAX_BONUS: float = Field(0.25, ge=0.0, lt=1.0)
    topics: Dict[str, List[str]] = {}

    # Delivery
    MAILER_BACKEND: str = "smtp"  # smtp, file
    MAILER_OUTBOX_DIR: str = "output/outbox"
    DELIVERY_TIMEOUT: float = Field(30.0, gt=0)
    DELIVERY_BATCH_SIZE: int = Field(10, ge=1)
    DELIVERY_RATE_LIMIT_DELAY: float = Field(1.0, ge=0.0)
    EMAIL_SMTP_HOST: Optional[str] = None
    EMAIL_SMTP_PORT: Optional[int] = None
    EMAIL_USERNAME: Optional[str] = None
    EMAIL_FROM: Optional[str] = None
    email_colors: EmailColorsConfig = EmailColorsConfig()

    # Scheduling
    SCHEDULE_HOUR: int = Field(8, ge=0, le=23)
    SCHEDULE_TIMEZONE: str = "Europe/Rome"

    # Diagnostics
    PROBE_LIMIT: int = Field(1000, ge=1)

    @property
    def mailer_key_present(self) -> bool:
        return bool(self.EMAIL_PASSWORD)

    @property
    def scraper_key_present(self) -> bool:
        return bool(self.SCRAPER_API_KEY)

    def config_ok(self) -> bool:
        """Base endpoint and service token are present and the endpoint is a valid URL."""
        if not self.API_BASE_URL or not self.SERVICE_AUTH_TOKEN:
            return False
        try:
            _URL_ADAPTER.validate_python(self.API_BASE_URL)
        except PydanticValidationError:
            return False
        return True


def _get_config_path() -> Optional[str]:
    """Get the path to config.yml, handling different working directories."""
    env_path = os.getenv("NEWSDESK_CONFIG")
    if env_path:
        return env_path

    if os.path.exists("resources/config.yml"):
        return "resources/config.yml"

    # src/newsdesk/services/config.py -> project root
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
    config_path = os.path.join(project_root, "resources", "config.yml")
    if os.path.exists(config_path):
        return config_path

    return None


def _parse_topics(data: Any) -> Dict[str, List[str]]:
    """Parse the topic -> keywords map used by the keyword classifier."""
    topics: Dict[str, List[str]] = {}
    if not isinstance(data, dict):
        return topics
    for topic, keywords in data.items():
        if isinstance(keywords, str):
            keywords = [keywords]
        cleaned = [str(k).strip() for k in keywords or [] if str(k).strip()]
        if cleaned:
            topics[str(topic).strip().lower()] = cleaned
    return topics


def _parse_user_tokens(raw: str) -> Dict[str, str]:
    """Parse "token:user_id,token2:user_id2" from the environment."""
    tokens: Dict[str, str] = {}
    for pair in raw.split(","):
        token, _, user_id = pair.strip().partition(":")
        if token and user_id:
            tokens[token] = user_id
    return tokens


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from config.yml and secrets from .env."""
    # Load .env for sensitive credentials
    load_dotenv()

    config_path = path or _get_config_path()
    config: Dict[str, Any] = {}

    if config_path and os.path.exists(config_path):
        with open(config_path, "r") as file:
            config = yaml.safe_load(file) or {}
    else:
        logger.warning("No config.yml found, using defaults")

    smtp_port = config.get("EMAIL_SMTP_PORT")

    return Config(
        DATABASE_PATH=config.get("DATABASE_PATH", "data/newsdesk.db"),
        API_BASE_URL=os.getenv("API_BASE_URL") or config.get("API_BASE_URL"),
        SERVICE_AUTH_TOKEN=os.getenv("SERVICE_AUTH_TOKEN"),
        USER_TOKENS=_parse_user_tokens(os.getenv("USER_TOKENS", "")),

        EMAIL_PASSWORD=os.getenv("EMAIL_PASSWORD"),
        SCRAPER_API_KEY=os.getenv("SCRAPER_API_KEY"),

        SCRAPE_POOL_WIDTH=int(config.get("SCRAPE_POOL_WIDTH", 4)),
        SCRAPE_SOURCE_TIMEOUT=float(config.get("SCRAPE_SOURCE_TIMEOUT", 30.0)),
        SCRAPE_RUN_STALE_MINUTES=int(config.get("SCRAPE_RUN_STALE_MINUTES", 120)),
        SCRAPER_USER_AGENT=config.get("SCRAPER_USER_AGENT", "newsdesk/1.0 (+feed reader)"),

        DIGEST_WINDOW_HOURS=int(config.get("DIGEST_WINDOW_HOURS", 24)),
        DIGEST_SIZE=int(config.get("DIGEST_SIZE", 5)),
        RECENCY_MAX_BONUS=float(config.get("RECENCY_MAX_BONUS", 0.25)),
        topics=_parse_topics(config.get("topics", {})),

        MAILER_BACKEND=str(config.get("MAILER_BACKEND", "smtp")).lower(),
        MAILER_OUTBOX_DIR=config.get("MAILER_OUTBOX_DIR", "output/outbox"),
        DELIVERY_TIMEOUT=float(config.get("DELIVERY_TIMEOUT", 30.0)),
        DELIVERY_BATCH_SIZE=int(config.get("DELIVERY_BATCH_SIZE", 10)),
        DELIVERY_RATE_LIMIT_DELAY=float(config.get("DELIVERY_RATE_LIMIT_DELAY", 1.0)),
        EMAIL_SMTP_HOST=config.get("EMAIL_SMTP_HOST"),
        EMAIL_SMTP_PORT=int(smtp_port) if smtp_port else None,
        EMAIL_USERNAME=os.getenv("EMAIL_USERNAME") or config.get("EMAIL_USERNAME"),
        EMAIL_FROM=config.get("EMAIL_FROM"),
        email_colors=EmailColorsConfig(**config.get("email_colors", {})),

        SCHEDULE_HOUR=int(config.get("SCHEDULE_HOUR", 8)),
        SCHEDULE_TIMEZONE=config.get("SCHEDULE_TIMEZONE", "Europe/Rome"),

        PROBE_LIMIT=int(config.get("PROBE_LIMIT", 1000)),
    )
