# cenownik/config/settings.py

"""Central configuration for the cenownik price monitor."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


def _env_str(name: str, default: str | None = None) -> str | None:
    """Return an environment value, treating empty strings as unset."""
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value


def _env_int(name: str, default: int) -> int:
    try:
        return int(_env_str(name, str(default)) or default)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env_str(name, str(default)) or default)
    except ValueError:
        return default


class Settings:
    """Central configuration for the cenownik price monitor."""

    # --- Scheduling ---
    DEFAULT_CRON: str = "0 * * * *"
    SCRAPE_CRON: str = _env_str("SCRAPE_CRON", DEFAULT_CRON) or DEFAULT_CRON
    SCRAPE_CRON_CONFIG_KEY: str = "SCRAPE_CRON"
    SCRAPE_CRON_JOB: str = "scrape-cron-job"
    SCRAPE_MIN_INTERVAL_MINUTES: int = _env_int(
        "SCRAPE_MIN_INTERVAL_MINUTES", 10
    )
    SWEEP_ITEM_DELAY: float = _env_float("SWEEP_ITEM_DELAY", 2.0)
    SWEEP_DEADLINE_SECONDS: float = _env_float(
        "SWEEP_DEADLINE_SECONDS", 3300.0
    )                                   # 0 disables the per-tick deadline
    CRON_SYNC_JOB: str = "cron-sync-job"
    CRON_SYNC_INTERVAL_SECONDS: int = _env_int(
        "CRON_SYNC_INTERVAL_SECONDS", 60
    )                                   # 0 disables picking up stored changes

    # --- Page fetching ---
    REQUEST_DELAY: float = 1.0          # Base wait between fetch retries
    REQUEST_TIMEOUT: int = 15           # Seconds before a request times out
    MAX_RETRIES: int = 3                # Fetch attempts on transient failures
    MAX_DELAY_MULTIPLIER: int = 8       # Cap for adaptive backoff
    BROWSER_TIMEOUT_MS: int = 45_000
    BROWSER_SELECTOR_TIMEOUT_MS: int = 10_000
    BROWSER_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )
    BROWSER_LOCALE: str = "pl-PL"
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
    ]

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "pl-PL,pl;q=0.9,en-US;q=0.8,en;q=0.7",
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Notifications ---
    NOTIFY_MAX_ATTEMPTS: int = _env_int("NOTIFY_MAX_ATTEMPTS", 3)
    EMAIL_BASE_DELAY: float = 1.0       # Doubles after every failed attempt
    WEBHOOK_RATE_LIMIT_DEFAULT_WAIT: float = 5.0
    WEBHOOK_TIMEOUT: int = 10
    WEBHOOK_USERNAME: str = "Cenownik"
    WEBHOOK_AVATAR_URL: str = (
        "https://cdn.discordapp.com/embed/avatars/0.png"
    )
    NOTIFICATION_HISTORY_LIMIT: int = 50

    # --- Email credentials (OAuth2 takes precedence over SMTP) ---
    EMAIL_OAUTH_CLIENT_ID: str | None = _env_str("EMAIL_OAUTH_CLIENT_ID")
    EMAIL_OAUTH_CLIENT_SECRET: str | None = _env_str(
        "EMAIL_OAUTH_CLIENT_SECRET"
    )
    EMAIL_OAUTH_REFRESH_TOKEN: str | None = _env_str(
        "EMAIL_OAUTH_REFRESH_TOKEN"
    )
    EMAIL_OAUTH_USER: str | None = _env_str("EMAIL_OAUTH_USER")
    SMTP_HOST: str | None = _env_str("SMTP_HOST")
    SMTP_PORT: int = _env_int("SMTP_PORT", 587)
    SMTP_USER: str | None = _env_str("SMTP_USER")
    SMTP_PASS: str | None = _env_str("SMTP_PASS")
    EMAIL_FROM: str = (
        _env_str("EMAIL_FROM")
        or _env_str("SMTP_FROM")
        or _env_str("EMAIL_OAUTH_USER")
        or '"Cenownik" <noreply@cenownik.local>'
    )
    SMTP_TIMEOUT: int = 20

    # --- Logging ---
    CONSOLE_LOG_LEVEL: str = _env_str("CONSOLE_LOG_LEVEL", "WARNING") or "WARNING"

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "cenownik" / "config" / "selectors.json"
    DB_PATH: Path = Path(
        _env_str("CENOWNIK_DB_PATH", str(BASE_DIR / "data" / "cenownik.db"))
        or BASE_DIR / "data" / "cenownik.db"
    )
    LOGS_DIR: Path = BASE_DIR / "logs"

    # --- Sources (registration order decides which extractor wins) ---
    AVAILABLE_SOURCES: list[dict[str, str]] = [
        {
            "id": "morele",
            "label": "morele.net",
            "extractor": "cenownik.extractors.morele_extractor.MoreleExtractor",
        },
        {
            "id": "xkom",
            "label": "x-kom.pl",
            "extractor": "cenownik.extractors.xkom_extractor.XkomExtractor",
        },
    ]
