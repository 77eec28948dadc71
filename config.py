"""Application configuration — environment variables and derived constants.

Loads the Telegram bot token, the identity-provider service account, the
membership store location and the reconciliation cadence from the
environment via ``python-dotenv``.  Values are resolved at import time so
other modules can ``from config import …`` without repeated lookups.
"""

# ── stdlib ───────────────────────────────────────────────────────────────────
import os
from datetime import time

# ── third-party ──────────────────────────────────────────────────────────────
from dotenv import load_dotenv

# ── core ─────────────────────────────────────────────────────────────────────
from core.logger import GroupkeeperLogger

load_dotenv()

logger = GroupkeeperLogger.get_logger("config")


# ── Helper functions (private) ───────────────────────────────────────────────


def _env(*names: str, default: str | None = None) -> str | None:
    """Return the first non-empty variable among *names*.

    Later names are legacy spellings kept for existing ``.env`` files.
    """
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


def _parse_ids(raw: str | None) -> list[int]:
    """Parse a comma-separated list of Telegram user IDs; junk tokens are skipped."""
    if not raw:
        return []
    result: list[int] = []
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            result.append(int(token))
        except ValueError:
            logger.warning("Ignoring non-numeric admin id", extra={"token": token})
    return result


def _parse_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid number in environment, using default", extra={"variable": name, "value": raw, "default": default})
        return default


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _parse_daily_time(raw: str | None) -> time | None:
    """Parse ``HH:MM`` into a :class:`datetime.time`; ``None`` when unset or invalid."""
    if not raw:
        return None
    try:
        hours, _, minutes = raw.strip().partition(":")
        return time(int(hours), int(minutes or 0))
    except ValueError:
        logger.warning("Invalid RECONCILE_AT, falling back to interval", extra={"value": raw})
        return None


# ── Public constants ─────────────────────────────────────────────────────────

BOT_TOKEN: str | None = os.environ.get("BOT_TOKEN")
BASE_URL: str = f"https://api.telegram.org/bot{BOT_TOKEN or ''}"
ADMINS: list[int] = _parse_ids(os.environ.get("ADMINS"))

PROVIDER_BASE_URL: str | None = _env("PROVIDER_BASE_URL", "API_BASE_URL")
PROVIDER_USERNAME: str | None = _env("PROVIDER_USERNAME", "API_USERNAME")
PROVIDER_PASSWORD: str | None = _env("PROVIDER_PASSWORD", "API_PASSWORD")
PROVIDER_TIMEOUT: float = _parse_float("PROVIDER_TIMEOUT", 10.0)
TOKEN_EXPIRY_MARGIN: float = _parse_float("TOKEN_EXPIRY_MARGIN", 30.0)

MEMBERSHIP_DB_PATH: str = os.environ.get("MEMBERSHIP_DB_PATH", "data/memberships.json")

RECONCILE_INTERVAL: float = _parse_float("RECONCILE_INTERVAL", 24 * 60 * 60)
RECONCILE_AT: time | None = _parse_daily_time(os.environ.get("RECONCILE_AT"))
RECONCILE_ON_START: bool = _parse_bool("RECONCILE_ON_START")
RECONCILE_BATCH_SIZE: int = max(1, int(_parse_float("RECONCILE_BATCH_SIZE", 500)))


# ── Startup diagnostics ─────────────────────────────────────────────────────

if PROVIDER_BASE_URL:
    logger.info("Config loaded — provider configured", extra={"provider_base_url": PROVIDER_BASE_URL})
else:
    logger.warning("Config loaded — PROVIDER_BASE_URL is NOT set")

if not ADMINS:
    logger.warning("No ADMINS configured; /sync is disabled for everyone")
