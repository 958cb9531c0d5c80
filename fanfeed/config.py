import os
import secrets
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return list(default)
    return [part.strip().rstrip("/") for part in raw.split(",") if part.strip()]


TIMEOUT = _env_float("FANFEED_TIMEOUT", 15.0)
STRATEGY_TIMEOUT = _env_float("FANFEED_STRATEGY_TIMEOUT", 8.0)
BROWSER_TIMEOUT = _env_float("FANFEED_BROWSER_TIMEOUT", 15.0)
BROWSER_ENABLED = _env_flag("FANFEED_BROWSER_ENABLED", True)

RSSHUB_BASES = _env_list("FANFEED_RSSHUB_BASES", [
    "https://rsshub.app",
    "https://rsshub.rssforever.com",
    "https://rsshub.pseudoyu.com",
])

# Account ids used by user-scoped endpoints when the shared URL does not carry one.
WEIBO_UID = os.getenv("FANFEED_WEIBO_UID", "").strip()
DOUYIN_SEC_UID = os.getenv("FANFEED_DOUYIN_SEC_UID", "").strip()
XHS_USER_ID = os.getenv("FANFEED_XHS_USER_ID", "").strip()

STORE_PATH = os.getenv("FANFEED_STORE_PATH", "").strip()
MAX_POSTS = _env_int("FANFEED_MAX_POSTS", 50)

ADMIN_USERNAME = os.getenv("FANFEED_ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("FANFEED_ADMIN_PASSWORD", "change-me")
SECRET_KEY = os.getenv("FANFEED_SECRET_KEY") or secrets.token_urlsafe(32)
ALGORITHM = "HS256"
TOKEN_HOURS = _env_int("FANFEED_TOKEN_HOURS", 24)

COOKIES_FILE = Path(os.getenv("FANFEED_COOKIES_FILE", "") or Path.home() / ".fanfeed" / "cookies.json")

# Text-length thresholds used by the cascade and the merge rule.
MIN_TEXT_LENGTH = 10        # an extraction shorter than this is trivial
MIN_HINT_LENGTH = 10        # share-text caption must clear this to beat raw share text
SUBSTANTIAL_TEXT_LENGTH = 50  # resolved text longer than this beats the share-text caption
