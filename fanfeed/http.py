import json
import atexit
import logging
import xml.etree.ElementTree as ET
from typing import Optional

import httpx

from .config import TIMEOUT, COOKIES_FILE

logger = logging.getLogger("fanfeed")

MOBILE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.0 Mobile/15E148 Safari/604.1"
)

DESKTOP_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/125.0.0.0 Safari/537.36"
)

# Chinese-locale headers change what these platforms serve; they are not optional.
ACCEPT_LANGUAGE = "zh-CN,zh;q=0.9,en;q=0.8"

REFERERS = {
    "weibo": "https://weibo.com/",
    "douyin": "https://www.douyin.com/",
    "xiaohongshu": "https://www.xiaohongshu.com/",
}

NETWORK_EXCEPTIONS = (
    httpx.HTTPError,
    httpx.TimeoutException,
)

PARSE_EXCEPTIONS = (
    json.JSONDecodeError,
    ValueError,
    IndexError,
    TypeError,
    KeyError,
    AttributeError,
    ET.ParseError,
)

HANDLED_EXCEPTIONS = NETWORK_EXCEPTIONS + PARSE_EXCEPTIONS

_cookie_cache: dict[str, dict[str, str]] = {}
_client_pool: dict[tuple[str, bool], httpx.Client] = {}
# Tests swap in an httpx.MockTransport here (and clear the pool).
_transport: Optional[httpx.BaseTransport] = None


def _load_cookies() -> dict[str, dict]:
    """Load cookies from the configured cookies file if it exists."""
    if COOKIES_FILE.exists():
        try:
            with open(COOKIES_FILE, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Cookie 文件读取失败: {e}")
    return {}


_cookies_store = _load_cookies()


def _get_cookies(platform: str) -> dict[str, str]:
    """Get cookies for a platform. Supports both formats:
    - Simple: {"weibo": {"SUB": "xxx"}}
    - Nested: {"weibo": {"cookies": {"SUB": "xxx"}, "updated_at": "..."}}
    """
    if platform in _cookie_cache:
        return _cookie_cache[platform]
    entry = _cookies_store.get(platform, {})
    if isinstance(entry, dict) and isinstance(entry.get("cookies"), dict):
        cookies = entry["cookies"]
    else:
        cookies = entry if isinstance(entry, dict) else {}
    _cookie_cache[platform] = cookies
    return cookies


def _headers(mobile: bool = True, platform: str = "") -> dict[str, str]:
    headers = {
        "User-Agent": MOBILE_UA if mobile else DESKTOP_UA,
        "Accept-Language": ACCEPT_LANGUAGE,
    }
    if platform in REFERERS:
        headers["Referer"] = REFERERS[platform]
    return headers


def _new_client(platform: str = "", mobile: bool = True, timeout: float = TIMEOUT,
                follow_redirects: bool = True) -> httpx.Client:
    kwargs = {}
    if _transport is not None:
        kwargs["transport"] = _transport
    return httpx.Client(
        follow_redirects=follow_redirects,
        timeout=timeout,
        headers=_headers(mobile, platform),
        cookies=_get_cookies(platform) or None,
        **kwargs,
    )


def _get_client(platform: str = "", mobile: bool = True) -> httpx.Client:
    key = (platform, mobile)
    if key not in _client_pool:
        _client_pool[key] = _new_client(platform, mobile)
    return _client_pool[key]


def _close_clients() -> None:
    for c in _client_pool.values():
        c.close()
    _client_pool.clear()


atexit.register(_close_clients)


def _client(mobile: bool = True, platform: str = "") -> httpx.Client:
    return _get_client(platform=platform, mobile=mobile)


def _release_client(client: httpx.Client) -> None:
    """Close ad-hoc clients; pooled clients stay open until exit."""
    if client not in _client_pool.values():
        client.close()


def set_transport(transport: Optional[httpx.BaseTransport]) -> None:
    """Route every client through ``transport`` (``None`` restores the network)."""
    global _transport
    _close_clients()
    _transport = transport


def get_text(url: str, platform: str = "", mobile: bool = True, timeout: Optional[float] = None,
             headers: Optional[dict] = None) -> httpx.Response:
    """GET with the platform's pooled client; raises on network errors and non-2xx."""
    client = _client(mobile=mobile, platform=platform)
    resp = client.get(url, headers=headers, timeout=timeout if timeout is not None else TIMEOUT)
    resp.raise_for_status()
    return resp


def get_json(url: str, platform: str = "", mobile: bool = True, timeout: Optional[float] = None,
             headers: Optional[dict] = None):
    resp = get_text(url, platform=platform, mobile=mobile, timeout=timeout, headers=headers)
    return resp.json()


class ClientPool:
    """Context manager for fanfeed HTTP client pool cleanup."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        _close_clients()
        return False

    def close(self):
        _close_clients()


__all__ = [
    "MOBILE_UA",
    "DESKTOP_UA",
    "ACCEPT_LANGUAGE",
    "REFERERS",
    "NETWORK_EXCEPTIONS",
    "PARSE_EXCEPTIONS",
    "HANDLED_EXCEPTIONS",
    "ClientPool",
    "set_transport",
    "get_text",
    "get_json",
    "_headers",
    "_get_client",
    "_close_clients",
    "_client",
    "_release_client",
]
