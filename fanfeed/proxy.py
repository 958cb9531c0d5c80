import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlparse

from . import http
from .config import TIMEOUT
from .http import DESKTOP_UA, NETWORK_EXCEPTIONS, REFERERS

logger = logging.getLogger("fanfeed")

PROXY_PATH = "/api/media-proxy"

SUCCESS_CACHE_CONTROL = "public, max-age=86400, stale-while-revalidate=604800"
PLACEHOLDER_CACHE_CONTROL = "public, max-age=3600"

# Hotlink-protected CDNs, mapped to the referer their platform expects.
PROTECTED_HOSTS = {
    "sinaimg.cn": "weibo",
    "weibo.com": "weibo",
    "weibo.cn": "weibo",
    "xhscdn.com": "xiaohongshu",
    "xiaohongshu.com": "xiaohongshu",
    "douyinpic.com": "douyin",
    "douyinvod.com": "douyin",
    "douyincdn.com": "douyin",
    "douyin.com": "douyin",
}

PLACEHOLDER_SVG = (
    '<svg width="400" height="300" xmlns="http://www.w3.org/2000/svg">'
    '<rect width="100%" height="100%" fill="#fee2e2"/>'
    '<text x="50%" y="50%" text-anchor="middle" dy="0.3em" fill="#dc2626" '
    'font-family="system-ui" font-size="14">Image unavailable</text>'
    "</svg>"
)


@dataclass
class ProxiedMedia:
    content: bytes
    content_type: str
    cache_control: str
    upstream_ok: bool = True
    status_code: int = 200


def _platform_for(url: str) -> Optional[str]:
    host = (urlparse(url).hostname or "").lower()
    for suffix, platform in PROTECTED_HOSTS.items():
        if host == suffix or host.endswith("." + suffix):
            return platform
    return None


def referer_for(url: str) -> str:
    return REFERERS.get(_platform_for(url) or "", REFERERS["weibo"])


def display_url_for(url: Optional[str]) -> str:
    """Route hotlink-protected media through the proxy; leave everything else alone."""
    if not url:
        return ""
    if url.startswith(PROXY_PATH) or _platform_for(url) is None:
        return url
    return f"{PROXY_PATH}?url={quote(url, safe='')}"


def placeholder() -> ProxiedMedia:
    return ProxiedMedia(
        content=PLACEHOLDER_SVG.encode("utf-8"),
        content_type="image/svg+xml",
        cache_control=PLACEHOLDER_CACHE_CONTROL,
        upstream_ok=False,
    )


def fetch_media(url: str) -> ProxiedMedia:
    """Fetch ``url`` server-side; any upstream failure becomes the placeholder image."""
    if not url.startswith(("http://", "https://")):
        logger.warning(f"媒体代理: 非法地址 {url}")
        return placeholder()
    client = http._new_client(mobile=False, timeout=TIMEOUT)
    try:
        resp = client.get(url, headers={
            "User-Agent": DESKTOP_UA,
            "Referer": referer_for(url),
            "Accept": "image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
        })
        resp.raise_for_status()
        return ProxiedMedia(
            content=resp.content,
            content_type=resp.headers.get("content-type", "image/jpeg"),
            cache_control=SUCCESS_CACHE_CONTROL,
        )
    except NETWORK_EXCEPTIONS as e:
        logger.warning(f"媒体代理失败 {url}: {e}")
        return placeholder()
    finally:
        http._release_client(client)
