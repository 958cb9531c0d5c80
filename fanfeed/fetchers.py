"""Mobile-JSON and RSS fetchers used by the cascade.

Each fetcher walks its platform's endpoint list in order and stops at the first
endpoint that yields non-empty text. Upstream errors mean "no data from this
endpoint", never a failure of the caller.
"""

import re
import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx

from . import http
from .config import STRATEGY_TIMEOUT
from .http import NETWORK_EXCEPTIONS, PARSE_EXCEPTIONS
from .models import FetchRequest, MediaItem, ScrapedContent
from .platforms import get_adapter
from .platforms.base import PlatformAdapter, image_item, dedupe_media, content_type_of
from .platforms.weibo import WeiboAdapter, pick_video_embed
from .utils import strip_html, parse_rss_date, extract_hashtags

logger = logging.getLogger("fanfeed")

ATOM_NS = {"atom": "http://www.w3.org/2005/Atom"}
_IMG_SRC_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.I)
_SINAIMG_RE = re.compile(r"https?://[^\s\"'<>]*sinaimg\.cn[^\s\"'<>]*\.(?:jpg|jpeg|png|gif|webp)", re.I)


def ensure_canonical(adapter: PlatformAdapter, request: FetchRequest) -> FetchRequest:
    """Follow a short link once so the endpoint templates get real ids."""
    if request.canonical_checked or not request.url:
        return request
    request.canonical_checked = True
    if adapter.is_canonical_id(request.content_id):
        return request
    try:
        resp = http.get_text(request.url, platform=adapter.platform, timeout=STRATEGY_TIMEOUT)
    except NETWORK_EXCEPTIONS as e:
        logger.debug(f"{adapter.name}: 短链跳转失败: {e}")
        return request
    final_url = str(resp.url)
    request.content_id = adapter.extract_content_id(final_url) or request.content_id
    request.user_id = request.user_id or adapter.extract_user_id(final_url)
    return request

# ─── 微博访客 Cookie ──────────────────────────────────────────────────────────


def weibo_visitor_cookies(client: httpx.Client) -> dict[str, str]:
    """Generate weibo visitor cookies via the passport API (genvisitor → incarnate)."""
    try:
        fp = json.dumps({"os": "1", "browser": "Chrome125,0,0,0", "fonts": "undefined",
                         "screenInfo": "2560*1440*30", "plugins": ""})
        resp = client.post(
            "https://passport.weibo.com/visitor/genvisitor",
            data={"cb": "gen_callback", "fp": fp},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=STRATEGY_TIMEOUT,
        )
        m = re.search(r"gen_callback\((.*?)\)", resp.text)
        if not m:
            return {}
        tid = (json.loads(m.group(1)).get("data") or {}).get("tid", "")
        if not tid:
            return {}
        resp = client.get(
            "https://passport.weibo.com/visitor/visitor",
            params={"a": "incarnate", "t": tid, "w": 2, "cb": "cross_domain", "from": "weibo"},
            timeout=STRATEGY_TIMEOUT,
        )
        m = re.search(r"cross_domain\((.*?)\)", resp.text)
        if not m:
            return {}
        data = json.loads(m.group(1)).get("data") or {}
        if data.get("sub"):
            return {"SUB": data["sub"], "SUBP": data.get("subp", "")}
    except (NETWORK_EXCEPTIONS + PARSE_EXCEPTIONS) as e:
        logger.warning(f"微博 visitor cookie 获取失败: {e}")
    return {}

# ─── 移动端 JSON ──────────────────────────────────────────────────────────────


class MobileJSONFetcher:
    method = "mobile-json"

    def _get(self, endpoint: str, adapter: PlatformAdapter):
        client = http._client(mobile=True, platform=adapter.platform)
        parsed = urlparse(endpoint)
        headers = {
            "Accept": "application/json, text/plain, */*",
            "Referer": f"{parsed.scheme}://{parsed.netloc}/",
            "X-Requested-With": "XMLHttpRequest",
        }
        resp = client.get(endpoint, headers=headers, timeout=STRATEGY_TIMEOUT)
        if resp.status_code == 403 and adapter.platform == "weibo":
            visitor = weibo_visitor_cookies(client)
            if visitor:
                for k, v in visitor.items():
                    client.cookies.set(k, v)
                resp = client.get(endpoint, headers=headers, timeout=STRATEGY_TIMEOUT)
        resp.raise_for_status()
        return resp.json()

    def fetch(self, adapter: PlatformAdapter, request: FetchRequest) -> Optional[ScrapedContent]:
        ensure_canonical(adapter, request)
        for endpoint in adapter.mobile_endpoints(request):
            try:
                payload = self._get(endpoint, adapter)
                content = adapter.parse_mobile(payload, request)
            except NETWORK_EXCEPTIONS as e:
                logger.debug(f"{adapter.name} 移动端接口失败 {endpoint}: {e}")
                continue
            except PARSE_EXCEPTIONS as e:
                logger.debug(f"{adapter.name} 移动端数据无法解析 {endpoint}: {e}")
                continue
            if content is not None and content.text.strip():
                content.method = self.method
                logger.debug(f"{adapter.name} 移动端接口命中: {endpoint}")
                return content
        return None

# ─── RSS ─────────────────────────────────────────────────────────────────────


@dataclass
class FeedItem:
    title: str = ""
    description: str = ""
    link: str = ""
    guid: str = ""
    published: str = ""


def parse_feed(xml_text: str) -> list[FeedItem]:
    """RSS 2.0 ``<item>`` and Atom ``<entry>`` elements; raises ``ET.ParseError`` on bad XML."""
    root = ET.fromstring(xml_text)
    items = []
    for it in root.findall(".//item"):
        items.append(FeedItem(
            title=(it.findtext("title") or "").strip(),
            description=(it.findtext("description") or "").strip(),
            link=(it.findtext("link") or "").strip(),
            guid=(it.findtext("guid") or "").strip(),
            published=parse_rss_date(it.findtext("pubDate")),
        ))
    for e in root.findall(".//atom:entry", ATOM_NS):
        link_el = e.find("atom:link[@rel='alternate']", ATOM_NS)
        if link_el is None:
            link_el = e.find("atom:link", ATOM_NS)
        items.append(FeedItem(
            title=(e.findtext("atom:title", default="", namespaces=ATOM_NS) or "").strip(),
            description=(e.findtext("atom:content", default="", namespaces=ATOM_NS)
                         or e.findtext("atom:summary", default="", namespaces=ATOM_NS) or "").strip(),
            link=(link_el.attrib.get("href", "") if link_el is not None else "").strip(),
            guid=(e.findtext("atom:id", default="", namespaces=ATOM_NS) or "").strip(),
            published=parse_rss_date(e.findtext("atom:published", default="", namespaces=ATOM_NS)
                                     or e.findtext("atom:updated", default="", namespaces=ATOM_NS)),
        ))
    return items


def feed_item_images(item: FeedItem) -> list[MediaItem]:
    urls = _IMG_SRC_RE.findall(item.description) + _SINAIMG_RE.findall(item.description)
    return dedupe_media(image_item(u, u) for u in urls)


class RSSFetcher:
    method = "rss"

    @staticmethod
    def match(items: list[FeedItem], content_id: Optional[str]) -> Optional[FeedItem]:
        """The feed item for ``content_id``; without an id nothing matches."""
        if not content_id:
            return None
        for item in items:
            if content_id in item.link or content_id in item.guid:
                return item
        return None

    def fetch(self, adapter: PlatformAdapter, request: FetchRequest) -> Optional[ScrapedContent]:
        ensure_canonical(adapter, request)
        for feed_url in adapter.rss_urls(request):
            try:
                resp = http.get_text(
                    feed_url, platform=adapter.platform, mobile=False, timeout=STRATEGY_TIMEOUT,
                    headers={"Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml"},
                )
                item = self.match(parse_feed(resp.text), request.content_id)
            except NETWORK_EXCEPTIONS as e:
                logger.debug(f"{adapter.name} RSS 源失败 {feed_url}: {e}")
                continue
            except PARSE_EXCEPTIONS as e:
                logger.debug(f"{adapter.name} RSS 解析失败 {feed_url}: {e}")
                continue
            if item is None:
                continue
            description = strip_html(item.description)
            title = strip_html(item.title)
            text = description if len(description) >= len(title) else title
            if not text:
                continue
            media = feed_item_images(item)
            logger.debug(f"{adapter.name} RSS 命中: {feed_url}")
            return ScrapedContent(
                method=self.method,
                text=text,
                title=title or None,
                source_url=item.link or request.url,
                published_at=item.published or None,
                content_type=content_type_of(media),
                media=media,
                hashtags=extract_hashtags(text),
                content_id=request.content_id,
            )
        return None

# ─── 微博视频嵌入 ──────────────────────────────────────────────────────────────


def weibo_video_embed(post_url: str) -> Optional[MediaItem]:
    """Embeddable player for a weibo post: its own ``page_info`` first, then the retweeted one."""
    adapter: WeiboAdapter = get_adapter("weibo")
    content_id = adapter.extract_content_id(post_url)
    if not content_id:
        return None
    try:
        payload = http.get_json(
            f"https://m.weibo.cn/statuses/show?id={content_id}",
            platform="weibo", timeout=STRATEGY_TIMEOUT,
            headers={"X-Requested-With": "XMLHttpRequest", "Referer": "https://m.weibo.cn/"},
        )
    except (NETWORK_EXCEPTIONS + PARSE_EXCEPTIONS) as e:
        logger.debug(f"微博视频信息获取失败: {e}")
        return None
    status = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(status, dict):
        return None
    return pick_video_embed(status) or pick_video_embed(status.get("retweeted_status"))
