"""Structured-data extraction from fetched pages.

Extraction is an ordered list of named strategies, each a pure function
``(html, adapter, url) -> ScrapedContent | None``. Embedded application state is
tried before meta tags; adding a new page variant means adding a pattern here,
not touching the callers.
"""

import re
import json
import html as html_lib
import logging
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import unquote

from .models import ScrapedContent
from .platforms.base import PlatformAdapter, image_item
from .utils import dig, extract_hashtags, parse_iso, strip_html

logger = logging.getLogger("fanfeed")

# ─── 内嵌状态 ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EmbeddedStatePattern:
    name: str
    regex: re.Pattern
    platforms: tuple[str, ...] = ()
    # JS object literal rather than strict JSON (``undefined`` values).
    js_literal: bool = False
    # Payload is the body of a JS string literal that must be unescaped first.
    string_literal: bool = False

    def applies_to(self, platform: str) -> bool:
        return not self.platforms or platform in self.platforms


def _p(name: str, pattern: str, *platforms: str, **kwargs) -> EmbeddedStatePattern:
    return EmbeddedStatePattern(name, re.compile(pattern, re.S), tuple(platforms), **kwargs)


STATE_PATTERNS: list[EmbeddedStatePattern] = [
    _p("render-data", r'<script[^>]*id="RENDER_DATA"[^>]*>(.*?)</script>', "douyin"),
    _p("sigi-state", r'<script[^>]*id="SIGI_STATE"[^>]*>(.*?)</script>', "douyin"),
    _p("router-data", r"window\._ROUTER_DATA\s*=\s*(.*?)</script>", "douyin"),
    _p("ssr-state", r"window\.__INITIAL_SSR_STATE__\s*=\s*(\{.*?\})\s*;?\s*</script>", "douyin"),
    _p("pace-f", r'self\.__pace_f\.push\(\[1,\s*"(.*?)"\]\)', "douyin", string_literal=True),
    _p("initial-state", r"window\.__INITIAL_STATE__\s*=\s*(.*?)</script>", "xiaohongshu", js_literal=True),
    _p("next-data", r'<script[^>]*id="__NEXT_DATA__"[^>]*>(.*?)</script>', "xiaohongshu", "douyin"),
    _p("render-data-var", r"var \$render_data\s*=\s*(\[.*?\])\[0\]", "weibo"),
]

_UNDEFINED_RE = re.compile(r"\bundefined\b")


@dataclass
class EmbeddedState:
    pattern: str
    data: object


def _candidates(raw: str, pattern: EmbeddedStatePattern) -> list[str]:
    raw = raw.strip().rstrip(";").strip()
    if pattern.string_literal:
        try:
            raw = json.loads(f'"{raw}"')
        except json.JSONDecodeError:
            return []
        start, end = raw.find("{"), raw.rfind("}")
        if start < 0 or end <= start:
            return []
        raw = raw[start:end + 1]
    out = []
    if "%" in raw:
        out.append(unquote(raw))
    out.append(raw)
    if pattern.js_literal:
        out = [_UNDEFINED_RE.sub("null", c) for c in out]
    return out


def find_embedded_state(page: str, platform: str) -> Optional[EmbeddedState]:
    """First pattern (in order) whose payload parses as JSON; ``None`` if none does."""
    if not page:
        return None
    for pattern in STATE_PATTERNS:
        if not pattern.applies_to(platform):
            continue
        for m in pattern.regex.finditer(page):
            for candidate in _candidates(m.group(1), pattern):
                try:
                    data = json.loads(candidate)
                except (json.JSONDecodeError, ValueError):
                    continue
                if isinstance(data, (dict, list)) and data:
                    logger.debug(f"内嵌数据命中: {pattern.name}")
                    return EmbeddedState(pattern.name, data)
    return None


def probe_paths(data, paths) -> Optional[tuple[str, dict]]:
    """First explicit key path that leads to a dict; no deep search."""
    for path in paths:
        found = dig(data, path)
        if isinstance(found, dict) and found:
            return path, found
    return None

# ─── Meta 标签 ────────────────────────────────────────────────────────────────

_META_TAG_RE = re.compile(r"<meta\s[^>]*>", re.I)
_ATTR_RE = re.compile(r'([\w:-]+)\s*=\s*(?:"([^"]*)"|\'([^\']*)\')')
_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.I)
_LD_JSON_RE = re.compile(r'<script[^>]*type="application/ld\+json"[^>]*>(.*?)</script>', re.S | re.I)
_VIDEO_FILE_RE = re.compile(r"\.(mp4|webm|ogg|mov)\b", re.I)


def meta_tags(page: str) -> dict[str, str]:
    """``property``/``name``/``itemprop`` → ``content``; first occurrence wins."""
    tags: dict[str, str] = {}
    for tag in _META_TAG_RE.findall(page or ""):
        attrs = {k.lower(): (v1 if v1 or not v2 else v2) for k, v1, v2 in _ATTR_RE.findall(tag)}
        key = attrs.get("property") or attrs.get("name") or attrs.get("itemprop")
        content = attrs.get("content")
        if key and content is not None and key.lower() not in tags:
            tags[key.lower()] = html_lib.unescape(content).strip()
    return tags


def ld_json_date(page: str) -> Optional[str]:
    for block in _LD_JSON_RE.findall(page or ""):
        try:
            data = json.loads(block.strip())
        except (json.JSONDecodeError, ValueError):
            continue
        for entry in data if isinstance(data, list) else [data]:
            if not isinstance(entry, dict):
                continue
            value = parse_iso(entry.get("datePublished")) or parse_iso(entry.get("uploadDate"))
            if value:
                return value
    return None


def detect_video(page: str, tags: Optional[dict] = None) -> bool:
    """``<video>`` element, a video OpenGraph/``video:`` property, or a video file extension."""
    if not page:
        return False
    tags = meta_tags(page) if tags is None else tags
    if "<video" in page.lower():
        return True
    if any(k.startswith("og:video") or k.startswith("video:") for k in tags):
        return True
    return bool(_VIDEO_FILE_RE.search(page))


def page_title(page: str, adapter: Optional[PlatformAdapter] = None) -> Optional[str]:
    tags = meta_tags(page)
    m = _TITLE_RE.search(page or "")
    title = tags.get("og:title") or (html_lib.unescape(m.group(1)).strip() if m else "")
    if title and adapter is not None and adapter.title_suffix is not None:
        title = adapter.title_suffix.sub("", title).strip()
    return title or None

# ─── 提取策略 ──────────────────────────────────────────────────────────────────

HtmlStrategy = Callable[[str, PlatformAdapter, str], Optional[ScrapedContent]]


def extract_structured_json(page: str, adapter: PlatformAdapter, url: str) -> Optional[ScrapedContent]:
    state = find_embedded_state(page, adapter.platform)
    if state is None:
        return None
    for path in adapter.state_paths:
        hit = probe_paths(state.data, [path])
        if hit is None:
            continue
        content = adapter.normalize(hit[1], url)
        if content is not None:
            content.method = "structured-json"
            logger.debug(f"{adapter.name}: {state.pattern} → {path}")
            return content
    logger.debug(f"{adapter.name}: {state.pattern} 结构未识别")
    return None


def extract_meta_tags(page: str, adapter: PlatformAdapter, url: str) -> Optional[ScrapedContent]:
    tags = meta_tags(page)
    title = page_title(page, adapter)
    description = strip_html(tags.get("og:description") or tags.get("description") or "") or None
    if not (title or description):
        return None
    thumbnail = tags.get("og:image") or tags.get("image") or None
    published = (ld_json_date(page) or parse_iso(tags.get("article:published_time"))
                 or parse_iso(tags.get("og:release_date")))
    is_video = detect_video(page, tags)
    media = adapter.placeholder_media(url, thumbnail, "video" if is_video else "unknown") if url else []
    if not media and thumbnail:
        item = image_item(thumbnail, thumbnail)
        media = [item] if item else []
    text = description or title or ""
    return ScrapedContent(
        method="meta-tags",
        text=text,
        title=title,
        author=tags.get("author") or None,
        source_url=url or None,
        published_at=published,
        content_type="video" if is_video else "unknown",
        media=media,
        hashtags=extract_hashtags(text),
        content_id=adapter.extract_content_id(url) if url else None,
    )


HTML_STRATEGIES: list[tuple[str, HtmlStrategy]] = [
    ("structured-json", extract_structured_json),
    ("meta-tags", extract_meta_tags),
]


def extract_from_html(page: str, adapter: PlatformAdapter, url: str = "") -> Optional[ScrapedContent]:
    """Run the HTML strategies in order; the first usable result wins."""
    for name, strategy in HTML_STRATEGIES:
        try:
            content = strategy(page, adapter, url)
        except (ValueError, TypeError, KeyError, IndexError, AttributeError) as e:
            logger.debug(f"{adapter.name}: {name} 解析异常: {e}")
            continue
        if content is not None:
            return content
    return None
