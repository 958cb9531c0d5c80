import logging
from typing import Optional

from . import http
from .http import NETWORK_EXCEPTIONS, PARSE_EXCEPTIONS
from .models import ResolvedMetadata
from .platforms import get_adapter, try_detect_platform
from .platforms.base import PlatformAdapter
from .structured import detect_video, extract_from_html, meta_tags

logger = logging.getLogger("fanfeed")


def _metadata_from_page(page: str, final_url: str, adapter: PlatformAdapter) -> ResolvedMetadata:
    meta = ResolvedMetadata(resolved_url=final_url)
    meta.content_id = adapter.extract_content_id(final_url)
    tags = meta_tags(page)
    meta.thumbnail_url = tags.get("og:image") or None

    content = extract_from_html(page, adapter, final_url)
    if content is None:
        if detect_video(page, tags):
            meta.content_type = "video"
        return meta

    meta.title = content.title
    meta.author = content.author
    meta.description = content.text or None
    meta.published_at = content.published_at
    meta.extraction_method = content.method or "none"
    meta.content_id = content.content_id or meta.content_id
    meta.hashtags = list(content.hashtags)
    meta.media = list(content.media)
    meta.engagement = content.engagement
    if content.content_type != "unknown":
        meta.content_type = content.content_type
    elif detect_video(page, tags):
        meta.content_type = "video"
    if not meta.thumbnail_url:
        for item in content.media:
            if item.poster_url or item.kind == "image":
                meta.thumbnail_url = item.poster_url or item.source_url
                break
    return meta


def resolve_url(url: str, platform: Optional[str] = None) -> ResolvedMetadata:
    """Follow ``url`` (short links included) and extract what the page offers.

    Never raises: on any failure the result carries only ``resolved_url``, set to ``url``.
    """
    fallback = ResolvedMetadata(resolved_url=url)
    if not isinstance(url, str) or not url.startswith(("http://", "https://")):
        return fallback
    platform = platform or try_detect_platform(url)
    if not platform:
        logger.warning(f"无法识别平台，跳过解析: {url}")
        return fallback
    adapter = get_adapter(platform)

    try:
        resp = http.get_text(url, platform=adapter.platform, mobile=True)
        final_url = str(resp.url)
        page = resp.text
    except NETWORK_EXCEPTIONS as e:
        logger.warning(f"{adapter.name}: 链接解析失败 {url}: {e}")
        return fallback

    try:
        meta = _metadata_from_page(page, final_url, adapter)
    except PARSE_EXCEPTIONS as e:
        logger.warning(f"{adapter.name}: 页面解析失败 {final_url}: {e}")
        return ResolvedMetadata(resolved_url=final_url)
    logger.info(f"{adapter.name}: 解析完成 {final_url} ({meta.extraction_method})")
    return meta
