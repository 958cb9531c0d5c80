import re
from typing import Optional

from ..config import RSSHUB_BASES, DOUYIN_SEC_UID
from ..models import FetchRequest, MediaItem, ScrapedContent, ShareHint, EngagementCounts, DOUYIN
from ..share_text import ShareTextParser, rule, looks_like_video, find_written_date
from ..utils import _ts_to_iso, extract_hashtags, dig
from .base import PlatformAdapter, image_item, video_item, dedupe_media, content_type_of

# ─── 分享文本 ──────────────────────────────────────────────────────────────────


class DouyinShareParser(ShareTextParser):
    """``9.99 复制打开抖音，看看【标题】描述 #话题# https://v.douyin.com/xxx/ daN:/ ...``"""

    platform = DOUYIN
    url_pattern = re.compile(r"https?://(?:[\w-]+\.)*(?:douyin\.com|iesdouyin\.com)/[^\s，。！？、）)】\]]*")
    rules = [
        rule("app-prompt", r"^\d+\.\d+\s*复制打开抖音，?\s*看看"),
        rule("bracketed-title", r"【[^】]*】"),
        rule("url-tail", r"\s+https?://[^\s]+.*$", flags=re.S),
        rule("tracking-dan", r"\s+daN:/.*$", flags=re.S),
        rule("tracking-zat", r"\s+z@T\.YZ.*$", flags=re.S),
        rule("ellipsis", r"\.{3,}$"),
        # Variants with tracking codes ahead of the prompt, or a URL with no leading space.
        rule("tracked-app-prompt", r"^[^【\n]*?复制打开抖音，?\s*看看"),
        rule("bare-url-tail", r"https?://[^\s]+.*$", flags=re.S),
    ]

    _title_re = re.compile(r"【([^】]+)】")
    _desc_re = re.compile(r"^([^#]*?)(?=#|https?:|$)", re.S)

    def _parse(self, text: str) -> Optional[ShareHint]:
        url = self.find_url(text)
        title_m = self._title_re.search(text)
        if not (url or title_m or "复制打开抖音" in text):
            return None

        description = None
        if title_m:
            after = text[title_m.end():]
            m = self._desc_re.match(after)
            description = m.group(1).strip() if m and m.group(1).strip() else None

        cleaned = self.clean(text)
        return ShareHint(
            platform=self.platform,
            title=title_m.group(1).strip() if title_m else None,
            note_or_video_id=DouyinAdapter.content_id_from(url) if url else None,
            canonical_url=url,
            hashtags=extract_hashtags(text),
            raw_description=description,
            original_text=cleaned or None,
            published_at=find_written_date(cleaned),
            looks_like_video=True if url else looks_like_video(text),
        )

# ─── 作品数据 ──────────────────────────────────────────────────────────────────


def _first_url(value) -> str:
    """``{"url_list": [...]}``, a bare list, or a string."""
    if isinstance(value, dict):
        lst = value.get("url_list") or []
        return lst[0] if lst else value.get("url", "") or ""
    if isinstance(value, list):
        for v in value:
            url = _first_url(v)
            if url:
                return url
        return ""
    return value if isinstance(value, str) else ""


def _item_id(item: dict) -> str:
    return str(item.get("aweme_id") or item.get("awemeId") or item.get("id") or item.get("group_id") or "")


class DouyinAdapter(PlatformAdapter):
    platform = DOUYIN
    hosts = ("douyin.com", "iesdouyin.com")
    share_parser = DouyinShareParser()
    state_paths = (
        "loaderData.*.videoInfoRes.item_list.0",
        "loaderData.*.aweme.detail",
        "loaderData.*.videoDetail",
        "app.videoDetail",
        "aweme.detail",
        "aweme_detail",
        "awemeDetail",
        "videoDetail",
        "props.pageProps.videoDetail",
        "itemInfo.itemStruct",
        "ItemModule.*",
        "item_list.0",
        "aweme_list.0",
    )
    title_suffix = re.compile(r"\s*-\s*抖音.*$")
    text_selectors = ('[data-e2e="video-desc"]', ".video-info-detail", '[class*="desc"]', "h1")
    image_selectors = ('img[src*="douyinpic.com"]',)

    _id_patterns = (
        re.compile(r"(?:douyin\.com|iesdouyin\.com)/(?:share/)?(?:video|note|slides)/(\d+)"),
        re.compile(r"[?&](?:item_ids|aweme_id|modal_id|vid)=(\d+)"),
        re.compile(r"v\.douyin\.com/([A-Za-z0-9_-]+)"),
    )

    @classmethod
    def content_id_from(cls, url: Optional[str]) -> Optional[str]:
        if not url:
            return None
        for pattern in cls._id_patterns:
            m = pattern.search(url)
            if m:
                return m.group(1)
        return None

    def extract_content_id(self, url: str) -> Optional[str]:
        return self.content_id_from(url)

    def extract_user_id(self, url: str) -> Optional[str]:
        m = re.search(r"sec_uid=([^&]+)", url or "") or re.search(r"douyin\.com/user/([^?/]+)", url or "")
        return m.group(1) if m else None

    def is_canonical_id(self, content_id: Optional[str]) -> bool:
        return bool(content_id) and content_id.isdigit()

    def canonical_url(self, content_id: str) -> Optional[str]:
        return f"https://www.douyin.com/video/{content_id}"

    def normalize(self, item: dict, source_url: str = "") -> Optional[ScrapedContent]:
        if not isinstance(item, dict):
            return None
        desc = (item.get("desc") or item.get("title") or item.get("content") or "").strip()
        video = item.get("video") or {}
        if not desc and not video and not item.get("images"):
            return None

        author = item.get("author") or item.get("authorInfo") or {}
        stats = item.get("statistics") or {}
        camel = item.get("stats") or {}
        content_id = _item_id(item) or None
        page_url = self.canonical_url(content_id) if content_id else source_url

        cover = ""
        if isinstance(video, dict):
            cover = _first_url(video.get("cover")) or _first_url(video.get("origin_cover")) or _first_url(video.get("originCover"))

        media: list[Optional[MediaItem]] = []
        for img in item.get("images") or []:
            url = _first_url(img)
            media.append(image_item(url, url))
        if not media and isinstance(video, dict) and video:
            # Douyin players refuse embedding; offer a linked card to the post page.
            media.append(video_item(page_url or source_url, poster=cover, external=True))
        media_items = dedupe_media(media)

        return ScrapedContent(
            text=desc,
            title=desc or None,
            author=author.get("nickname") or None,
            source_url=source_url or page_url,
            published_at=_ts_to_iso(item.get("create_time") or item.get("createTime") or 0) or None,
            content_type=content_type_of(media_items),
            media=media_items,
            hashtags=extract_hashtags(desc),
            engagement=EngagementCounts(
                likes=stats.get("digg_count") or camel.get("diggCount") or 0,
                comments=stats.get("comment_count") or camel.get("commentCount") or 0,
                shares=stats.get("share_count") or camel.get("shareCount") or 0,
            ),
            content_id=content_id,
        )

    # ── 移动端 JSON ──

    def mobile_endpoints(self, request: FetchRequest) -> list[str]:
        if not self.is_canonical_id(request.content_id):
            return []
        return [
            f"https://www.iesdouyin.com/web/api/v2/aweme/iteminfo/?item_ids={request.content_id}",
            f"https://www.douyin.com/web/api/v2/aweme/iteminfo/?item_ids={request.content_id}",
        ]

    def parse_mobile(self, payload, request: FetchRequest) -> Optional[ScrapedContent]:
        if not isinstance(payload, dict):
            return None
        item = dig(payload, "item_list.0") or dig(payload, "aweme_list.0") or payload.get("aweme_detail")
        return self.normalize(item, request.url or "") if item else None

    # ── RSS / 浏览器 ──

    def rss_urls(self, request: FetchRequest) -> list[str]:
        sec_uid = request.user_id or DOUYIN_SEC_UID
        if not sec_uid:
            return []
        return [f"{base}/douyin/user/{sec_uid}" for base in RSSHUB_BASES]

    def browser_urls(self, request: FetchRequest) -> list[str]:
        urls = []
        if self.is_canonical_id(request.content_id):
            urls.append(self.canonical_url(request.content_id))
        if request.url and request.url not in urls:
            urls.append(request.url)
        return urls

    def placeholder_media(self, url: str, thumbnail: Optional[str] = None,
                          content_type: str = "unknown") -> list[MediaItem]:
        item = video_item(url, poster=thumbnail, external=True)
        return [item] if item else []

    def manual_tips(self) -> dict[str, str]:
        return {
            "video": "抖音视频无法直接嵌入，帖子会以带封面的外链卡片展示",
            "text": "分享文本中【】内是标题，# 后面是话题，已自动解析",
        }
