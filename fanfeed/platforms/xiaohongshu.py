import re
from typing import Optional

from ..config import RSSHUB_BASES, XHS_USER_ID
from ..models import FetchRequest, MediaItem, ScrapedContent, ShareHint, EngagementCounts, XIAOHONGSHU
from ..share_text import ShareTextParser, rule, looks_like_video, find_written_date
from ..utils import _ts_to_iso, extract_hashtags, ensure_https
from .base import PlatformAdapter, image_item, video_item, dedupe_media, content_type_of

_EMOJI = "😆🌟✨💫⭐"

# ─── 分享文本 ──────────────────────────────────────────────────────────────────


class XiaohongshuShareParser(ShareTextParser):
    """``77 某某发布了一篇小红书笔记，快来看吧！ 😆 6B6ZRuGXCH8 😆 http://xhslink.com/n/xxx，复制本条信息...``"""

    platform = XIAOHONGSHU
    url_pattern = re.compile(r"https?://(?:[\w-]+\.)*(?:xhslink\.com|xiaohongshu\.com|xhs\.cn)/[^\s，。！？、）)】\]]*")
    rules = [
        rule("posted-note", r"^\d+\s+[^发]+发布了一篇小红书笔记，?\s*(?:快来看吧！?)?"),
        rule("note-code", rf"[{_EMOJI}]\s*[A-Za-z0-9]{{10,}}\s*[{_EMOJI}]?"),
        rule("url-tail", r"\s*https?://\S+.*$", flags=re.S),
        rule("copy-prompt", r"，?\s*复制本条信息，?\s*打开【小红书】App查看精彩内容！?"),
        rule("ellipsis", r"(?:\.{3,}|…+)$"),
    ]

    _author_re = re.compile(r"(\d+)\s+([^发]+)发布了一篇小红书笔记")
    _note_code_re = re.compile(rf"[{_EMOJI}]\s*([A-Za-z0-9]{{10,}})")
    _lead = "笔记，快来看吧！"

    def _parse(self, text: str) -> Optional[ShareHint]:
        url = self.find_url(text)
        author_m = self._author_re.search(text)
        code_m = self._note_code_re.search(text)
        if not (url or author_m or code_m):
            return None

        author = author_m.group(2).strip() if author_m else None
        description = None
        if author_m and code_m and self._lead in text:
            after = text[text.index(self._lead) + len(self._lead):]
            end = after.find(code_m.group(0))
            description = (after[:end] if end >= 0 else after).strip() or None

        note_id = code_m.group(1) if code_m else XiaohongshuAdapter.content_id_from(url)
        cleaned = self.clean(text)
        return ShareHint(
            platform=self.platform,
            title=description or (f"{author}的小红书笔记" if author else None),
            author=author,
            note_or_video_id=note_id,
            canonical_url=url,
            hashtags=extract_hashtags(cleaned),
            raw_description=description,
            original_text=cleaned or None,
            published_at=find_written_date(text),
            looks_like_video=looks_like_video(description, text),
        )

# ─── 笔记数据 ──────────────────────────────────────────────────────────────────


def _best_image(img: dict) -> str:
    info_list = img.get("infoList") or []
    if info_list:
        best = max(info_list, key=lambda x: x.get("width", 0) or 0)
        if best.get("url"):
            return ensure_https(best["url"])
    return ensure_https(img.get("urlDefault") or img.get("url") or img.get("urlPre") or "")


def _stream_url(video: dict) -> str:
    stream = (video.get("media") or {}).get("stream") or {}
    for codec in ("h264", "h265", "av1"):
        for s in stream.get(codec) or []:
            if s.get("masterUrl"):
                return ensure_https(s["masterUrl"])
    return ensure_https(video.get("url", ""))


def _note_time(note: dict) -> str:
    for key in ("time", "noteTime", "createTime", "lastUpdateTime"):
        value = note.get(key)
        if not value:
            continue
        if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
            return _ts_to_iso(value)
        return str(value)
    return ""


class XiaohongshuAdapter(PlatformAdapter):
    platform = XIAOHONGSHU
    hosts = ("xiaohongshu.com", "xhslink.com", "xhs.cn")
    share_parser = XiaohongshuShareParser()
    state_paths = (
        "note.noteDetailMap.*.note",
        "noteData.data.noteData",
        "note.note",
        "data.note",
        "pageProps.note",
        "props.pageProps.note",
        "props.pageProps.noteData",
    )
    title_suffix = re.compile(r"\s*-\s*小红书.*$")
    text_selectors = ("#detail-desc", ".note-content .desc", ".note-text", '[class*="desc"]', "#detail-title")
    image_selectors = ('img[src*="xhscdn.com"]', ".swiper-slide img")

    _id_patterns = (
        re.compile(r"xiaohongshu\.com/(?:explore|discovery/item|note)/([A-Za-z0-9]+)"),
        re.compile(r"[?&]noteId=([A-Za-z0-9]+)"),
        re.compile(r"xhslink\.com/(?:[a-z]/)?([A-Za-z0-9]+)"),
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
        m = re.search(r"xiaohongshu\.com/user/profile/([A-Za-z0-9]+)", url or "")
        return m.group(1) if m else None

    def is_canonical_id(self, content_id: Optional[str]) -> bool:
        return bool(content_id) and re.fullmatch(r"[0-9a-f]{24}", content_id) is not None

    def canonical_url(self, content_id: str) -> Optional[str]:
        return f"https://www.xiaohongshu.com/explore/{content_id}"

    def normalize(self, item: dict, source_url: str = "") -> Optional[ScrapedContent]:
        if not isinstance(item, dict):
            return None
        title = (item.get("title") or "").strip()
        desc = (item.get("desc") or "").strip()
        images = item.get("imageList") or []
        video = item.get("video") or {}
        if not (title or desc or images or video):
            return None

        note_id = item.get("noteId") or item.get("id") or None
        page_url = self.canonical_url(note_id) if note_id else source_url
        user = item.get("user") or {}
        interact = item.get("interactInfo") or {}

        media: list[Optional[MediaItem]] = []
        for img in images:
            url = _best_image(img)
            media.append(image_item(url, url))
        is_video = item.get("type") == "video" or bool(video)
        if is_video:
            cover = _best_image(images[0]) if images else ""
            stream = _stream_url(video) if isinstance(video, dict) else ""
            if stream:
                media = [video_item(stream, poster=cover)]
            else:
                media = [video_item(page_url, poster=cover, external=True)]
        media_items = dedupe_media(media)

        text = "\n".join(part for part in (title, desc) if part)
        tags = [t["name"] for t in item.get("tagList") or [] if isinstance(t, dict) and t.get("name")]
        return ScrapedContent(
            text=text,
            title=title or None,
            author=user.get("nickname") or user.get("nickName") or None,
            source_url=source_url or page_url,
            published_at=_note_time(item) or None,
            content_type="video" if is_video else content_type_of(media_items),
            media=media_items,
            hashtags=tags or extract_hashtags(text),
            engagement=EngagementCounts(
                likes=interact.get("likedCount", 0),
                comments=interact.get("commentCount", 0),
                shares=interact.get("shareCount", 0),
            ),
            content_id=note_id,
        )

    # ── RSS / 浏览器 ──

    def rss_urls(self, request: FetchRequest) -> list[str]:
        uid = request.user_id or XHS_USER_ID
        if not uid:
            return []
        return [f"{base}/xiaohongshu/user/{uid}/notes" for base in RSSHUB_BASES]

    def browser_urls(self, request: FetchRequest) -> list[str]:
        urls = []
        if self.is_canonical_id(request.content_id):
            urls.append(self.canonical_url(request.content_id))
        if request.url and request.url not in urls:
            urls.append(request.url)
        return urls

    def placeholder_media(self, url: str, thumbnail: Optional[str] = None,
                          content_type: str = "unknown") -> list[MediaItem]:
        if content_type == "video":
            item = video_item(url, poster=thumbnail, external=True)
        elif thumbnail:
            item = image_item(thumbnail, thumbnail)
        else:
            item = None
        return [item] if item else []

    def manual_steps(self, request: FetchRequest) -> list[str]:
        steps = super().manual_steps(request)
        steps[2] = "小红书图片需长按或右键「复制图片地址」，逐个粘贴到媒体列表"
        return steps

    def manual_tips(self) -> dict[str, str]:
        return {
            "share_text": "小红书分享文本只含作者和笔记编号，正文需要打开原帖复制",
            "video": "视频笔记无法直接嵌入时，会以外链卡片展示",
        }
