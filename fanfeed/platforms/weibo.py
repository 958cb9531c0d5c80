import re
from typing import Optional
from urllib.parse import quote

from ..config import RSSHUB_BASES, WEIBO_UID
from ..models import FetchRequest, MediaItem, ScrapedContent, ShareHint, EngagementCounts, WEIBO
from ..share_text import ShareTextParser, rule, looks_like_video, find_written_date
from ..utils import strip_html, parse_weibo_time
from .base import PlatformAdapter, image_item, video_item, dedupe_media, content_type_of

SINAIMG_BASE = "https://wx1.sinaimg.cn"
H5_PLAYER = "https://m.weibo.cn/s/video/show?object_id={object_id}"

_WEIBO_HASHTAG_RE = re.compile(r"#([^#\n]+)#")
_VIDEO_FILE_RE = re.compile(r"\.(mp4|mov)(\?|$)", re.I)


def weibo_hashtags(text: str) -> list[str]:
    tags: list[str] = []
    for tag in _WEIBO_HASHTAG_RE.findall(text or ""):
        tag = tag.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags

# ─── 分享文本 ──────────────────────────────────────────────────────────────────


class WeiboShareParser(ShareTextParser):
    platform = WEIBO
    url_pattern = re.compile(r"https?://(?:[\w-]+\.)*(?:weibo\.com|weibo\.cn|t\.cn)/[^\s，。！？、）)】\]]*")
    rules = [
        rule("url-tail", r"\s*https?://\S+.*$", flags=re.S),
        rule("shared-from", r"[（(]?\s*分享自\s*@?[^\s)）]*\s*(?:的微博)?\s*[)）]?"),
        rule("client-footer", r"[（(]\s*来自\s*@?[^)）]*[)）]"),
        rule("title", r"^【[^】]*】"),
        rule("full-text-link", r"\s*(?:\.{3}|…)?\s*全文$"),
        rule("ellipsis", r"(?:\.{3,}|…+)$"),
        rule("zero-width", r"[​‌‍﻿]"),
    ]

    _title_re = re.compile(r"【([^】]+)】")
    _author_re = re.compile(r"(?:分享自\s*@|分享\s*@?)([^\s@的)）]+)\s*的微博")

    def _parse(self, text: str) -> Optional[ShareHint]:
        url = self.find_url(text)
        title_m = self._title_re.search(text)
        author_m = self._author_re.search(text)
        if not (url or title_m or author_m):
            return None
        cleaned = self.clean(text)
        return ShareHint(
            platform=self.platform,
            title=title_m.group(1).strip() if title_m else None,
            author=author_m.group(1).strip() if author_m else None,
            note_or_video_id=WeiboAdapter.content_id_from(url) if url else None,
            canonical_url=url,
            hashtags=weibo_hashtags(text),
            raw_description=cleaned or None,
            original_text=cleaned or None,
            published_at=find_written_date(text),
            looks_like_video=looks_like_video(text),
        )

# ─── 状态数据 ──────────────────────────────────────────────────────────────────


def _status_images(status: dict) -> list[Optional[MediaItem]]:
    items: list[Optional[MediaItem]] = []

    pic_infos = status.get("pic_infos")
    if isinstance(pic_infos, dict):
        for pid in status.get("pic_ids") or list(pic_infos):
            pic = pic_infos.get(pid) or {}
            shown = (pic.get("bmiddle") or pic.get("large") or {}).get("url", "")
            best = (pic.get("largest") or pic.get("original") or pic.get("large") or {}).get("url", "")
            items.append(image_item(shown or best, best))

    pics = status.get("pics")
    if isinstance(pics, dict):
        pics = list(pics.values())
    if isinstance(pics, list):
        for pic in pics:
            if not isinstance(pic, dict):
                continue
            large = pic.get("large") or {}
            if pic.get("type") in ("video", "livephoto") and pic.get("videoSrc"):
                items.append(video_item(pic["videoSrc"], poster=pic.get("url")))
                continue
            items.append(image_item(pic.get("url", ""), large.get("url") if isinstance(large, dict) else None))

    pic_urls = status.get("pic_urls")
    if isinstance(pic_urls, list):
        for pic in pic_urls:
            if isinstance(pic, str):
                items.append(image_item(pic))
                continue
            if not isinstance(pic, dict):
                continue
            src = pic.get("thumbnail_pic") or pic.get("url") or ""
            original = pic.get("original_pic") or pic.get("large_pic") or pic.get("url") or src
            if pic.get("type") == "livephoto" or pic.get("live_photo") or _VIDEO_FILE_RE.search(original or ""):
                items.append(video_item(original, poster=pic.get("thumbnail_pic")))
            else:
                items.append(image_item(src, original))

    found = [i for i in items if i is not None]
    if not found:
        for pid in status.get("pic_ids") or []:
            if isinstance(pid, str) and pid:
                items.append(image_item(f"{SINAIMG_BASE}/mw690/{pid}.jpg", f"{SINAIMG_BASE}/large/{pid}.jpg"))
        found = [i for i in items if i is not None]

    if not found and (status.get("thumbnail_pic") or status.get("bmiddle_pic") or status.get("original_pic")):
        items.append(image_item(
            status.get("bmiddle_pic") or status.get("thumbnail_pic"),
            status.get("original_pic") or status.get("bmiddle_pic") or status.get("thumbnail_pic"),
        ))

    mix = (status.get("mix_media_info") or {}).get("items") or []
    for mm in mix:
        data = mm.get("data") or {}
        if mm.get("type") == "pic":
            items.append(image_item(
                (data.get("bmiddle") or data.get("large") or {}).get("url", ""),
                (data.get("largest") or data.get("original") or {}).get("url"),
            ))
        elif mm.get("type") == "video":
            items.append(pick_video_embed({"page_info": {**data, "type": data.get("type") or "video"}}))
    return items


def _page_info_poster(page_info: dict) -> Optional[str]:
    pic = page_info.get("page_pic")
    if isinstance(pic, dict):
        pic = pic.get("url")
    media_info = page_info.get("media_info") or {}
    return pic or page_info.get("pic") or media_info.get("cover_image") or None


def pick_video_embed(status: Optional[dict]) -> Optional[MediaItem]:
    """Playable media for a status' ``page_info``: H5 player frame first, direct file last."""
    if not isinstance(status, dict):
        return None
    page_info = status.get("page_info") or {}
    if not isinstance(page_info, dict) or not page_info:
        return None
    media_info = page_info.get("media_info") or {}
    urls = page_info.get("urls") or {}
    poster = _page_info_poster(page_info)
    kind = str(page_info.get("type") or page_info.get("object_type") or "").lower()

    if media_info.get("h5_url"):
        return video_item(media_info["h5_url"], poster=poster, frame=True)
    if page_info.get("object_id") and "video" in kind:
        return video_item(H5_PLAYER.format(object_id=quote(str(page_info["object_id"]), safe="")),
                          poster=poster, frame=True)
    if "video" in kind:
        direct = (urls.get("mp4_720p_mp4") or media_info.get("mp4_720p_mp4") or media_info.get("mp4_hd_url")
                  or media_info.get("mp4_sd_url") or media_info.get("stream_url") or urls.get("mp4_hd_mp4") or "")
        if direct:
            return video_item(direct, poster=poster)
    if media_info.get("page_url") or media_info.get("extern_site"):
        return video_item(media_info.get("page_url", ""), poster=poster, external=True)
    return None


def status_media(status: dict) -> list[MediaItem]:
    items = _status_images(status)
    items.append(pick_video_embed(status))
    retweeted = status.get("retweeted_status")
    if isinstance(retweeted, dict):
        items.extend(_status_images(retweeted))
        items.append(pick_video_embed(retweeted))
    return dedupe_media(items)


def status_text(status: dict) -> str:
    long_text = (status.get("longText") or {}).get("longTextContent")
    raw = long_text or status.get("text_raw") or status.get("text") or status.get("raw_text") or ""
    return strip_html(raw)

# ─── 适配器 ────────────────────────────────────────────────────────────────────


class WeiboAdapter(PlatformAdapter):
    platform = WEIBO
    hosts = ("weibo.com", "weibo.cn", "t.cn/")
    share_parser = WeiboShareParser()
    state_paths = ("0.status", "status", "data")
    title_suffix = re.compile(r"\s*[-_]\s*微博.*$")
    text_selectors = (".weibo-text", ".m-text-box", ".txt", '[class*="text"]', ".status-content", ".feed-content")
    image_selectors = ('img[src*="sinaimg.cn"]', 'img[src*="weibo.com"]', ".pic img", ".media img")

    _id_patterns = (
        re.compile(r"/detail/(\w+)"),
        re.compile(r"/status/(\w+)"),
        re.compile(r"[?&]id=(\w+)"),
        re.compile(r"weibo\.com/\d+/(\w+)"),
        re.compile(r"weibo\.cn/\d+/(\w+)"),
        re.compile(r"/(\d{16,})"),
    )
    _uid_patterns = (
        re.compile(r"weibo\.com/(?:u/)?(\d{5,})"),
        re.compile(r"weibo\.cn/(?:u/|profile/)?(\d{5,})"),
        re.compile(r"[?&]uid=(\d{5,})"),
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
        if not url:
            return None
        for pattern in self._uid_patterns:
            m = pattern.search(url)
            if m and m.group(1) != self.content_id_from(url):
                return m.group(1)
        return None

    def canonical_url(self, content_id: str) -> Optional[str]:
        return f"https://m.weibo.cn/detail/{content_id}"

    def normalize(self, item: dict, source_url: str = "") -> Optional[ScrapedContent]:
        if not isinstance(item, dict):
            return None
        text = status_text(item)
        if not text and not item.get("pic_ids") and not item.get("page_info"):
            return None
        user = item.get("user") or {}
        media = status_media(item)
        content_id = str(item.get("bid") or item.get("mblogid") or item.get("idstr") or item.get("id") or "") or None
        raw_text = item.get("text_raw") or item.get("text") or ""
        return ScrapedContent(
            text=text,
            author=user.get("screen_name") or user.get("name") or None,
            source_url=source_url or (self.canonical_url(content_id) if content_id else None),
            published_at=parse_weibo_time(item.get("created_at")) or None,
            content_type=content_type_of(media),
            media=media,
            hashtags=weibo_hashtags(strip_html(raw_text)),
            engagement=EngagementCounts(
                likes=item.get("attitudes_count") or item.get("attitude_count") or 0,
                comments=item.get("comments_count") or item.get("comment_count") or 0,
                shares=item.get("reposts_count") or item.get("repost_count") or 0,
            ),
            content_id=content_id,
        )

    # ── 移动端 JSON ──

    def mobile_endpoints(self, request: FetchRequest) -> list[str]:
        endpoints = []
        uid = request.user_id or WEIBO_UID
        if uid:
            endpoints.append(f"https://m.weibo.cn/api/container/getIndex?type=uid&value={uid}")
        if request.content_id:
            cid = quote(request.content_id, safe="")
            endpoints += [
                f"https://m.weibo.cn/api/statuses/show?id={cid}",
                f"https://m.weibo.cn/statuses/show?id={cid}",
                f"https://weibo.com/ajax/statuses/show?id={cid}",
                f"https://weibo.cn/ajax/statuses/show?id={cid}",
            ]
        return endpoints

    @staticmethod
    def _same_status(status: dict, content_id: Optional[str]) -> bool:
        if not content_id or not isinstance(status, dict):
            return False
        ids = {str(status.get(k)) for k in ("id", "idstr", "mid", "bid", "mblogid") if status.get(k)}
        return content_id in ids

    def find_status(self, payload, content_id: Optional[str]) -> Optional[dict]:
        """Locate the status in any of the mobile response shapes."""
        if not isinstance(payload, dict):
            return None
        data = payload.get("data")
        if isinstance(data, dict):
            if data.get("text") or data.get("text_raw"):
                return data
            for card in data.get("cards") or []:
                if not isinstance(card, dict):
                    continue
                candidates = [card.get("mblog")] + [c.get("mblog") for c in card.get("card_group") or []
                                                    if isinstance(c, dict)]
                for mblog in candidates:
                    if self._same_status(mblog, content_id):
                        return mblog
            for status in data.get("statuses") or []:
                if self._same_status(status, content_id):
                    return status
        if payload.get("text") or payload.get("text_raw"):
            return payload
        return None

    def parse_mobile(self, payload, request: FetchRequest) -> Optional[ScrapedContent]:
        status = self.find_status(payload, request.content_id)
        if status is None:
            return None
        return self.normalize(status, request.url or "")

    # ── RSS / 浏览器 ──

    def rss_urls(self, request: FetchRequest) -> list[str]:
        uid = request.user_id or WEIBO_UID
        if not uid:
            return []
        return [f"{base}/weibo/user/{uid}" for base in RSSHUB_BASES]

    def browser_urls(self, request: FetchRequest) -> list[str]:
        urls = []
        if request.content_id:
            urls += [f"https://m.weibo.cn/detail/{request.content_id}", f"https://weibo.cn/status/{request.content_id}"]
        if request.url and request.url not in urls:
            urls.append(request.url)
        return urls

    def manual_tips(self) -> dict[str, str]:
        return {
            "images": "微博图片右键「复制图片地址」即可，sinaimg 链接会自动走媒体代理",
            "video": "视频帖可直接粘贴帖子链接，会生成可嵌入的 H5 播放器",
            "cookies": "配置 ~/.fanfeed/cookies.json 中的 weibo SUB/SUBP 可提高自动抓取成功率",
        }
