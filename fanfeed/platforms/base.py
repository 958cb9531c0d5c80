import re
from abc import ABC, abstractmethod
from typing import Optional

from ..models import (
    FetchRequest, MediaItem, ScrapedContent, ShareHint, PLATFORM_NAMES,
)
from ..proxy import display_url_for
from ..share_text import ShareTextParser
from ..utils import ensure_https


def image_item(url: str, original: Optional[str] = None, alt: str = "") -> Optional[MediaItem]:
    """Image MediaItem; ``url`` is what gets displayed, ``original`` the full-size source."""
    url = ensure_https(url)
    original = ensure_https(original) or url
    if not url and not original:
        return None
    return MediaItem(
        kind="image",
        source_url=original,
        display_url=display_url_for(url or original),
        alt=alt,
    )


def video_item(url: str, poster: Optional[str] = None, frame: bool = False,
               external: bool = False, alt: str = "") -> Optional[MediaItem]:
    url = ensure_https(url)
    if not url:
        return None
    poster = ensure_https(poster) or None
    return MediaItem(
        kind="video",
        source_url=url,
        display_url=url if (frame or external) else display_url_for(url),
        poster_url=display_url_for(poster) if poster else None,
        is_embeddable_frame=frame,
        requires_external=external,
        alt=alt,
    )


def dedupe_media(items) -> list[MediaItem]:
    seen: set[str] = set()
    out: list[MediaItem] = []
    for item in items:
        if item is None or not item.source_url or item.source_url in seen:
            continue
        seen.add(item.source_url)
        out.append(item)
    return out


def content_type_of(media: list[MediaItem]) -> str:
    kinds = {m.kind for m in media}
    if kinds == {"image", "video"}:
        return "mixed"
    if kinds == {"video"}:
        return "video"
    if kinds == {"image"}:
        return "image"
    return "unknown"


class PlatformAdapter(ABC):
    """Everything the cascade needs to know about one platform."""

    platform: str = ""
    hosts: tuple[str, ...] = ()
    share_parser: ShareTextParser
    # Key paths probed, in order, inside the embedded page state.
    state_paths: tuple[str, ...] = ()
    # Stripped from <title> / og:title.
    title_suffix: Optional[re.Pattern] = None
    text_selectors: tuple[str, ...] = ()
    image_selectors: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return PLATFORM_NAMES.get(self.platform, self.platform)

    def matches(self, url: str) -> bool:
        u = (url or "").lower()
        return any(h in u for h in self.hosts)

    def parse_share_text(self, text) -> ShareHint:
        return self.share_parser.parse(text)

    @abstractmethod
    def extract_content_id(self, url: str) -> Optional[str]:
        ...

    def extract_user_id(self, url: str) -> Optional[str]:
        return None

    def is_canonical_id(self, content_id: Optional[str]) -> bool:
        """False when ``content_id`` is only a short-link token."""
        return bool(content_id)

    @abstractmethod
    def normalize(self, item: dict, source_url: str = "") -> Optional[ScrapedContent]:
        """Turn one platform item (status / aweme / note) into ScrapedContent."""

    def mobile_endpoints(self, request: FetchRequest) -> list[str]:
        return []

    def parse_mobile(self, payload, request: FetchRequest) -> Optional[ScrapedContent]:
        return None

    def rss_urls(self, request: FetchRequest) -> list[str]:
        return []

    def browser_urls(self, request: FetchRequest) -> list[str]:
        return [request.url] if request.url else []

    def canonical_url(self, content_id: str) -> Optional[str]:
        return None

    def placeholder_media(self, url: str, thumbnail: Optional[str] = None,
                          content_type: str = "unknown") -> list[MediaItem]:
        """Media to offer when nothing was extracted but the post URL is known."""
        return []

    def manual_steps(self, request: FetchRequest) -> list[str]:
        target = request.url or request.hint.canonical_url or f"{self.name}原帖"
        return [
            f"在浏览器中打开{self.name}原帖: {target}",
            "复制正文全文，粘贴到「内容」输入框",
            "在图片上右键，选择「复制图片地址」，逐个粘贴到媒体列表",
            "复制点赞、评论、转发数字，填入互动数据",
            "按原帖显示的时间设置发布时间",
        ]

    def manual_tips(self) -> dict[str, str]:
        return {}
