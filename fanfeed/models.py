from dataclasses import dataclass, field, asdict
from typing import Optional

from .utils import _safe_int

# ─── 平台与枚举 ─────────────────────────────────────────────────────────────────

WEIBO = "weibo"
DOUYIN = "douyin"
XIAOHONGSHU = "xiaohongshu"

PLATFORMS = (WEIBO, DOUYIN, XIAOHONGSHU)
# Manually entered posts may also come from platforms the cascade cannot fetch.
POST_PLATFORMS = PLATFORMS + ("instagram", "sohu")

PLATFORM_NAMES = {
    WEIBO: "微博",
    DOUYIN: "抖音",
    XIAOHONGSHU: "小红书",
    "instagram": "Instagram",
    "sohu": "搜狐",
}

MEDIA_KINDS = ("image", "video")

# ─── 数据结构 ───────────────────────────────────────────────────────────────────


@dataclass
class EngagementCounts:
    likes: int = 0
    comments: int = 0
    shares: int = 0

    def __post_init__(self):
        self.likes = _safe_int(self.likes)
        self.comments = _safe_int(self.comments)
        self.shares = _safe_int(self.shares)

    def merged_with(self, fresh: Optional["EngagementCounts"]) -> "EngagementCounts":
        """Take every count ``fresh`` actually has; keep ours where it has none."""
        if fresh is None:
            return EngagementCounts(self.likes, self.comments, self.shares)
        return EngagementCounts(
            likes=fresh.likes or self.likes,
            comments=fresh.comments or self.comments,
            shares=fresh.shares or self.shares,
        )

    def patched(self, values: Optional[dict]) -> "EngagementCounts":
        """Counts typed in by an admin: every supplied value wins, zero included."""
        values = {k: v for k, v in (values or {}).items() if v is not None}
        return EngagementCounts(
            likes=values.get("likes", self.likes),
            comments=values.get("comments", self.comments),
            shares=values.get("shares", self.shares),
        )

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "EngagementCounts":
        data = data or {}
        return cls(
            likes=data.get("likes", 0),
            comments=data.get("comments", 0),
            shares=data.get("shares", 0),
        )


@dataclass
class MediaItem:
    kind: str = "image"  # image / video
    source_url: str = ""
    display_url: str = ""
    poster_url: Optional[str] = None
    # A player page meant for an <iframe>, not a media file.
    is_embeddable_frame: bool = False
    # A platform page that can only be opened externally (rendered as a linked card).
    requires_external: bool = False
    alt: str = ""

    def __post_init__(self):
        if self.kind not in MEDIA_KINDS:
            self.kind = "image"
        if not self.display_url:
            self.display_url = self.source_url

    @classmethod
    def from_dict(cls, data: dict) -> "MediaItem":
        return cls(
            kind=data.get("kind") or data.get("type") or "image",
            source_url=data.get("source_url") or data.get("originalSrc") or data.get("src") or "",
            display_url=data.get("display_url") or "",
            poster_url=data.get("poster_url") or data.get("poster"),
            is_embeddable_frame=bool(data.get("is_embeddable_frame") or data.get("isIframe")),
            requires_external=bool(data.get("requires_external")),
            alt=data.get("alt") or "",
        )


@dataclass
class ShareHint:
    """Hints recovered from a pasted share string. Never persisted."""
    platform: str = ""
    title: Optional[str] = None
    author: Optional[str] = None
    note_or_video_id: Optional[str] = None
    canonical_url: Optional[str] = None
    hashtags: list[str] = field(default_factory=list)
    raw_description: Optional[str] = None
    original_text: Optional[str] = None
    published_at: Optional[str] = None
    looks_like_video: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ResolvedMetadata:
    resolved_url: str
    title: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    published_at: Optional[str] = None
    thumbnail_url: Optional[str] = None
    content_type: str = "unknown"
    extraction_method: str = "none"
    content_id: Optional[str] = None
    hashtags: list[str] = field(default_factory=list)
    media: list[MediaItem] = field(default_factory=list)
    engagement: Optional[EngagementCounts] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PostDraft:
    platform: str = WEIBO
    text: str = ""
    original_text: Optional[str] = None
    media: list[MediaItem] = field(default_factory=list)
    source_url: str = ""
    published_at: str = ""
    # Only the counts the admin supplied; missing keys keep the stored values on update.
    engagement: dict = field(default_factory=dict)
    verified: bool = False
    content_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "PostDraft":
        return cls(
            platform=data.get("platform") or WEIBO,
            text=data.get("text") or "",
            original_text=data.get("original_text"),
            media=[MediaItem.from_dict(m) for m in data.get("media") or []],
            source_url=data.get("source_url") or "",
            published_at=data.get("published_at") or "",
            engagement={k: v for k, v in (data.get("engagement") or {}).items() if v is not None},
            verified=bool(data.get("verified", False)),
            content_id=data.get("content_id"),
        )


@dataclass
class Post:
    id: str
    platform: str
    text: str
    source_url: str
    published_at: str
    added_at: str
    original_text: Optional[str] = None
    media: list[MediaItem] = field(default_factory=list)
    engagement: EngagementCounts = field(default_factory=EngagementCounts)
    engagement_updated_at: str = ""
    verified: bool = False
    content_id: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Post":
        return cls(
            id=str(data["id"]),
            platform=data.get("platform") or WEIBO,
            text=data.get("text") or "",
            source_url=data.get("source_url") or "",
            published_at=data.get("published_at") or "",
            added_at=data.get("added_at") or "",
            original_text=data.get("original_text"),
            media=[MediaItem.from_dict(m) for m in data.get("media") or []],
            engagement=EngagementCounts.from_dict(data.get("engagement")),
            engagement_updated_at=data.get("engagement_updated_at") or "",
            verified=bool(data.get("verified", False)),
            content_id=data.get("content_id"),
        )

# ─── 级联 ──────────────────────────────────────────────────────────────────────


@dataclass
class FetchRequest:
    platform: str
    url: Optional[str] = None
    share_text: Optional[str] = None
    hint: ShareHint = field(default_factory=ShareHint)
    content_id: Optional[str] = None
    user_id: Optional[str] = None
    # Set once a short link has been followed to recover the canonical ids.
    canonical_checked: bool = False
    use_browser: bool = True


@dataclass
class ScrapedContent:
    """Whatever one strategy managed to pull out; every field best-effort."""
    method: str = ""
    text: str = ""
    title: Optional[str] = None
    author: Optional[str] = None
    source_url: Optional[str] = None
    published_at: Optional[str] = None
    content_type: str = "unknown"
    media: list[MediaItem] = field(default_factory=list)
    hashtags: list[str] = field(default_factory=list)
    engagement: Optional[EngagementCounts] = None
    content_id: Optional[str] = None


@dataclass
class Outcome:
    strategy: str
    accepted: bool = False
    partial: Optional[ScrapedContent] = None
    metadata: dict = field(default_factory=dict)


@dataclass
class ManualAssistantInstructions:
    steps: list[str] = field(default_factory=list)
    tips: dict[str, str] = field(default_factory=dict)
    recovered_hints: dict = field(default_factory=dict)


@dataclass
class FetchResult:
    success: bool
    platform: str
    source_url: str
    text: str = ""
    original_text: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    media: list[MediaItem] = field(default_factory=list)
    hashtags: list[str] = field(default_factory=list)
    published_at: Optional[str] = None
    engagement: EngagementCounts = field(default_factory=EngagementCounts)
    content_type: str = "unknown"
    content_id: Optional[str] = None
    extraction_method: str = "none"
    attempts: list[dict] = field(default_factory=list)
    manual_assistant: Optional[ManualAssistantInstructions] = None

    def to_dict(self) -> dict:
        return asdict(self)
