"""Cascade orchestrator: the per-platform "auto-fetch" procedure.

Strategies are tried strictly in order (mobile JSON, RSS, browser automation,
structured URL resolve, share text only) and the first one that yields
non-trivial text is accepted. Everything gathered along the way is merged into
one :class:`FetchResult`. When no strategy succeeds the manual assistant hands
the admin step-by-step instructions plus whatever was recovered.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .browser import PlaywrightScraper
from .config import (
    BROWSER_ENABLED, MIN_TEXT_LENGTH, MIN_HINT_LENGTH, SUBSTANTIAL_TEXT_LENGTH,
)
from .exceptions import InvalidInputError
from .fetchers import MobileJSONFetcher, RSSFetcher, weibo_video_embed
from .http import HANDLED_EXCEPTIONS
from .models import (
    EngagementCounts, FetchRequest, FetchResult, ManualAssistantInstructions,
    Outcome, ResolvedMetadata, ScrapedContent, ShareHint, WEIBO,
)
from .platforms import ADAPTERS, get_adapter
from .platforms.base import PlatformAdapter, content_type_of
from .resolver import resolve_url
from .utils import find_date_stamp

logger = logging.getLogger("fanfeed")

MANUAL_METHOD = "manual-assistant"


def is_substantial(text: Optional[str], threshold: int = MIN_TEXT_LENGTH) -> bool:
    return bool(text) and len(text.strip()) >= threshold

# ─── 策略 ──────────────────────────────────────────────────────────────────────


class Strategy(ABC):
    """One state of the cascade."""

    name: str = ""

    @abstractmethod
    def attempt(self, request: FetchRequest) -> Outcome:
        ...

    def _outcome(self, content: Optional[ScrapedContent], **metadata) -> Outcome:
        if content is None or not content.text:
            return Outcome(self.name, accepted=False, partial=content, metadata=metadata)
        return Outcome(self.name, accepted=is_substantial(content.text), partial=content, metadata=metadata)


class MobileJSONStrategy(Strategy):
    name = "MobileJSON"

    def __init__(self, fetcher: Optional[MobileJSONFetcher] = None):
        self.fetcher = fetcher or MobileJSONFetcher()

    def attempt(self, request: FetchRequest) -> Outcome:
        return self._outcome(self.fetcher.fetch(get_adapter(request.platform), request))


class RSSStrategy(Strategy):
    name = "RSS"

    def __init__(self, fetcher: Optional[RSSFetcher] = None):
        self.fetcher = fetcher or RSSFetcher()

    def attempt(self, request: FetchRequest) -> Outcome:
        return self._outcome(self.fetcher.fetch(get_adapter(request.platform), request))


class BrowserAutomationStrategy(Strategy):
    name = "BrowserAutomation"

    def __init__(self, scraper: Optional[PlaywrightScraper] = None):
        self.scraper = scraper or PlaywrightScraper()

    def attempt(self, request: FetchRequest) -> Outcome:
        if not request.use_browser:
            return Outcome(self.name, metadata={"skipped": "disabled"})
        return self._outcome(self.scraper.scrape(get_adapter(request.platform), request))


class StructuredURLResolveStrategy(Strategy):
    """Follow the URL and read embedded state, then meta tags."""

    name = "StructuredURLResolve"

    def attempt(self, request: FetchRequest) -> Outcome:
        url = request.url or request.hint.canonical_url
        if not url:
            return Outcome(self.name, metadata={"skipped": "no url"})
        adapter = get_adapter(request.platform)
        meta = resolve_url(url, adapter.platform)
        if meta.content_id and adapter.is_canonical_id(meta.content_id):
            request.content_id = meta.content_id
        text = meta.description or meta.title or ""
        content = ScrapedContent(
            method=meta.extraction_method,
            text=text,
            title=meta.title,
            author=meta.author,
            source_url=meta.resolved_url,
            published_at=meta.published_at,
            content_type=meta.content_type,
            media=list(meta.media),
            hashtags=list(meta.hashtags),
            engagement=meta.engagement,
            content_id=meta.content_id,
        )
        return self._outcome(content, resolved=meta)


class ShareTextOnlyStrategy(Strategy):
    """Use the caption recovered from the pasted share text; no network."""

    name = "ShareTextOnly"

    def attempt(self, request: FetchRequest) -> Outcome:
        hint = request.hint
        text = hint.original_text or hint.raw_description or ""
        if not text:
            return Outcome(self.name)
        content = ScrapedContent(
            method="share-text",
            text=text,
            title=hint.title,
            author=hint.author,
            source_url=hint.canonical_url,
            published_at=hint.published_at,
            content_type="unknown",
            hashtags=list(hint.hashtags),
            content_id=hint.note_or_video_id,
        )
        return self._outcome(content)


class ManualAssistantStrategy(Strategy):
    """Terminal state: always succeeds with instructions for manual entry."""

    name = "ManualAssistant"

    def attempt(self, request: FetchRequest) -> Outcome:
        adapter = get_adapter(request.platform)
        hint = request.hint
        recovered = {
            "url": request.url or hint.canonical_url,
            "content_id": request.content_id or hint.note_or_video_id,
            "user_id": request.user_id,
            "canonical_url": adapter.canonical_url(request.content_id) if request.content_id else None,
            "hint": hint.to_dict(),
        }
        instructions = ManualAssistantInstructions(
            steps=adapter.manual_steps(request),
            tips=adapter.manual_tips(),
            recovered_hints=recovered,
        )
        return Outcome(self.name, accepted=True, metadata={"instructions": instructions})


def default_strategies() -> list[Strategy]:
    return [
        MobileJSONStrategy(),
        RSSStrategy(),
        BrowserAutomationStrategy(),
        StructuredURLResolveStrategy(),
        ShareTextOnlyStrategy(),
        ManualAssistantStrategy(),
    ]

# ─── 合并 ──────────────────────────────────────────────────────────────────────


def _status(outcome: Outcome) -> str:
    if outcome.metadata.get("error"):
        return "error"
    if outcome.metadata.get("skipped"):
        return "skipped"
    if outcome.accepted:
        return "accepted"
    if outcome.partial is not None and outcome.partial.text:
        return "partial"
    return "empty"


def pick_text(extracted: Optional[str], hint: ShareHint, share_text: Optional[str]) -> str:
    """Resolved text if substantial, else the hint caption, else the raw share text.

    A short extraction still beats a caption below the hint threshold when it is longer.
    """
    if is_substantial(extracted, SUBSTANTIAL_TEXT_LENGTH + 1):
        return extracted.strip()
    caption = (hint.original_text or hint.title or "").strip()
    if len(caption) >= MIN_HINT_LENGTH:
        return caption
    extracted = (extracted or "").strip()
    if extracted and len(extracted) > len(caption):
        return extracted
    if share_text and share_text.strip():
        return share_text.strip()
    return caption or extracted


def pick_date(text: str, share_text: Optional[str], extracted: Optional[str], hint: ShareHint) -> Optional[str]:
    """Date stamp in the text beats the scraped date, which beats the hint date."""
    return find_date_stamp(text) or find_date_stamp(share_text) or extracted or hint.published_at


def merge_engagement(partials: list[ScrapedContent]) -> EngagementCounts:
    merged = EngagementCounts()
    for content in partials:
        merged = merged.merged_with(content.engagement)
    return merged


def _first(values):
    for v in values:
        if v:
            return v
    return None


def merge(request: FetchRequest, adapter: PlatformAdapter, outcomes: list[Outcome]) -> FetchResult:
    hint = request.hint
    accepted = next((o for o in outcomes if o.accepted and o.partial is not None), None)
    partials = [o.partial for o in outcomes if o.partial is not None]
    extracted = [p for p in partials if p.method != "share-text"]
    # The accepted source first, then the rest in the order they were tried.
    ranked = ([accepted.partial] if accepted else []) + [p for p in extracted if accepted is None or p is not accepted.partial]

    best_text = _first(p.text for p in ranked if p.method != "share-text")
    text = pick_text(best_text, hint, request.share_text)

    resolved: Optional[ResolvedMetadata] = next(
        (o.metadata["resolved"] for o in outcomes if "resolved" in o.metadata), None)
    source_url = (request.url or hint.canonical_url
                  or (resolved.resolved_url if resolved else None) or "")

    media = _first(p.media for p in ranked) or []
    content_type = _first(p.content_type for p in ranked if p.content_type != "unknown")
    if not content_type:
        content_type = content_type_of(media)
    if content_type == "unknown" and hint.looks_like_video:
        content_type = "video"
    if not media and source_url:
        thumbnail = resolved.thumbnail_url if resolved else None
        media = adapter.placeholder_media(source_url, thumbnail, content_type)

    hashtags: list[str] = []
    for tag in [t for p in ranked for t in p.hashtags] + list(hint.hashtags):
        if tag not in hashtags:
            hashtags.append(tag)

    manual = next((o.metadata["instructions"] for o in outcomes if "instructions" in o.metadata), None)
    success = accepted is not None and manual is None
    if success:
        method = accepted.partial.method or accepted.strategy
    else:
        method = MANUAL_METHOD if manual is not None else "none"

    return FetchResult(
        success=success,
        platform=adapter.platform,
        source_url=source_url,
        text=text,
        original_text=hint.original_text or (request.share_text or None),
        title=_first(p.title for p in ranked) or hint.title,
        author=_first(p.author for p in ranked) or hint.author,
        media=media,
        hashtags=hashtags,
        published_at=pick_date(text, request.share_text, _first(p.published_at for p in ranked), hint),
        engagement=merge_engagement(partials),
        content_type=content_type,
        content_id=request.content_id or _first(p.content_id for p in ranked) or hint.note_or_video_id,
        extraction_method=method,
        attempts=[
            {"strategy": o.strategy, "outcome": _status(o),
             "method": o.partial.method if o.partial is not None else None,
             "text_length": len(o.partial.text) if o.partial is not None else 0}
            for o in outcomes
        ],
        manual_assistant=manual,
    )

# ─── 入口 ──────────────────────────────────────────────────────────────────────


def build_request(platform: str, url: Optional[str] = None, share_text: Optional[str] = None,
                  use_browser: bool = True) -> FetchRequest:
    """Validate the input and recover every id the URL or share text carries."""
    adapter = get_adapter(platform)
    url = (url or "").strip() or None
    share_text = (share_text or "").strip() or None
    if not url and not share_text:
        raise InvalidInputError("请提供链接或分享文本")

    hint = adapter.parse_share_text(share_text) if share_text else ShareHint(platform=adapter.platform)
    url = url or hint.canonical_url
    if url:
        if not url.startswith(("http://", "https://")):
            raise InvalidInputError(f"无效链接: {url}")
        if not adapter.matches(url):
            other = next((k for k, a in ADAPTERS.items() if a.matches(url)), None)
            raise InvalidInputError(
                f"链接不属于{adapter.name}: {url}" + (f" (识别为 {other})" if other else ""))

    return FetchRequest(
        platform=adapter.platform,
        url=url,
        share_text=share_text,
        hint=hint,
        content_id=(adapter.extract_content_id(url) if url else None) or hint.note_or_video_id,
        user_id=adapter.extract_user_id(url) if url else None,
        use_browser=use_browser,
    )


def run_cascade(request: FetchRequest, strategies: list[Strategy]) -> list[Outcome]:
    """Try each strategy in order, stopping at the first accepted one."""
    adapter = get_adapter(request.platform)
    outcomes: list[Outcome] = []
    for strategy in strategies:
        try:
            outcome = strategy.attempt(request)
        except HANDLED_EXCEPTIONS as e:
            logger.warning(f"{adapter.name} {strategy.name}: 异常 {e}")
            outcome = Outcome(strategy.name, metadata={"error": str(e)})
        outcomes.append(outcome)
        status = _status(outcome)
        length = len(outcome.partial.text) if outcome.partial is not None else 0
        logger.info(f"{adapter.name} {strategy.name}: {status} (text={length})")
        if outcome.accepted:
            break
    return outcomes


def _needs_weibo_player(result: FetchResult) -> bool:
    """A weibo video post whose media has nothing playable yet."""
    return (result.platform == WEIBO and result.content_type == "video" and bool(result.source_url)
            and not any(m.kind == "video" and not m.requires_external for m in result.media))


def auto_fetch(platform: str, url: Optional[str] = None, share_text: Optional[str] = None,
               strategies: Optional[list[Strategy]] = None,
               browser: Optional[bool] = None) -> FetchResult:
    """Run the cascade for one post.

    Raises :class:`InvalidInputError` for missing or malformed input; any
    upstream failure only moves the cascade on to the next strategy.
    """
    use_browser = BROWSER_ENABLED if browser is None else browser
    request = build_request(platform, url=url, share_text=share_text, use_browser=use_browser)
    adapter = get_adapter(request.platform)
    outcomes = run_cascade(request, strategies if strategies is not None else default_strategies())
    result = merge(request, adapter, outcomes)
    if _needs_weibo_player(result):
        embed = weibo_video_embed(result.source_url)
        if embed is not None:
            result.media = [embed] + [m for m in result.media if not m.requires_external]
    if result.success:
        logger.info(f"{adapter.name}: 自动获取成功 ({result.extraction_method})")
    else:
        logger.info(f"{adapter.name}: 自动获取失败，转为手动录入")
    return result
