import re
import logging
from typing import Optional

from .config import BROWSER_TIMEOUT
from .http import MOBILE_UA, ACCEPT_LANGUAGE
from .models import EngagementCounts, FetchRequest, ScrapedContent
from .platforms.base import PlatformAdapter, image_item, dedupe_media, content_type_of
from .structured import extract_structured_json
from .utils import _safe_int, extract_hashtags

logger = logging.getLogger("fanfeed")

_NUM = r"(\d+(?:\.\d+)?\s*[万亿w]?)"
ENGAGEMENT_PATTERNS = {
    "likes": (re.compile(_NUM + r"\s*赞"), re.compile(r"点赞\s*" + _NUM)),
    "comments": (re.compile(_NUM + r"\s*评论"), re.compile(r"评论\s*" + _NUM)),
    "shares": (re.compile(_NUM + r"\s*转发"), re.compile(r"转发\s*" + _NUM), re.compile(r"分享\s*" + _NUM)),
}


def engagement_from_text(body: str) -> EngagementCounts:
    """Counts written next to 赞 / 评论 / 转发 in rendered page text."""
    counts = {}
    for field_name, patterns in ENGAGEMENT_PATTERNS.items():
        for pattern in patterns:
            m = pattern.search(body or "")
            if m:
                counts[field_name] = _safe_int(m.group(1).replace(" ", ""))
                break
    return EngagementCounts(**counts)


class PlaywrightScraper:
    """Render the post in headless Chromium and read it off the DOM."""

    def __init__(self, timeout: float = BROWSER_TIMEOUT, headless: bool = True, settle_ms: int = 2000):
        self.timeout = timeout
        self.headless = headless
        self.settle_ms = settle_ms

    def scrape(self, adapter: PlatformAdapter, request: FetchRequest) -> Optional[ScrapedContent]:
        urls = adapter.browser_urls(request)
        if not urls:
            return None

        try:
            from playwright.sync_api import sync_playwright, Error as PlaywrightError
        except ImportError as e:
            logger.warning(f"{adapter.name} 未安装 playwright，跳过浏览器抓取: {e}")
            return None

        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=self.headless)
                try:
                    context = browser.new_context(
                        user_agent=MOBILE_UA,
                        viewport={"width": 375, "height": 667},
                        is_mobile=True,
                        locale="zh-CN",
                        extra_http_headers={"Accept-Language": ACCEPT_LANGUAGE},
                    )
                    page = context.new_page()
                    for url in urls:
                        try:
                            content = self._scrape_page(page, url, adapter)
                        except PlaywrightError as e:
                            logger.debug(f"{adapter.name} 浏览器加载失败 {url}: {e}")
                            continue
                        if content is not None and content.text:
                            return content
                finally:
                    browser.close()
        except PlaywrightError as e:
            logger.warning(f"{adapter.name} 浏览器启动失败: {e}")
        return None

    def _scrape_page(self, page, url: str, adapter: PlatformAdapter) -> Optional[ScrapedContent]:
        page.goto(url, wait_until="domcontentloaded", timeout=int(self.timeout * 1000))
        page.wait_for_timeout(self.settle_ms)

        content = extract_structured_json(page.content(), adapter, url)
        if content is not None and content.text:
            content.method = "browser"
            return content

        text = ""
        for selector in adapter.text_selectors:
            for el in page.query_selector_all(selector):
                candidate = (el.text_content() or "").strip()
                if len(candidate) > len(text):
                    text = candidate
        if not text:
            return None

        images = []
        for selector in adapter.image_selectors:
            for el in page.query_selector_all(selector):
                src = el.get_attribute("src")
                if src:
                    images.append(image_item(src, src))
        media = dedupe_media(images)
        body = page.inner_text("body")
        return ScrapedContent(
            method="browser",
            text=text,
            source_url=url,
            content_type=content_type_of(media),
            media=media,
            hashtags=extract_hashtags(text),
            engagement=engagement_from_text(body),
            content_id=adapter.extract_content_id(url),
        )
