"""Share-text parsing: recover hints from the string a platform app puts on the clipboard.

Each platform parser is a pure function of its input. Boilerplate is removed by an
ordered list of :class:`StripRule` applied until the text stops changing, so feeding a
parser its own ``original_text`` never strips anything further.
"""

import re
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .models import ShareHint
from .utils import extract_hashtags

logger = logging.getLogger("fanfeed")

# Weak signal only; a resolved content type always wins.
VIDEO_KEYWORDS = (
    "视频", "录制", "拍摄", "表演", "唱歌", "跳舞", "音乐",
    "演出", "现场", "mv", "舞台", "直播",
)

_MAX_PASSES = 5
_DATE_RE = re.compile(r"(20\d{2})\s*[-/.年]\s*(\d{1,2})\s*[-/.月]\s*(\d{1,2})\s*日?")


@dataclass(frozen=True)
class StripRule:
    name: str
    pattern: re.Pattern
    replacement: str = ""

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text).strip()


def rule(name: str, pattern: str, replacement: str = "", flags: int = 0) -> StripRule:
    return StripRule(name, re.compile(pattern, flags), replacement)


def strip_boilerplate(text: str, rules: list[StripRule]) -> str:
    """Apply ``rules`` in order, repeating the whole pass until nothing changes."""
    current = (text or "").strip()
    for _ in range(_MAX_PASSES):
        before = current
        for r in rules:
            current = r.apply(current)
        if current == before:
            break
    return current


def looks_like_video(*texts: Optional[str]) -> bool:
    haystack = " ".join(t for t in texts if t).lower()
    return any(k in haystack for k in VIDEO_KEYWORDS)


def find_written_date(text: Optional[str]) -> Optional[str]:
    """A ``2024-05-01`` / ``2024年5月1日`` style date written in the share text."""
    if not text:
        return None
    m = _DATE_RE.search(text)
    if not m:
        return None
    try:
        dt = datetime(int(m.group(1)), int(m.group(2)), int(m.group(3)), tzinfo=timezone.utc)
    except ValueError:
        return None
    return dt.isoformat()


class ShareTextParser(ABC):
    """Base class for per-platform share-text parsers."""

    platform: str = ""
    url_pattern: re.Pattern = re.compile(r"https?://[^\s]+")
    rules: list[StripRule] = []

    def parse(self, text) -> ShareHint:
        if not isinstance(text, str) or not text.strip():
            return ShareHint(platform=self.platform)
        try:
            hint = self._parse(text.strip())
        except (ValueError, IndexError, TypeError, AttributeError) as e:
            logger.debug(f"{self.platform} 分享文本解析失败: {e}")
            return ShareHint(platform=self.platform)
        return hint or self._plain(text.strip())

    def _plain(self, text: str) -> ShareHint:
        """Hint for text with no platform markers, such as a parser's own ``original_text``."""
        cleaned = self.clean(text)
        return ShareHint(
            platform=self.platform,
            hashtags=extract_hashtags(cleaned),
            original_text=cleaned or None,
            published_at=find_written_date(cleaned),
        )

    def find_url(self, text: str) -> Optional[str]:
        m = self.url_pattern.search(text)
        if not m:
            return None
        return m.group(0).rstrip("，。！？、）)】]\"'")

    def clean(self, text: str) -> str:
        return strip_boilerplate(text, self.rules)

    @abstractmethod
    def _parse(self, text: str) -> Optional[ShareHint]:
        """Return ``None`` when the text is not recognisable share text."""
