import re
import html
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

# ─── 数值 ──────────────────────────────────────────────────────────────────────


def _safe_int(v) -> int:
    """Coerce a platform count (``1,234``, ``3.2万``, ``1亿+``) to a non-negative int."""
    if isinstance(v, bool):
        return int(v)
    if isinstance(v, int):
        return max(v, 0)
    if isinstance(v, float):
        return max(int(v), 0)
    if isinstance(v, str):
        v = v.replace(",", "").replace("+", "").strip()
        multiplier = 1
        if "亿" in v:
            v, multiplier = v.replace("亿", ""), 100000000
        elif "万" in v or "w" in v.lower():
            v, multiplier = v.replace("万", "").lower().replace("w", ""), 10000
        try:
            return max(int(float(v) * multiplier), 0)
        except ValueError:
            return 0
    return 0


def _fmt_num(n: int) -> str:
    if n >= 100000000:
        return f"{n/100000000:.1f}亿"
    if n >= 10000:
        return f"{n/10000:.1f}万"
    return str(n)

# ─── 时间 ──────────────────────────────────────────────────────────────────────


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ts_to_iso(ts) -> str:
    """Convert a Unix timestamp (seconds or milliseconds) to an ISO string."""
    try:
        ts = int(float(ts))
        if ts > 10**12:
            ts //= 1000
        if ts > 0:
            return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()
    except (ValueError, TypeError, OSError, OverflowError):
        pass
    return ""


def parse_weibo_time(value) -> str:
    """Weibo ``created_at`` (``Tue Oct 14 20:31:05 +0800 2025``) to ISO; empty on failure."""
    if not value:
        return ""
    if isinstance(value, (int, float)):
        return _ts_to_iso(value)
    value = str(value).strip()
    try:
        return datetime.strptime(value, "%a %b %d %H:%M:%S %z %Y").isoformat()
    except ValueError:
        pass
    return parse_iso(value) or ""


def parse_rss_date(value: Optional[str]) -> str:
    """RFC-822 (RSS ``pubDate``) or ISO-8601 (Atom ``updated``) to ISO; empty on failure."""
    if not value:
        return ""
    try:
        dt = parsedate_to_datetime(value.strip())
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.isoformat()
    except (TypeError, ValueError, IndexError):
        return parse_iso(value) or ""


def parse_iso(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt.isoformat()


def sort_key(iso_value: Optional[str]) -> float:
    """Sort key for ISO strings; unparseable dates sort last in a descending listing."""
    if not iso_value:
        return float("-inf")
    try:
        dt = datetime.fromisoformat(str(iso_value).replace("Z", "+00:00"))
    except ValueError:
        return float("-inf")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


_DATE_STAMP_RE = re.compile(r"(?<!\d)(20\d{2})(\d{2})(\d{2})(?!\d)")


def find_date_stamp(text: Optional[str]) -> Optional[str]:
    """First valid ``YYYYMMDD`` stamp embedded in ``text``, as an ISO date-time."""
    if not text:
        return None
    for m in _DATE_STAMP_RE.finditer(text):
        try:
            dt = datetime(int(m.group(1)), int(m.group(2)), int(m.group(3)), tzinfo=timezone.utc)
        except ValueError:
            continue
        return dt.isoformat()
    return None

# ─── 文本 ──────────────────────────────────────────────────────────────────────

_TAG_RE = re.compile(r"<[^>]+>")
_BR_RE = re.compile(r"<br\s*/?>", re.I)
_HASHTAG_RE = re.compile(r"#([^#\s]+)#?")


def strip_html(value: Optional[str]) -> str:
    if not value:
        return ""
    text = _BR_RE.sub("\n", value)
    text = _TAG_RE.sub("", text)
    text = html.unescape(text)
    text = re.sub(r"[ \t\r\f\v]+", " ", text)
    text = re.sub(r"\n\s*", "\n", text)
    return text.strip()


def extract_hashtags(text: Optional[str]) -> list[str]:
    """``#话题#`` and ``#话题`` forms, de-duplicated in order of appearance."""
    if not text:
        return []
    tags: list[str] = []
    for m in _HASHTAG_RE.finditer(text):
        tag = m.group(1).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def ensure_https(url: Optional[str]) -> str:
    if not url:
        return ""
    if url.startswith("//"):
        return "https:" + url
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


def dig(data, path: str):
    """Walk a dotted key path; digits index lists, ``*`` tries every child in order.

    Returns the first non-empty value reached, or ``None``.
    """
    return _dig(data, path.split(".") if path else [])


def _dig(current, parts: list[str]):
    for i, part in enumerate(parts):
        if current is None:
            return None
        if part == "*":
            children = current.values() if isinstance(current, dict) else current if isinstance(current, list) else ()
            for child in children:
                found = _dig(child, parts[i + 1:])
                if found not in (None, "", [], {}):
                    return found
            return None
        if part.isdigit() and isinstance(current, list):
            idx = int(part)
            current = current[idx] if idx < len(current) else None
        elif isinstance(current, dict):
            current = current.get(part)
        else:
            return None
    return current
