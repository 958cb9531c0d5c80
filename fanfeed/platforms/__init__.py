from typing import Optional

from ..exceptions import InvalidInputError
from .base import PlatformAdapter
from .douyin import DouyinAdapter
from .weibo import WeiboAdapter
from .xiaohongshu import XiaohongshuAdapter

ADAPTERS: dict[str, PlatformAdapter] = {
    "weibo": WeiboAdapter(),
    "douyin": DouyinAdapter(),
    "xiaohongshu": XiaohongshuAdapter(),
}

ALIASES = {
    "rednotes": "xiaohongshu",
    "xhs": "xiaohongshu",
    "redbook": "xiaohongshu",
}


def get_adapter(platform: str) -> PlatformAdapter:
    key = ALIASES.get((platform or "").lower(), (platform or "").lower())
    try:
        return ADAPTERS[key]
    except KeyError:
        raise InvalidInputError(f"不支持的平台: {platform}") from None


def detect_platform(text: str) -> str:
    """Platform of a URL or a pasted share text."""
    if not isinstance(text, str) or not text.strip():
        raise InvalidInputError(f"无效输入: {text!r}")
    for key, adapter in ADAPTERS.items():
        if adapter.matches(text):
            return key
    if "复制打开抖音" in text:
        return "douyin"
    if "小红书" in text:
        return "xiaohongshu"
    raise InvalidInputError(f"无法识别平台: {text}")


def try_detect_platform(text: str) -> Optional[str]:
    try:
        return detect_platform(text)
    except InvalidInputError:
        return None


__all__ = ["ADAPTERS", "PlatformAdapter", "get_adapter", "detect_platform", "try_detect_platform"]
