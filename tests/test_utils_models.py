import pytest

from fanfeed.exceptions import InvalidInputError
from fanfeed.models import EngagementCounts, MediaItem, Post
from fanfeed.platforms import detect_platform, get_adapter, try_detect_platform
from fanfeed.utils import (
    _safe_int, extract_hashtags, find_date_stamp, parse_iso, parse_weibo_time, sort_key, strip_html,
)


@pytest.mark.unit
class Describe_safe_int:
    @pytest.mark.parametrize("value,expected", [
        (1234, 1234),
        ("1,234", 1234),
        ("1.2万", 12000),
        ("3w", 30000),
        ("1亿+", 100000000),
        (-5, 0),
        (2.7, 2),
        ("abc", 0),
        (None, 0),
    ])
    def test_given_platform_count_should_coerce_to_int(self, value, expected):
        """平台计数的各种写法都应转为非负整数。"""
        assert _safe_int(value) == expected


@pytest.mark.unit
class Describe_dates:
    def test_given_eight_digit_stamp_should_return_iso(self):
        """文本中的 YYYYMMDD 应转为 ISO 时间。"""
        assert find_date_stamp("舞台回顾 20240501 直拍") == "2024-05-01T00:00:00+00:00"

    def test_given_invalid_stamp_should_skip_it(self):
        """非法日期戳应跳过，继续找下一个。"""
        assert find_date_stamp("20241345 和 20240102") == "2024-01-02T00:00:00+00:00"

    def test_given_longer_number_should_not_match(self):
        """更长的数字串不是日期戳。"""
        assert find_date_stamp("7300000000000000001") is None

    def test_given_weibo_time_should_keep_offset(self):
        """微博时间格式应保留时区。"""
        assert parse_weibo_time("Tue Oct 14 20:31:05 +0800 2025") == "2025-10-14T20:31:05+08:00"

    def test_given_zulu_time_should_normalise(self):
        """Z 结尾的 ISO 时间应被规范化。"""
        assert parse_iso("2024-05-01T08:00:00Z") == "2024-05-01T08:00:00+00:00"
        assert parse_iso("昨天") is None

    def test_given_bad_date_should_sort_last(self):
        """无法解析的日期在倒序排序中排最后。"""
        assert sort_key("garbage") < sort_key("2000-01-01T00:00:00+00:00")


@pytest.mark.unit
class Describe_text_helpers:
    def test_given_html_should_strip_tags_and_keep_breaks(self):
        """去掉标签，<br> 转为换行，实体反转义。"""
        assert strip_html("第一行<br/>第二行 <a href='x'>链接</a> &amp;") == "第一行\n第二行 链接 &"

    def test_given_hashtags_should_dedupe_in_order(self):
        """话题按出现顺序去重。"""
        assert extract_hashtags("#舞台# 今天 #直拍 #舞台#") == ["舞台", "直拍"]


@pytest.mark.unit
class Describe_EngagementCounts:
    def test_given_negative_or_text_counts_should_clamp(self):
        """负数和文字计数应被规范为非负整数。"""
        e = EngagementCounts(likes=-3, comments="1.5万", shares="x")
        assert (e.likes, e.comments, e.shares) == (0, 15000, 0)

    def test_given_fresh_counts_should_only_fill_non_zero(self):
        """合并时只采用新值中非零的字段。"""
        merged = EngagementCounts(likes=10, comments=5).merged_with(EngagementCounts(comments=8))
        assert (merged.likes, merged.comments, merged.shares) == (10, 8, 0)

    def test_given_none_should_copy(self):
        """与 None 合并返回副本。"""
        base = EngagementCounts(likes=1)
        merged = base.merged_with(None)
        assert merged == base and merged is not base


@pytest.mark.unit
class Describe_MediaItem:
    def test_given_legacy_keys_should_map_fields(self):
        """旧格式的 type/originalSrc/isIframe 字段应被识别。"""
        item = MediaItem.from_dict({"type": "video", "originalSrc": "https://v/x.mp4", "isIframe": True})
        assert item.kind == "video"
        assert item.source_url == "https://v/x.mp4"
        assert item.display_url == "https://v/x.mp4"
        assert item.is_embeddable_frame is True

    def test_given_unknown_kind_should_default_to_image(self):
        """未知媒体类型按图片处理。"""
        assert MediaItem(kind="gif", source_url="https://a/b.gif").kind == "image"

    def test_given_stored_post_should_load_nested_fields(self):
        """存储格式的帖子应还原嵌套的媒体和互动数。"""
        post = Post.from_dict({"id": 7, "text": "x", "media": [{"source_url": "https://a/b.jpg"}],
                               "engagement": {"likes": "2万"}})
        assert post.id == "7"
        assert post.media[0].source_url == "https://a/b.jpg"
        assert post.engagement.likes == 20000


@pytest.mark.unit
class Describe_platform_detection:
    @pytest.mark.parametrize("text,platform", [
        ("https://weibo.com/1234567890/N1abcDEF", "weibo"),
        ("https://m.weibo.cn/detail/4950000000000001", "weibo"),
        ("https://v.douyin.com/abc123/", "douyin"),
        ("https://www.xiaohongshu.com/explore/65a1b2c3d4e5f6a7b8c9d0e1", "xiaohongshu"),
        ("http://xhslink.com/a/AbCdEf", "xiaohongshu"),
        ("7.43 复制打开抖音，看看【排练】", "douyin"),
    ])
    def test_given_url_or_share_text_should_detect_platform(self, text, platform):
        """链接或分享文本应识别出平台。"""
        assert detect_platform(text) == platform

    def test_given_unknown_text_should_raise(self):
        """无法识别的输入报错，try 版本返回 None。"""
        with pytest.raises(InvalidInputError):
            detect_platform("https://example.com")
        assert try_detect_platform("https://example.com") is None

    def test_given_alias_should_resolve_adapter(self):
        """平台别名应映射到小红书。"""
        assert get_adapter("xhs").platform == "xiaohongshu"
        assert get_adapter("RedNotes").platform == "xiaohongshu"


@pytest.mark.unit
class Describe_content_ids:
    @pytest.mark.parametrize("platform,url,content_id", [
        ("weibo", "https://weibo.com/1234567890/N1abcDEF", "N1abcDEF"),
        ("weibo", "https://m.weibo.cn/detail/4950000000000001", "4950000000000001"),
        ("weibo", "https://m.weibo.cn/status/N1abcDEF", "N1abcDEF"),
        ("douyin", "https://www.douyin.com/video/7300000000000000001", "7300000000000000001"),
        ("douyin", "https://www.douyin.com/discover?modal_id=7300000000000000001", "7300000000000000001"),
        ("douyin", "https://v.douyin.com/abc123/", "abc123"),
        ("xiaohongshu", "https://www.xiaohongshu.com/explore/65a1b2c3d4e5f6a7b8c9d0e1", "65a1b2c3d4e5f6a7b8c9d0e1"),
        ("xiaohongshu", "https://www.xiaohongshu.com/discovery/item/65a1b2c3d4e5f6a7b8c9d0e1",
         "65a1b2c3d4e5f6a7b8c9d0e1"),
    ])
    def test_given_url_forms_should_extract_content_id(self, platform, url, content_id):
        """各种链接形式都应提取出帖子 ID。"""
        assert get_adapter(platform).extract_content_id(url) == content_id

    def test_given_weibo_url_should_extract_uid(self):
        """微博链接中的数字用户 ID 应被提取。"""
        assert get_adapter("weibo").extract_user_id("https://weibo.com/1234567890/N1abcDEF") == "1234567890"

    def test_given_short_link_token_should_not_be_canonical(self):
        """短链 token 不是规范 ID。"""
        douyin = get_adapter("douyin")
        assert douyin.is_canonical_id("abc123") is False
        assert douyin.is_canonical_id("7300000000000000001") is True
