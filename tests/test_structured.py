import pytest

from fanfeed.platforms import get_adapter
from fanfeed.proxy import PROXY_PATH
from fanfeed.structured import (
    detect_video, extract_from_html, find_embedded_state, meta_tags, page_title, probe_paths,
)
from fanfeed.utils import dig

ENCODED_RENDER_DATA = (
    '<script id="RENDER_DATA" type="application/json">'
    "%7B%22app%22%3A%7B%22videoDetail%22%3A%7B%22aweme_id%22%3A%22123%22%2C%22desc%22%3A%22编码数据%22%7D%7D%7D"
    "</script>"
)

META_ONLY_PAGE = """
<html><head>
<title>测试作品 - 抖音</title>
<meta property="og:title" content="测试作品 - 抖音">
<meta property="og:description" content="一段足够长的作品描述 #话题#">
<meta property="og:image" content="https://p3-sign.douyinpic.com/obj/og.jpeg">
<script type="application/ld+json">{"@type": "VideoObject", "uploadDate": "2024-05-01T08:00:00+08:00"}</script>
</head><body><script>window._ROUTER_DATA = {"loaderData": {"unrelated": {"foo": 1}}}</script></body></html>
"""


@pytest.mark.unit
class Describe_find_embedded_state:
    def test_given_router_data_should_parse_it(self, read_fixture):
        """抖音 _ROUTER_DATA 应被识别并解析。"""
        state = find_embedded_state(read_fixture("douyin_router.html"), "douyin")
        assert state.pattern == "router-data"
        assert "loaderData" in state.data

    def test_given_uri_encoded_payload_should_decode_first(self):
        """URL 编码的内嵌数据应先解码再解析。"""
        state = find_embedded_state(ENCODED_RENDER_DATA, "douyin")
        assert state.pattern == "render-data"
        assert state.data["app"]["videoDetail"]["desc"] == "编码数据"

    def test_given_js_literal_with_undefined_should_parse(self, read_fixture):
        """小红书 __INITIAL_STATE__ 中的 undefined 应被容忍。"""
        state = find_embedded_state(read_fixture("xhs_note.html"), "xiaohongshu")
        assert state.pattern == "initial-state"

    def test_given_broken_json_should_return_none(self):
        """无法解析的内嵌数据返回 None，不抛异常。"""
        page = "<script>window._ROUTER_DATA = {broken json</script>"
        assert find_embedded_state(page, "douyin") is None

    def test_given_other_platform_pattern_should_ignore_it(self, read_fixture):
        """其他平台的数据模式不应被使用。"""
        assert find_embedded_state(read_fixture("douyin_router.html"), "weibo") is None


@pytest.mark.unit
class Describe_key_paths:
    def test_given_wildcard_should_try_every_child(self):
        """路径中的 * 应依次尝试每个子节点。"""
        data = {"loaderData": {"layout": {}, "video_(id)/page": {"videoInfoRes": {"item_list": [{"desc": "x"}]}}}}
        assert dig(data, "loaderData.*.videoInfoRes.item_list.0") == {"desc": "x"}

    def test_given_unknown_structure_should_return_none(self):
        """未知结构返回 None，不做深度搜索。"""
        assert probe_paths({"deep": {"nested": {"note": {"title": "x"}}}}, ["data.note", "note"]) is None


@pytest.mark.unit
class Describe_extract_from_html:
    def test_given_douyin_state_should_normalise_item(self, read_fixture):
        """抖音页面应从内嵌数据中提取正文、作者、互动和封面卡片。"""
        content = extract_from_html(read_fixture("douyin_router.html"), get_adapter("douyin"),
                                    "https://www.iesdouyin.com/share/video/7300000000000000001/")
        assert content.method == "structured-json"
        assert content.text.startswith("舞台直拍")
        assert content.author == "星光后援会"
        assert content.engagement.likes == 12000
        assert content.content_id == "7300000000000000001"
        assert content.content_type == "video"
        assert content.media[0].requires_external is True
        assert content.media[0].source_url == "https://www.douyin.com/video/7300000000000000001"
        assert content.hashtags == ["演唱会"]

    def test_given_xhs_state_should_pick_largest_image(self, read_fixture):
        """小红书图片应取最大分辨率并走媒体代理。"""
        content = extract_from_html(read_fixture("xhs_note.html"), get_adapter("xiaohongshu"),
                                    "https://www.xiaohongshu.com/explore/65a1b2c3d4e5f6a7b8c9d0e1")
        assert content.title == "后台花絮"
        assert content.author == "小鹿"
        assert content.engagement.likes == 12000
        assert content.engagement.comments == 88
        assert content.published_at == "2023-11-14T22:13:20+00:00"
        assert content.media[0].source_url == "https://sns-webpic-qc.xhscdn.com/big.jpg"
        assert content.media[0].display_url.startswith(PROXY_PATH)
        assert content.hashtags == ["后台"]

    def test_given_unrecognised_state_should_fall_back_to_meta_tags(self):
        """内嵌数据结构无法识别时，应退回 meta 标签。"""
        content = extract_from_html(META_ONLY_PAGE, get_adapter("douyin"), "https://www.douyin.com/video/1")
        assert content.method == "meta-tags"
        assert content.title == "测试作品"
        assert content.text == "一段足够长的作品描述 #话题#"
        assert content.published_at == "2024-05-01T08:00:00+08:00"

    def test_given_empty_page_should_return_none(self):
        """空页面返回 None。"""
        assert extract_from_html("<html></html>", get_adapter("weibo"), "https://weibo.com/1/2") is None


@pytest.mark.unit
class Describe_meta_and_video_detection:
    def test_given_meta_tags_should_keep_first_occurrence(self):
        """同名 meta 标签取第一个。"""
        page = '<meta property="og:title" content="一"><meta property="og:title" content="二">'
        assert meta_tags(page)["og:title"] == "一"

    def test_given_title_suffix_should_strip_it(self):
        """标题中的平台后缀应被去掉。"""
        assert page_title("<title>后台花絮 - 小红书</title>", get_adapter("xiaohongshu")) == "后台花絮"

    @pytest.mark.parametrize("page,expected", [
        ('<video src="a.webm"></video>', True),
        ('<meta property="og:video:url" content="https://x/y">', True),
        ('<a href="https://cdn.example.com/clip.mp4">clip</a>', True),
        ("<p>纯文字</p>", False),
    ])
    def test_given_page_should_detect_video(self, page, expected):
        """video 标签、视频 OG 属性或视频扩展名都应判为视频。"""
        assert detect_video(page) is expected
