import httpx
import pytest

from fanfeed.resolver import resolve_url

SHORT = "https://v.douyin.com/abc123/"
FINAL = "https://www.iesdouyin.com/share/video/7300000000000000001/"


@pytest.mark.unit
class Describe_resolve_url:
    def test_given_short_link_should_follow_redirect_and_extract(self, upstream, read_fixture):
        """短链应跟随跳转并从最终页面提取元数据。"""
        upstream.add("v.douyin.com/abc123", httpx.Response(302, headers={"Location": FINAL}))
        upstream.add("www.iesdouyin.com/share/video", httpx.Response(200, text=read_fixture("douyin_router.html")))
        meta = resolve_url(SHORT, "douyin")
        assert meta.resolved_url == FINAL
        assert meta.extraction_method == "structured-json"
        assert meta.content_id == "7300000000000000001"
        assert meta.content_type == "video"
        assert meta.author == "星光后援会"
        assert meta.description.startswith("舞台直拍")
        assert meta.thumbnail_url

    def test_given_chinese_locale_should_send_accept_language(self, upstream, read_fixture):
        """请求应携带中文 Accept-Language。"""
        upstream.add("www.iesdouyin.com/share/video", httpx.Response(200, text=read_fixture("douyin_router.html")))
        resolve_url(FINAL, "douyin")
        assert upstream.requests[0].headers["Accept-Language"].startswith("zh-CN")

    def test_given_503_should_return_only_resolved_url(self, upstream):
        """上游 503 时只返回原始链接，不抛异常。"""
        upstream.add("v.douyin.com/abc123", httpx.Response(503, text="busy"))
        meta = resolve_url(SHORT, "douyin")
        assert meta.resolved_url == SHORT
        assert meta.title is None
        assert meta.description is None
        assert meta.extraction_method == "none"

    def test_given_network_error_should_return_only_resolved_url(self, upstream):
        """网络异常时同样只返回原始链接。"""
        def _fail(request):
            raise httpx.ConnectError("connection refused", request=request)
        upstream.add("v.douyin.com/abc123", _fail)
        meta = resolve_url(SHORT)
        assert meta.resolved_url == SHORT
        assert meta.title is None

    def test_given_non_http_url_should_not_fetch(self, upstream):
        """非 http 链接不发请求。"""
        meta = resolve_url("javascript:alert(1)")
        assert meta.resolved_url == "javascript:alert(1)"
        assert upstream.requests == []

    def test_given_meta_only_page_should_use_meta_tags(self, upstream):
        """没有内嵌数据时应使用 OG 标签。"""
        page = ('<meta property="og:title" content="排练花絮 - 小红书">'
                '<meta property="og:image" content="https://sns-webpic-qc.xhscdn.com/cover.jpg">'
                '<meta property="og:video" content="https://sns-video.xhscdn.com/v.mp4">')
        upstream.add("www.xiaohongshu.com/explore", httpx.Response(200, text=page))
        meta = resolve_url("https://www.xiaohongshu.com/explore/65a1b2c3d4e5f6a7b8c9d0e1")
        assert meta.extraction_method == "meta-tags"
        assert meta.title == "排练花絮"
        assert meta.content_type == "video"
        assert meta.thumbnail_url == "https://sns-webpic-qc.xhscdn.com/cover.jpg"
        assert meta.content_id == "65a1b2c3d4e5f6a7b8c9d0e1"
