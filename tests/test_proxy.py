import httpx
import pytest

from fanfeed.proxy import (
    PLACEHOLDER_CACHE_CONTROL, PROXY_PATH, SUCCESS_CACHE_CONTROL, display_url_for, fetch_media, referer_for,
)

SINA_IMG = "https://wx1.sinaimg.cn/large/a1.jpg"


@pytest.mark.unit
class Describe_fetch_media:
    def test_given_upstream_image_should_return_bytes_with_long_cache(self, upstream):
        """上游成功时原样返回图片并长时间缓存。"""
        upstream.add("wx1.sinaimg.cn/large", httpx.Response(200, content=b"\xff\xd8jpeg",
                                                             headers={"content-type": "image/jpeg"}))
        media = fetch_media(SINA_IMG)
        assert media.upstream_ok is True
        assert media.content == b"\xff\xd8jpeg"
        assert media.content_type == "image/jpeg"
        assert media.cache_control == SUCCESS_CACHE_CONTROL

    def test_given_weibo_cdn_should_send_weibo_referer(self, upstream):
        """请求微博图床时应带上微博 Referer。"""
        upstream.add("wx1.sinaimg.cn", httpx.Response(200, content=b"x"))
        fetch_media(SINA_IMG)
        assert upstream.requests[0].headers["Referer"] == "https://weibo.com/"

    def test_given_upstream_404_should_return_placeholder(self, upstream):
        """上游失败时返回占位 SVG，短时间缓存。"""
        media = fetch_media(SINA_IMG)
        assert media.upstream_ok is False
        assert media.content_type == "image/svg+xml"
        assert media.cache_control == PLACEHOLDER_CACHE_CONTROL
        assert b"Image unavailable" in media.content

    def test_given_connection_error_should_return_placeholder(self, upstream):
        """网络异常同样返回占位图，不抛异常。"""
        def _fail(request):
            raise httpx.ConnectError("connection refused", request=request)
        upstream.add("wx1.sinaimg.cn", _fail)
        assert fetch_media(SINA_IMG).upstream_ok is False

    def test_given_non_http_url_should_not_fetch(self, upstream):
        """非 http 地址直接返回占位图。"""
        assert fetch_media("file:///etc/passwd").upstream_ok is False
        assert upstream.requests == []


@pytest.mark.unit
class Describe_display_url_for:
    def test_given_protected_cdn_should_route_through_proxy(self):
        """防盗链 CDN 地址应改走代理并编码。"""
        assert display_url_for(SINA_IMG) == f"{PROXY_PATH}?url=https%3A%2F%2Fwx1.sinaimg.cn%2Flarge%2Fa1.jpg"

    def test_given_already_proxied_should_not_double_wrap(self):
        """已是代理地址时不再包装。"""
        proxied = display_url_for(SINA_IMG)
        assert display_url_for(proxied) == proxied

    @pytest.mark.parametrize("url,expected", [
        ("https://example.com/a.jpg", "https://example.com/a.jpg"),
        (None, ""),
        ("", ""),
    ])
    def test_given_unprotected_url_should_keep_it(self, url, expected):
        """其他地址保持原样。"""
        assert display_url_for(url) == expected

    @pytest.mark.parametrize("url,referer", [
        ("https://sns-webpic-qc.xhscdn.com/big.jpg", "https://www.xiaohongshu.com/"),
        ("https://p3-sign.douyinpic.com/obj/c.jpeg", "https://www.douyin.com/"),
        ("https://unknown.example.com/a.jpg", "https://weibo.com/"),
    ])
    def test_given_cdn_host_should_pick_platform_referer(self, url, referer):
        """按 CDN 域名选择对应平台的 Referer。"""
        assert referer_for(url) == referer
