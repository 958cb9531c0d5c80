import sys
import json
import logging
import argparse

from . import __version__
from .cascade import auto_fetch
from .exceptions import FanfeedError
from .http import ClientPool
from .models import FetchResult, PLATFORMS, PLATFORM_NAMES
from .platforms import detect_platform, get_adapter
from .resolver import resolve_url
from .utils import _fmt_num

logger = logging.getLogger("fanfeed")


def format_result(r: FetchResult) -> str:
    lines = []
    lines.append(f"{'═'*60}")
    lines.append(f"  平台: {PLATFORM_NAMES.get(r.platform, r.platform)}")
    lines.append(f"  ID:   {r.content_id or '-'}")
    lines.append(f"  链接: {r.source_url}")
    if r.published_at:
        lines.append(f"  发布: {r.published_at}")
    lines.append(f"  方式: {r.extraction_method}")
    lines.append(f"{'─'*60}")
    if r.title:
        lines.append(f"  标题: {r.title}")
    if r.author:
        lines.append(f"  作者: {r.author}")
    if r.text:
        text = r.text[:200] + ("..." if len(r.text) > 200 else "")
        lines.append(f"  正文: {text}")
    if r.content_type != "unknown":
        lines.append(f"  类型: {r.content_type}")

    e = r.engagement
    stat_parts = []
    if e.likes:      stat_parts.append(f"点赞 {_fmt_num(e.likes)}")
    if e.comments:   stat_parts.append(f"评论 {_fmt_num(e.comments)}")
    if e.shares:     stat_parts.append(f"转发 {_fmt_num(e.shares)}")
    if stat_parts:
        lines.append(f"  互动: {' | '.join(stat_parts)}")
    if r.hashtags:
        lines.append(f"  标签: {'  '.join('#'+t for t in r.hashtags)}")

    if r.media:
        lines.append(f"{'─'*60}")
    for i, m in enumerate(r.media):
        label = "🎬 视频" if m.kind == "video" else "🖼  图片"
        url_display = m.source_url[:100] + ("..." if len(m.source_url) > 100 else "")
        suffix = " (外链)" if m.requires_external else (" (播放器)" if m.is_embeddable_frame else "")
        lines.append(f"  {label} [{i}]: {url_display}{suffix}")

    lines.append(f"{'─'*60}")
    for a in r.attempts:
        lines.append(f"  · {a['strategy']}: {a['outcome']}")

    if r.manual_assistant is not None:
        lines.append(f"{'─'*60}")
        lines.append("  ✋ 自动获取失败，请手动录入:")
        for i, step in enumerate(r.manual_assistant.steps, 1):
            lines.append(f"    {i}. {step}")
        for key, tip in r.manual_assistant.tips.items():
            lines.append(f"    提示({key}): {tip}")
    lines.append(f"{'═'*60}")
    return "\n".join(lines)


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


def _cmd_fetch(args) -> None:
    platform = args.platform or detect_platform(args.url or args.share_text or "")
    result = auto_fetch(
        platform,
        url=args.url,
        share_text=args.share_text,
        browser=False if args.no_browser else None,
    )
    if args.json:
        _print_json(result.to_dict())
    else:
        print(format_result(result))


def _cmd_parse(args) -> None:
    hint = get_adapter(args.platform).parse_share_text(args.text)
    _print_json(hint.to_dict())


def _cmd_resolve(args) -> None:
    meta = resolve_url(args.url, args.platform)
    _print_json(meta.to_dict())


def _cmd_serve(args) -> None:
    import uvicorn
    from .app import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fanfeed",
        description=f"fanfeed v{__version__} - 粉丝站内容采集工具",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
支持平台: 微博 | 抖音 | 小红书

示例:
  fanfeed fetch douyin --share-text "复制打开抖音，看看【作品】... https://v.douyin.com/xxx/"
  fanfeed fetch weibo --url "https://weibo.com/123/AbCdE" --json
  fanfeed resolve "https://xhslink.com/a/xxx"
  fanfeed serve --port 8000
""",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="详细日志")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("fetch", help="按级联策略自动获取帖子")
    p.add_argument("platform", nargs="?", choices=PLATFORMS, help="平台 (省略则自动识别)")
    p.add_argument("--url", "-u", help="帖子链接")
    p.add_argument("--share-text", "-s", help="分享文本")
    p.add_argument("--json", "-j", action="store_true", help="JSON 格式输出")
    p.add_argument("--no-browser", action="store_true", help="跳过浏览器自动化")
    p.set_defaults(func=_cmd_fetch)

    p = sub.add_parser("parse", help="解析分享文本 (不联网)")
    p.add_argument("platform", choices=PLATFORMS)
    p.add_argument("text", help="分享文本")
    p.set_defaults(func=_cmd_parse)

    p = sub.add_parser("resolve", help="解析链接元数据")
    p.add_argument("url")
    p.add_argument("--platform", "-p", choices=PLATFORMS)
    p.set_defaults(func=_cmd_resolve)

    p = sub.add_parser("serve", help="启动 HTTP 服务")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.set_defaults(func=_cmd_serve)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
    if args.verbose:
        logging.getLogger("fanfeed").setLevel(logging.DEBUG)
    try:
        with ClientPool():
            args.func(args)
    except FanfeedError as e:
        # CLI prints a friendly message instead of a traceback.
        print(f"ERROR: {e}", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
