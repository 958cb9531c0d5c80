import json

import pytest

from fanfeed.cli import build_parser, format_result, main
from fanfeed.models import EngagementCounts, FetchResult, ManualAssistantInstructions, MediaItem

DOUYIN_SHARE = "9.99 复制打开抖音，看看【作品标题】描述内容 #话题# https://v.douyin.com/abc123/"


@pytest.mark.unit
class Describe_format_result:
    def test_given_successful_result_should_render_fields(self):
        """成功结果应显示平台、正文、互动数、媒体和尝试记录。"""
        result = FetchResult(
            success=True,
            platform="weibo",
            source_url="https://weibo.com/1234567890/N1abcDEF",
            text="今天的舞台太棒了",
            author="星光后援会",
            media=[MediaItem(kind="video", source_url="https://m.weibo.cn/s/video/show?object_id=1",
                             is_embeddable_frame=True)],
            hashtags=["星光演唱会"],
            engagement=EngagementCounts(likes=15000, comments=200),
            content_type="video",
            content_id="N1abcDEF",
            extraction_method="mobile-json",
            attempts=[{"strategy": "MobileJSON", "outcome": "accepted"}],
        )
        out = format_result(result)
        assert "平台: 微博" in out
        assert "正文: 今天的舞台太棒了" in out
        assert "点赞 1.5万 | 评论 200" in out
        assert "#星光演唱会" in out
        assert "(播放器)" in out
        assert "MobileJSON: accepted" in out
        assert "手动录入" not in out

    def test_given_manual_result_should_list_steps(self):
        """手动录入结果应列出编号步骤。"""
        result = FetchResult(
            success=False, platform="douyin", source_url="", extraction_method="manual-assistant",
            manual_assistant=ManualAssistantInstructions(steps=["打开原帖", "复制正文"], tips={"video": "外链卡片"}),
        )
        out = format_result(result)
        assert "✋ 自动获取失败，请手动录入:" in out
        assert "1. 打开原帖" in out and "2. 复制正文" in out
        assert "提示(video): 外链卡片" in out


@pytest.mark.unit
class Describe_cli_commands:
    def test_given_parse_command_should_print_hint_json(self, capsys):
        """parse 命令离线输出分享文本解析结果。"""
        main(["parse", "douyin", DOUYIN_SHARE])
        data = json.loads(capsys.readouterr().out)
        assert data["title"] == "作品标题"
        assert data["canonical_url"] == "https://v.douyin.com/abc123/"

    def test_given_fetch_without_input_should_exit_with_error(self, capsys):
        """fetch 缺少链接和分享文本时以错误码退出。"""
        with pytest.raises(SystemExit) as exc:
            main(["fetch", "weibo"])
        assert exc.value.code == 1
        assert capsys.readouterr().err.startswith("ERROR:")

    def test_given_unrecognised_input_should_exit_with_error(self, capsys):
        """无法识别平台时以错误码退出。"""
        with pytest.raises(SystemExit):
            main(["fetch", "--url", "https://example.com/post/1"])
        assert "无法识别平台" in capsys.readouterr().err

    def test_given_unfetchable_post_should_print_manual_steps(self, upstream, capsys):
        """自动获取失败时打印手动录入步骤。"""
        main(["fetch", "weibo", "--share-text", "随便写点什么", "--no-browser"])
        out = capsys.readouterr().out
        assert "方式: manual-assistant" in out
        assert "ManualAssistant: accepted" in out

    def test_given_fetch_json_flag_should_parse(self):
        """fetch 子命令的参数应被正确解析。"""
        args = build_parser().parse_args(["fetch", "douyin", "-s", "abc", "-j", "--no-browser"])
        assert (args.platform, args.share_text, args.json, args.no_browser) == ("douyin", "abc", True, True)
