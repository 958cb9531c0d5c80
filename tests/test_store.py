import json

import pytest

from fanfeed.exceptions import InvalidInputError, PostNotFoundError
from fanfeed.models import MediaItem, PostDraft
from fanfeed.proxy import PROXY_PATH
from fanfeed.store import JsonFilePostStore, MemoryPostStore, create_store, validate_draft


def _draft(text="今天的舞台太棒了", published_at="2024-05-01T08:00:00+08:00", **kwargs) -> PostDraft:
    kwargs.setdefault("platform", "weibo")
    kwargs.setdefault("source_url", "https://weibo.com/1234567890/N1abcDEF")
    return PostDraft(text=text, published_at=published_at, **kwargs)


@pytest.mark.unit
class Describe_MemoryPostStore:
    def test_given_posts_should_list_newest_published_first(self, store):
        """列表按发布时间倒序，而非添加顺序。"""
        store.create(_draft("旧", "2023-01-01T00:00:00+00:00"))
        store.create(_draft("新", "2025-01-01T00:00:00+00:00"))
        store.create(_draft("中", "2024-01-01T00:00:00+00:00"))
        assert [p.text for p in store.list()] == ["新", "中", "旧"]

    def test_given_cap_exceeded_should_drop_oldest_insertion(self):
        """超过上限时丢弃最早添加的帖子，与发布时间无关。"""
        store = MemoryPostStore(max_posts=3)
        first = store.create(_draft("第一条", "2030-01-01T00:00:00+00:00"))
        for i in range(3):
            store.create(_draft(f"后续{i}", "2020-01-01T00:00:00+00:00"))
        assert store.counts()["total"] == 3
        with pytest.raises(PostNotFoundError):
            store.get(first.id)

    def test_given_new_post_should_stamp_times_and_id(self, store):
        """新帖子应生成 ID 和添加时间，发布时间统一为 ISO 格式。"""
        post = store.create(_draft(published_at="2024-05-01T08:00:00Z"))
        assert len(post.id) == 12
        assert post.added_at
        assert post.engagement_updated_at == post.added_at
        assert post.published_at == "2024-05-01T08:00:00+00:00"

    def test_given_verified_filter_should_return_only_matching(self, store):
        """verified 过滤与计数应一致。"""
        store.create(_draft("已核实", verified=True))
        store.create(_draft("未核实"))
        assert [p.text for p in store.list(verified=True)] == ["已核实"]
        assert store.counts() == {"total": 2, "verified": 1}

    def test_given_unknown_id_should_raise_not_found(self, store):
        """不存在的 ID 在读取、更新、删除时都报 not found。"""
        with pytest.raises(PostNotFoundError):
            store.get("missing")
        with pytest.raises(PostNotFoundError):
            store.update("missing", _draft())
        with pytest.raises(PostNotFoundError):
            store.delete("missing")

    def test_given_delete_should_remove_post(self, store):
        """删除后帖子不再出现在列表中。"""
        post = store.create(_draft())
        assert store.delete(post.id).id == post.id
        assert store.list() == []


@pytest.mark.unit
class Describe_update:
    def test_given_partial_engagement_should_keep_existing_counts(self, store):
        """更新时缺失的互动数不应覆盖已有数值。"""
        post = store.create(_draft(engagement={"likes": 10, "comments": 5, "shares": 1}))
        updated = store.update(post.id, _draft(engagement={"likes": 20}))
        assert (updated.engagement.likes, updated.engagement.comments, updated.engagement.shares) == (20, 5, 1)

    def test_given_explicit_zero_should_correct_count(self, store):
        """管理员明确填写 0 时应把计数改为 0。"""
        post = store.create(_draft(engagement={"likes": 10, "comments": 5}))
        updated = store.update(post.id, _draft(engagement={"comments": 0, "shares": None}))
        assert (updated.engagement.likes, updated.engagement.comments, updated.engagement.shares) == (10, 0, 0)

    def test_given_unchanged_engagement_should_keep_timestamp(self, store):
        """互动数未变化时不刷新互动更新时间。"""
        post = store.create(_draft(engagement={"likes": 10}))
        updated = store.update(post.id, _draft("改了正文"))
        assert updated.text == "改了正文"
        assert updated.engagement_updated_at == post.engagement_updated_at
        assert updated.added_at == post.added_at

    def test_given_no_original_text_should_keep_previous(self, store):
        """更新未提供原文时保留原有原文。"""
        post = store.create(_draft(original_text="分享原文"))
        assert store.update(post.id, _draft()).original_text == "分享原文"


@pytest.mark.unit
class Describe_validate_draft:
    @pytest.mark.parametrize("field", ["text", "published_at", "source_url"])
    def test_given_missing_required_field_should_raise(self, field):
        """缺少正文、发布时间或原帖链接时报输入错误。"""
        draft = _draft()
        setattr(draft, field, "  ")
        with pytest.raises(InvalidInputError, match=field):
            validate_draft(draft)

    def test_given_unknown_platform_should_raise(self):
        """不支持的平台报输入错误。"""
        with pytest.raises(InvalidInputError):
            validate_draft(_draft(platform="tiktok"))

    def test_given_manual_only_platform_should_accept(self):
        """手动录入可使用级联不支持的平台。"""
        assert validate_draft(_draft(platform="instagram")).platform == "instagram"

    def test_given_bad_date_should_raise(self):
        """无法解析的发布时间报输入错误。"""
        with pytest.raises(InvalidInputError):
            validate_draft(_draft(published_at="昨天"))

    def test_given_protected_media_should_route_through_proxy(self):
        """防盗链图片应改走媒体代理，外链卡片和播放器保持原样。"""
        draft = _draft(media=[
            MediaItem(source_url="https://wx1.sinaimg.cn/large/a1.jpg"),
            MediaItem(kind="video", source_url="https://www.douyin.com/video/1", requires_external=True),
            MediaItem(source_url="https://example.com/a.jpg"),
            MediaItem(source_url=""),
        ])
        media = validate_draft(draft).media
        assert len(media) == 3
        assert media[0].display_url.startswith(PROXY_PATH)
        assert media[1].display_url == "https://www.douyin.com/video/1"
        assert media[2].display_url == "https://example.com/a.jpg"


@pytest.mark.unit
class Describe_JsonFilePostStore:
    def test_given_saved_posts_should_survive_reopen(self, tmp_path):
        """写入文件后重新打开仍能读到帖子。"""
        path = tmp_path / "data" / "posts.json"
        post = JsonFilePostStore(path).create(_draft(media=[MediaItem(source_url="https://wx1.sinaimg.cn/large/a1.jpg")]))
        reopened = JsonFilePostStore(path)
        loaded = reopened.get(post.id)
        assert loaded.text == post.text
        assert loaded.media[0].source_url == "https://wx1.sinaimg.cn/large/a1.jpg"
        assert json.loads(path.read_text(encoding="utf-8"))[0]["id"] == post.id

    def test_given_corrupt_file_should_move_it_aside(self, tmp_path):
        """文件损坏时先移到备份文件，再以空列表继续。"""
        path = tmp_path / "posts.json"
        path.write_text("{not json", encoding="utf-8")
        assert JsonFilePostStore(path).list() == []
        backups = list(tmp_path.glob("posts.json.corrupt-*"))
        assert len(backups) == 1
        assert backups[0].read_text(encoding="utf-8") == "{not json"
        assert not path.exists()

    def test_given_truncated_file_should_keep_old_posts_in_backup(self, tmp_path):
        """被截断的文件不会在下一次写入时被覆盖丢失。"""
        path = tmp_path / "posts.json"
        store = JsonFilePostStore(path)
        for i in range(3):
            store.create(_draft(f"旧帖子{i}"))
        damaged = path.read_bytes()[:-5]
        path.write_bytes(damaged)
        store.create(_draft("new"))
        assert [p["text"] for p in json.loads(path.read_text(encoding="utf-8"))] == ["new"]
        backups = list(tmp_path.glob("posts.json.corrupt-*"))
        assert [b.read_bytes() for b in backups] == [damaged]

    def test_given_save_should_leave_no_temp_files(self, tmp_path):
        """写入通过临时文件替换完成，不残留临时文件。"""
        path = tmp_path / "posts.json"
        JsonFilePostStore(path).create(_draft())
        assert list(tmp_path.glob(".posts.json.*.tmp")) == []
        assert len(json.loads(path.read_text(encoding="utf-8"))) == 1

    def test_given_path_should_create_file_store(self, tmp_path):
        """给定路径时使用文件存储，否则使用内存存储。"""
        assert isinstance(create_store(str(tmp_path / "posts.json")), JsonFilePostStore)
        assert type(create_store("")) is MemoryPostStore
