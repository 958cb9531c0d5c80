"""Post store: the ordered list of posts shown on the site.

Writes insert newest-first and drop the oldest insertions beyond the cap; reads
are ordered by ``published_at`` descending. A single admin is assumed: there is
no isolation between a read and the following write, so concurrent edits are
last-writer-wins.
"""

import os
import json
import fcntl
import logging
import tempfile
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from .config import MAX_POSTS, STORE_PATH
from .exceptions import InvalidInputError, PostNotFoundError
from .models import EngagementCounts, Post, PostDraft, MediaItem, POST_PLATFORMS
from .proxy import display_url_for
from .utils import now_iso, parse_iso, sort_key

logger = logging.getLogger("fanfeed")


class PostRepository(Protocol):
    def list(self, verified: Optional[bool] = None) -> list[Post]: ...

    def get(self, post_id: str) -> Post: ...

    def create(self, draft: PostDraft) -> Post: ...

    def update(self, post_id: str, draft: PostDraft) -> Post: ...

    def delete(self, post_id: str) -> Post: ...

    def counts(self) -> dict[str, int]: ...


def validate_draft(draft: PostDraft) -> PostDraft:
    """Reject drafts missing required fields; normalise the date and media URLs."""
    missing = [name for name in ("text", "published_at", "source_url") if not str(getattr(draft, name) or "").strip()]
    if missing:
        raise InvalidInputError(f"缺少必填字段: {', '.join(missing)}")
    if draft.platform not in POST_PLATFORMS:
        raise InvalidInputError(f"不支持的平台: {draft.platform}")
    published = parse_iso(draft.published_at)
    if not published:
        raise InvalidInputError(f"无效的发布时间: {draft.published_at}")
    draft.published_at = published
    draft.text = draft.text.strip()
    draft.media = [_with_display_url(m) for m in draft.media if m.source_url]
    return draft


def _with_display_url(item: MediaItem) -> MediaItem:
    if item.display_url == item.source_url and not (item.is_embeddable_frame or item.requires_external):
        item.display_url = display_url_for(item.source_url)
    return item


class MemoryPostStore:
    def __init__(self, max_posts: int = MAX_POSTS, posts: Optional[list[Post]] = None):
        self.max_posts = max_posts
        # Insertion order, newest first.
        self._posts: list[Post] = list(posts or [])

    # ── 持久化钩子 ────────────────────────────────────────

    def _load(self) -> None:
        pass

    def _save(self) -> None:
        pass

    # ── public API ──────────────────────────────────────────

    def list(self, verified: Optional[bool] = None) -> list[Post]:
        self._load()
        posts = [p for p in self._posts if verified is None or p.verified == verified]
        return sorted(posts, key=lambda p: sort_key(p.published_at), reverse=True)

    def get(self, post_id: str) -> Post:
        self._load()
        return self._find(post_id)[1]

    def create(self, draft: PostDraft) -> Post:
        draft = validate_draft(draft)
        self._load()
        now = now_iso()
        post = Post(
            id=uuid.uuid4().hex[:12],
            platform=draft.platform,
            text=draft.text,
            source_url=draft.source_url,
            published_at=draft.published_at,
            added_at=now,
            original_text=draft.original_text,
            media=draft.media,
            engagement=EngagementCounts.from_dict(draft.engagement),
            engagement_updated_at=now,
            verified=draft.verified,
            content_id=draft.content_id,
        )
        self._posts.insert(0, post)
        if len(self._posts) > self.max_posts:
            dropped = self._posts[self.max_posts:]
            del self._posts[self.max_posts:]
            logger.info(f"帖子数超过上限 {self.max_posts}，丢弃 {len(dropped)} 条最早添加的帖子")
        self._save()
        logger.info(f"新增帖子 {post.id} ({post.platform})")
        return post

    def update(self, post_id: str, draft: PostDraft) -> Post:
        draft = validate_draft(draft)
        self._load()
        index, old = self._find(post_id)
        engagement = old.engagement.patched(draft.engagement)
        post = Post(
            id=old.id,
            platform=draft.platform,
            text=draft.text,
            source_url=draft.source_url,
            published_at=draft.published_at,
            added_at=old.added_at,
            original_text=draft.original_text if draft.original_text is not None else old.original_text,
            media=draft.media,
            engagement=engagement,
            engagement_updated_at=now_iso() if engagement != old.engagement else old.engagement_updated_at,
            verified=draft.verified,
            content_id=draft.content_id or old.content_id,
        )
        self._posts[index] = post
        self._save()
        logger.info(f"更新帖子 {post.id}")
        return post

    def delete(self, post_id: str) -> Post:
        self._load()
        index, post = self._find(post_id)
        del self._posts[index]
        self._save()
        logger.info(f"删除帖子 {post.id}")
        return post

    def counts(self) -> dict[str, int]:
        self._load()
        return {
            "total": len(self._posts),
            "verified": sum(1 for p in self._posts if p.verified),
        }

    def _find(self, post_id: str) -> tuple[int, Post]:
        for i, post in enumerate(self._posts):
            if post.id == str(post_id):
                return i, post
        raise PostNotFoundError(str(post_id))


class JsonFilePostStore(MemoryPostStore):
    """Posts kept in a JSON file, re-read before every operation.

    Saves go to a temp file that replaces the real one, so a crash mid-write leaves
    the previous version intact. A file that no longer decodes is moved aside to
    ``<name>.corrupt-<stamp>`` before anything is written over it.
    """

    def __init__(self, path, max_posts: int = MAX_POSTS):
        super().__init__(max_posts=max_posts)
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.lock_path = self.path.with_name(f"{self.path.name}.lock")

    @contextmanager
    def _locked(self, operation: int):
        with open(self.lock_path, "a") as lock:
            fcntl.flock(lock.fileno(), operation)
            try:
                yield
            finally:
                fcntl.flock(lock.fileno(), fcntl.LOCK_UN)

    def _load(self) -> None:
        with self._locked(fcntl.LOCK_SH):
            raw = self.path.read_bytes() if self.path.exists() else b""
        try:
            data = json.loads(raw.decode("utf-8") or "[]")
        except ValueError as e:  # JSONDecodeError or UnicodeDecodeError
            self._move_aside(f"{e}")
            data = []
        if not isinstance(data, list):
            self._move_aside(f"顶层不是列表 ({type(data).__name__})")
            data = []
        self._posts = [Post.from_dict(item) for item in data if isinstance(item, dict) and item.get("id")]

    def _move_aside(self, reason: str) -> None:
        backup = self.path.with_name(f"{self.path.name}.corrupt-{datetime.now():%Y%m%d%H%M%S}-{uuid.uuid4().hex[:6]}")
        with self._locked(fcntl.LOCK_EX):
            if self.path.exists():
                os.replace(self.path, backup)
        logger.warning(f"帖子文件已损坏，移至 {backup}: {reason}")

    def _save(self) -> None:
        payload = json.dumps([p.to_dict() for p in self._posts], ensure_ascii=False, indent=2)
        with self._locked(fcntl.LOCK_EX):
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, self.path)
            except OSError:
                Path(tmp).unlink(missing_ok=True)
                raise


def create_store(path: Optional[str] = None, max_posts: int = MAX_POSTS) -> PostRepository:
    path = STORE_PATH if path is None else path
    if path:
        return JsonFilePostStore(path, max_posts=max_posts)
    return MemoryPostStore(max_posts=max_posts)
