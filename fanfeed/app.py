"""
fanfeed HTTP API: posts, admin login, media proxy and the ingest cascade.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .auth import authenticate, create_token, require_admin
from .cascade import auto_fetch
from .exceptions import InvalidInputError, PostNotFoundError, UnauthorizedError
from .models import PLATFORMS, PostDraft
from .platforms import get_adapter
from .proxy import fetch_media
from .resolver import resolve_url
from .store import PostRepository, create_store

logger = logging.getLogger("fanfeed")

# ─── 请求体 ────────────────────────────────────────────────────────────────────


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class MediaIn(BaseModel):
    kind: str = "image"
    source_url: str = ""
    display_url: str = ""
    poster_url: Optional[str] = None
    is_embeddable_frame: bool = False
    requires_external: bool = False
    alt: str = ""


class EngagementIn(BaseModel):
    likes: Optional[int] = None
    comments: Optional[int] = None
    shares: Optional[int] = None


class PostIn(BaseModel):
    """Schema for creating or replacing a post."""
    platform: str = "weibo"
    text: str = ""
    original_text: Optional[str] = None
    media: list[MediaIn] = Field(default_factory=list)
    source_url: str = ""
    published_at: str = ""
    engagement: EngagementIn = Field(default_factory=EngagementIn)
    verified: bool = False
    content_id: Optional[str] = None


class IngestRequest(BaseModel):
    url: Optional[str] = None
    share_text: Optional[str] = None
    browser: Optional[bool] = None


class ShareTextRequest(BaseModel):
    share_text: Optional[str] = None

# ─── 依赖 ──────────────────────────────────────────────────────────────────────


def get_store(request: Request) -> PostRepository:
    return request.app.state.store

# ─── 路由 ──────────────────────────────────────────────────────────────────────

admin_router = APIRouter(prefix="/api/admin", tags=["admin"])
posts_router = APIRouter(prefix="/api/posts", tags=["posts"])
ingest_router = APIRouter(prefix="/api", tags=["ingest"])


@admin_router.post("/login")
def login(body: LoginRequest):
    if not body.username or not body.password:
        raise InvalidInputError("请输入用户名和密码")
    if not authenticate(body.username, body.password):
        raise UnauthorizedError("用户名或密码错误")
    token, expires = create_token(body.username)
    logger.info(f"管理员登录: {body.username}")
    return {
        "success": True,
        "token": token,
        "expires_at": expires.isoformat(),
        "user": {"username": body.username, "role": "admin"},
    }


@posts_router.get("")
def list_posts(verified: Optional[bool] = None, store: PostRepository = Depends(get_store)):
    posts = store.list(verified=verified)
    counts = store.counts()
    return {
        "success": True,
        "data": [p.to_dict() for p in posts],
        "total": counts["total"],
        "verified": counts["verified"],
    }


@posts_router.get("/{post_id}")
def get_post(post_id: str, store: PostRepository = Depends(get_store)):
    return {"success": True, "data": store.get(post_id).to_dict()}


@posts_router.post("")
def create_post(body: PostIn, store: PostRepository = Depends(get_store), admin: str = Depends(require_admin)):
    post = store.create(PostDraft.from_dict(body.model_dump()))
    return {"success": True, "data": post.to_dict()}


@posts_router.put("/{post_id}")
def update_post(post_id: str, body: PostIn, store: PostRepository = Depends(get_store),
                admin: str = Depends(require_admin)):
    post = store.update(post_id, PostDraft.from_dict(body.model_dump()))
    return {"success": True, "data": post.to_dict()}


@posts_router.delete("/{post_id}")
def delete_post(post_id: str, store: PostRepository = Depends(get_store), admin: str = Depends(require_admin)):
    post = store.delete(post_id)
    return {"success": True, "data": post.to_dict()}


@ingest_router.get("/media-proxy")
def media_proxy(url: Optional[str] = None):
    if not url:
        raise InvalidInputError("缺少 url 参数")
    media = fetch_media(url)
    return Response(
        content=media.content,
        media_type=media.content_type,
        status_code=media.status_code,
        headers={"Cache-Control": media.cache_control},
    )


@ingest_router.post("/ingest/{platform}")
def ingest(platform: str, body: IngestRequest):
    result = auto_fetch(platform, url=body.url, share_text=body.share_text, browser=body.browser)
    return result.to_dict()


@ingest_router.get("/resolve/{platform}")
def resolve(platform: str, url: Optional[str] = None):
    adapter = get_adapter(platform)
    if not url or not url.startswith(("http://", "https://")):
        raise InvalidInputError(f"无效链接: {url}")
    return resolve_url(url, adapter.platform).to_dict()


@ingest_router.post("/share-text/{platform}")
def parse_share_text(platform: str, body: ShareTextRequest):
    adapter = get_adapter(platform)
    if not body.share_text or not body.share_text.strip():
        raise InvalidInputError("缺少分享文本")
    return adapter.parse_share_text(body.share_text).to_dict()


@ingest_router.get("/health")
def health():
    return {"status": "ok", "version": __version__, "platforms": list(PLATFORMS)}

# ─── 错误处理 ──────────────────────────────────────────────────────────────────


def _error(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message}, headers=headers)


async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    logger.warning(f"{request.url.path}: {exc}")
    return _error(400, str(exc))


async def unauthorized_handler(request: Request, exc: UnauthorizedError) -> JSONResponse:
    return _error(401, str(exc), headers={"WWW-Authenticate": "Bearer"})


async def not_found_handler(request: Request, exc: PostNotFoundError) -> JSONResponse:
    return _error(404, str(exc))


def create_app(store: Optional[PostRepository] = None) -> FastAPI:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
    app = FastAPI(title="fanfeed", description="Fan content aggregation API", version=__version__)
    app.state.store = store if store is not None else create_store()
    app.include_router(admin_router)
    app.include_router(posts_router)
    app.include_router(ingest_router)
    app.add_exception_handler(InvalidInputError, invalid_input_handler)
    app.add_exception_handler(UnauthorizedError, unauthorized_handler)
    app.add_exception_handler(PostNotFoundError, not_found_handler)
    return app
