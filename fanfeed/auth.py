"""
Admin authentication: fixed credentials exchanged for a signed bearer token.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from . import config
from .exceptions import UnauthorizedError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/admin/login", auto_error=False)


def authenticate(username: str, password: str) -> bool:
    """Compare against the configured admin credentials in constant time."""
    user_ok = secrets.compare_digest((username or "").encode(), config.ADMIN_USERNAME.encode())
    pass_ok = secrets.compare_digest((password or "").encode(), config.ADMIN_PASSWORD.encode())
    return user_ok and pass_ok


def create_token(username: str, hours: Optional[int] = None) -> tuple[str, datetime]:
    """Create a JWT access token; returns the token and its expiry."""
    expire = datetime.now(timezone.utc) + timedelta(hours=hours if hours is not None else config.TOKEN_HOURS)
    payload = {"sub": username, "exp": expire, "type": "access"}
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.ALGORITHM), expire


def verify_token(token: Optional[str]) -> str:
    """Return the token's subject; raises UnauthorizedError if missing, invalid or expired."""
    if not token:
        raise UnauthorizedError("缺少认证令牌")
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError as e:
        raise UnauthorizedError(f"令牌无效或已过期: {e}") from e
    subject = payload.get("sub")
    if payload.get("type", "access") != "access" or not subject:
        raise UnauthorizedError("令牌无效")
    return subject


def require_admin(token: Optional[str] = Depends(oauth2_scheme)) -> str:
    """Dependency for mutating routes; the app turns UnauthorizedError into a 401."""
    return verify_token(token)
