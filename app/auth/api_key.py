"""
API Key 认证模块

会话身份解析：
1. 从请求头获取 Bearer Token
2. 验证 API Key 是否有效（哈希比对）
3. 检查是否过期或被撤销
4. 返回 Key 绑定的全局用户 (User)

API Key 只确定「你是谁」，租户和角色由 app.auth.tenant 按请求路径解析。

安全设计：
- 使用 SHA256 哈希存储，不保存明文
- 记录最后使用时间
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.infra.logging import set_user_id
from app.models import APIKey, User

logger = logging.getLogger(__name__)


def hash_api_key(raw_key: str) -> str:
    """对 API Key 进行 SHA256 哈希"""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key(prefix: str) -> tuple[str, str, str]:
    """
    生成新的 API Key

    Returns:
        tuple: (完整Key用于显示, 哈希值用于存储, 前缀用于快速查找)
    """
    body = secrets.token_urlsafe(32)
    display_key = f"{prefix}{body}"
    return display_key, hash_api_key(display_key), display_key[:8]


def _parse_authorization_header(header_val: str | None) -> str:
    if not header_val or not header_val.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHORIZED", "detail": "Missing or invalid Authorization header"},
        )
    return header_val.split(" ", 1)[1].strip()


@dataclass
class APIKeyContext:
    api_key: APIKey
    user: User


async def get_api_key_context(
    authorization: str = Header(None),
    db: AsyncSession = Depends(get_db),
) -> APIKeyContext:
    raw_key = _parse_authorization_header(authorization)
    hashed = hash_api_key(raw_key)
    now = datetime.now(timezone.utc)

    result = await db.execute(
        select(APIKey, User)
        .join(User, User.id == APIKey.user_id)
        .where(
            and_(
                APIKey.hashed_key == hashed,
                APIKey.revoked.is_(False),
                (APIKey.expires_at.is_(None)) | (APIKey.expires_at > now),
            )
        )
    )
    row = result.one_or_none()
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_API_KEY", "detail": "Invalid API key"},
        )

    api_key, user = row

    api_key.last_used_at = now
    await db.commit()

    set_user_id(user.id)
    return APIKeyContext(api_key=api_key, user=user)


async def get_current_user(context: APIKeyContext = Depends(get_api_key_context)) -> User:
    """当前请求的会话用户"""
    return context.user
