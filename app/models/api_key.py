"""
API 密钥模型 (APIKey)

API Key 是调用方的会话凭证，绑定到一个全局用户 (User)。
租户和角色不由 Key 决定，而是在每次请求时通过 {subdomain} 与成员关系解析。

安全设计：
- API Key 只在创建时显示一次，之后只存储哈希值
- 使用前缀 (prefix) 快速定位，避免全表扫描
- 支持过期时间和手动撤销

API Key 格式示例：
    kh_sk_xxxxxxxxxxxxxxxxxxxx
    ├─────┤└──────────────────┤
    prefix      随机部分
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import TimestampMixin, new_id


class APIKey(TimestampMixin, Base):
    """
    API 密钥表

    认证流程：
    1. 客户端在 Authorization 头中携带 Bearer Key
    2. 服务端通过前缀快速查找
    3. 验证哈希值是否匹配
    4. 检查是否过期或被撤销
    """
    __tablename__ = "api_keys"
    __table_args__ = (
        UniqueConstraint("hashed_key", name="uq_api_keys_hashed_key"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 用于识别用途，如 "CLI"、"集成测试"
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # 前缀明文存储，哈希值通过前缀定位后再比对
    prefix: Mapped[str] = mapped_column(String(12), index=True)

    hashed_key: Mapped[str] = mapped_column(String(128), nullable=False)

    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # 为空表示永不过期
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
