"""
租户模型 (Tenant)

租户是多租户系统的隔离边界，代表一个客户工作空间。
所有业务数据（文档、成员关系、访问标签）都通过 tenant_id 隔离。

租户通过 subdomain 路由：/v1/tenants/{subdomain}/...
租户在正常运行中不会被删除，仅可被禁用（status != active）。
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import TimestampMixin, new_id


class Tenant(TimestampMixin, Base):
    """
    租户表

    字段说明：
    - id: 租户唯一标识（UUID 格式）
    - name: 租户名称
    - subdomain: 子域名，全局唯一，用于路由解析租户
    - status: 租户状态（active/disabled）
    """
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    subdomain: Mapped[str] = mapped_column(String(63), unique=True, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default="active",
        nullable=False,
        index=True,
    )
