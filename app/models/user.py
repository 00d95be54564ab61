"""
用户与成员关系模型

- User: 全局身份，可以加入多个租户（邮箱全局唯一）
- TenantMember: 用户在某个租户中的成员关系，携带角色（ADMIN / MEMBER）

角色是审批/驳回操作的唯一授权依据。
成员被授予的访问标签见 app.models.access_tag.member_access_tags。
"""

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import TimestampMixin, new_id


class MemberRole:
    """成员角色取值"""
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    ALL = (ADMIN, MEMBER)


class User(TimestampMixin, Base):
    """用户表：全局身份"""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    name: Mapped[str | None] = mapped_column(String(255))


class TenantMember(TimestampMixin, Base):
    """
    租户成员表

    (user_id, tenant_id) 唯一：一个用户在同一租户内只有一个角色。
    """
    __tablename__ = "tenant_members"
    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", name="uq_tenant_members_user_tenant"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role: Mapped[str] = mapped_column(String(20), default=MemberRole.MEMBER, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN
