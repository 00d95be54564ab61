"""
访问标签模型 (AccessTag)

访问标签是租户内限定文档可见范围的分类：
- document_access_tags: 文档需要的标签（多对多）
- member_access_tags:   成员被授予的标签（多对多）

非管理员访问规则：文档没有标签，或与成员标签至少有一个交集。
"""

from sqlalchemy import Column, ForeignKey, String, Table, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import TimestampMixin, new_id


class AccessTag(TimestampMixin, Base):
    """访问标签表：租户内名称唯一"""
    __tablename__ = "access_tags"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_access_tags_tenant_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)


# 文档 ↔ 标签，删除文档或标签时连接行随之删除
document_access_tags = Table(
    "document_access_tags",
    Base.metadata,
    Column("document_id", ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("access_tags.id", ondelete="CASCADE"), primary_key=True),
)

# 成员 ↔ 标签
member_access_tags = Table(
    "member_access_tags",
    Base.metadata,
    Column("member_id", ForeignKey("tenant_members.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("access_tags.id", ondelete="CASCADE"), primary_key=True),
)
