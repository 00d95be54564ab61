"""
访问标签服务 (Access Tag Resolver)

判断某个用户能否阅读某篇文档。

访问规则（两步检查，顺序不可合并）：
1. 角色短路：租户管理员 (ADMIN) 可以访问租户内所有文档
2. 标签交集：
   - 文档没有任何标签 → 租户内所有成员可访问
   - 否则文档标签与成员被授予的标签至少有一个交集才可访问

无成员关系时一律拒绝（fail closed）。

单篇阅读使用 can_access，列表查询使用 build_access_filter 在 SQL 层过滤
（列表只过滤不报错）。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import ColumnElement, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Document, TenantMember, document_access_tags, member_access_tags

logger = logging.getLogger(__name__)


@dataclass
class UserContext:
    """
    用户在某个租户内的访问上下文

    Attributes:
        user_id: 用户 ID
        member_id: 成员关系 ID
        is_admin: 是否为租户管理员
        tag_ids: 被授予的访问标签 ID 集合
    """
    user_id: str
    member_id: str
    is_admin: bool = False
    tag_ids: frozenset[str] = field(default_factory=frozenset)


@dataclass
class DocumentACL:
    """文档需要的访问标签"""
    document_id: str
    required_tag_ids: frozenset[str] = field(default_factory=frozenset)


def check_document_access(user: UserContext, doc_acl: DocumentACL) -> bool:
    """
    检查用户是否可以访问文档（纯函数，不访问数据库）

    Args:
        user: 用户访问上下文
        doc_acl: 文档标签信息

    Returns:
        True 如果用户可以访问，False 否则
    """
    # 第一步：角色短路
    if user.is_admin:
        return True

    # 第二步：标签交集
    if not doc_acl.required_tag_ids:
        return True

    return bool(user.tag_ids & doc_acl.required_tag_ids)


async def load_user_context(
    session: AsyncSession,
    *,
    tenant_id: str,
    user_id: str,
) -> UserContext | None:
    """加载成员关系及其被授予的标签，无成员关系返回 None"""
    member = (
        await session.execute(
            select(TenantMember).where(
                TenantMember.tenant_id == tenant_id,
                TenantMember.user_id == user_id,
            )
        )
    ).scalar_one_or_none()
    if member is None:
        return None

    return await user_context_for_member(session, member)


async def user_context_for_member(session: AsyncSession, member: TenantMember) -> UserContext:
    """由已解析的成员关系构建访问上下文"""
    tag_ids: frozenset[str] = frozenset()
    if not member.is_admin:
        rows = await session.execute(
            select(member_access_tags.c.tag_id).where(member_access_tags.c.member_id == member.id)
        )
        tag_ids = frozenset(rows.scalars().all())

    return UserContext(
        user_id=member.user_id,
        member_id=member.id,
        is_admin=member.is_admin,
        tag_ids=tag_ids,
    )


async def load_document_acl(session: AsyncSession, document_id: str) -> DocumentACL:
    rows = await session.execute(
        select(document_access_tags.c.tag_id).where(document_access_tags.c.document_id == document_id)
    )
    return DocumentACL(document_id=document_id, required_tag_ids=frozenset(rows.scalars().all()))


async def can_access(
    session: AsyncSession,
    *,
    user_id: str,
    tenant_id: str,
    document_id: str,
) -> bool:
    """
    判断用户能否阅读文档

    文档不属于该租户、用户不是该租户成员时都返回 False。
    """
    user = await load_user_context(session, tenant_id=tenant_id, user_id=user_id)
    if user is None:
        logger.debug(f"无成员关系，拒绝访问: user={user_id} tenant={tenant_id}")
        return False

    return await can_access_as(session, user=user, tenant_id=tenant_id, document_id=document_id)


async def can_access_as(
    session: AsyncSession,
    *,
    user: UserContext,
    tenant_id: str,
    document_id: str,
) -> bool:
    """与 can_access 相同，但复用已加载的用户上下文"""
    in_tenant = (
        await session.execute(
            select(Document.id).where(Document.id == document_id, Document.tenant_id == tenant_id)
        )
    ).scalar_one_or_none()
    if in_tenant is None:
        return False

    if user.is_admin:
        return True

    doc_acl = await load_document_acl(session, document_id)
    allowed = check_document_access(user, doc_acl)
    if not allowed:
        logger.debug(f"标签不匹配，拒绝访问: user={user.user_id} document={document_id}")
    return allowed


def build_access_filter(user: UserContext) -> ColumnElement[bool]:
    """
    构建列表查询的访问过滤条件（作用于 Document）

    管理员不过滤；成员可见无标签文档和标签有交集的文档。
    """
    if user.is_admin:
        return true()

    # 禁止自动关联：外层 FROM 可能含 document_access_tags
    tagged_docs = select(document_access_tags.c.document_id).correlate(None)
    granted_docs = (
        select(document_access_tags.c.document_id)
        .where(document_access_tags.c.tag_id.in_(list(user.tag_ids)))
        .correlate(None)
    )
    return or_(Document.id.not_in(tagged_docs), Document.id.in_(granted_docs))
