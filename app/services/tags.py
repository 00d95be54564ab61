"""
访问标签管理

仅租户管理员可操作：
- 创建标签（租户内名称唯一）
- 授予 / 收回成员标签
- 列出标签及其成员数、文档数
"""

import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConflictError, InvalidRequestError, NotFoundError
from app.models import AccessTag, TenantMember, document_access_tags, member_access_tags
from app.services.version_store import require_admin

logger = logging.getLogger(__name__)


@dataclass
class TagSummary:
    tag: AccessTag
    user_count: int
    document_count: int


async def _get_tag(session: AsyncSession, tenant_id: str, tag_id: str) -> AccessTag:
    tag = (
        await session.execute(
            select(AccessTag).where(AccessTag.id == tag_id, AccessTag.tenant_id == tenant_id)
        )
    ).scalar_one_or_none()
    if tag is None:
        raise NotFoundError("Tag not found")
    return tag


async def _get_member_by_user(session: AsyncSession, tenant_id: str, user_id: str) -> TenantMember:
    member = (
        await session.execute(
            select(TenantMember).where(
                TenantMember.tenant_id == tenant_id, TenantMember.user_id == user_id
            )
        )
    ).scalar_one_or_none()
    if member is None:
        raise NotFoundError("Member not found")
    return member


async def list_tags(session: AsyncSession, *, tenant_id: str, admin_user_id: str) -> list[TagSummary]:
    await require_admin(session, tenant_id=tenant_id, user_id=admin_user_id)

    user_counts = (
        select(member_access_tags.c.tag_id, func.count().label("n"))
        .group_by(member_access_tags.c.tag_id)
        .subquery()
    )
    doc_counts = (
        select(document_access_tags.c.tag_id, func.count().label("n"))
        .group_by(document_access_tags.c.tag_id)
        .subquery()
    )
    rows = await session.execute(
        select(AccessTag, user_counts.c.n, doc_counts.c.n)
        .outerjoin(user_counts, user_counts.c.tag_id == AccessTag.id)
        .outerjoin(doc_counts, doc_counts.c.tag_id == AccessTag.id)
        .where(AccessTag.tenant_id == tenant_id)
        .order_by(AccessTag.name)
    )
    return [
        TagSummary(tag=tag, user_count=users or 0, document_count=docs or 0)
        for tag, users, docs in rows.all()
    ]


async def create_tag(session: AsyncSession, *, tenant_id: str, admin_user_id: str, name: str) -> AccessTag:
    """
    Raises:
        InvalidRequestError: 名称为空
        ConflictError: 同名标签已存在
    """
    await require_admin(session, tenant_id=tenant_id, user_id=admin_user_id)

    name = (name or "").strip()
    if not name:
        raise InvalidRequestError("Tag name is required")

    existing = (
        await session.execute(
            select(AccessTag.id).where(AccessTag.tenant_id == tenant_id, AccessTag.name == name)
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError("Tag with this name already exists")

    tag = AccessTag(tenant_id=tenant_id, name=name)
    session.add(tag)
    await session.commit()

    logger.info(f"标签已创建: tenant={tenant_id} tag={name}")
    return tag


async def grant_tag(
    session: AsyncSession,
    *,
    tenant_id: str,
    admin_user_id: str,
    tag_id: str,
    user_id: str,
) -> None:
    """把标签授予成员（重复授予无副作用）"""
    await require_admin(session, tenant_id=tenant_id, user_id=admin_user_id)
    tag = await _get_tag(session, tenant_id, tag_id)
    member = await _get_member_by_user(session, tenant_id, user_id)

    exists = (
        await session.execute(
            select(member_access_tags.c.tag_id).where(
                member_access_tags.c.member_id == member.id,
                member_access_tags.c.tag_id == tag.id,
            )
        )
    ).first()
    if exists is None:
        await session.execute(insert(member_access_tags).values(member_id=member.id, tag_id=tag.id))
        await session.commit()

    logger.info(f"标签已授予: tag={tag.name} user={user_id}")


async def revoke_tag(
    session: AsyncSession,
    *,
    tenant_id: str,
    admin_user_id: str,
    tag_id: str,
    user_id: str,
) -> None:
    await require_admin(session, tenant_id=tenant_id, user_id=admin_user_id)
    tag = await _get_tag(session, tenant_id, tag_id)
    member = await _get_member_by_user(session, tenant_id, user_id)

    await session.execute(
        delete(member_access_tags).where(
            member_access_tags.c.member_id == member.id,
            member_access_tags.c.tag_id == tag.id,
        )
    )
    await session.commit()

    logger.info(f"标签已收回: tag={tag.name} user={user_id}")
