"""
知识库浏览

面向读者的只读视图，只展示「活动版本为 APPROVED」的文档：
- list_articles: 访问过滤 + 搜索 + 分类（标签名）+ 分页，附带各分类文章数
- get_article: canAccess → getActive，无权限 403，无活动版本 404
"""

import logging
from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import AuthorizationError, NotFoundError
from app.models import AccessTag, Document, DocumentStatus, DocumentVersion, document_access_tags
from app.services import version_store
from app.services.acl import UserContext, build_access_filter, can_access_as

logger = logging.getLogger(__name__)


@dataclass
class Article:
    document: Document
    version: DocumentVersion
    tags: list[AccessTag]


@dataclass
class CategoryCount:
    tag: AccessTag
    count: int


@dataclass
class ArticlePage:
    articles: list[Article]
    categories: list[CategoryCount]
    total: int
    page: int
    limit: int


def _published_conditions(tenant_id: str, user: UserContext) -> list:
    return [
        Document.tenant_id == tenant_id,
        Document.active_version_id.is_not(None),
        DocumentVersion.status == DocumentStatus.APPROVED,
        build_access_filter(user),
    ]


async def tags_for_documents(session: AsyncSession, document_ids: list[str]) -> dict[str, list[AccessTag]]:
    """批量加载文档标签"""
    result: dict[str, list[AccessTag]] = {doc_id: [] for doc_id in document_ids}
    if not document_ids:
        return result

    rows = await session.execute(
        select(document_access_tags.c.document_id, AccessTag)
        .join(AccessTag, AccessTag.id == document_access_tags.c.tag_id)
        .where(document_access_tags.c.document_id.in_(document_ids))
        .order_by(AccessTag.name)
    )
    for doc_id, tag in rows.all():
        result[doc_id].append(tag)
    return result


async def list_articles(
    session: AsyncSession,
    *,
    tenant_id: str,
    user: UserContext,
    search: str | None = None,
    category: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> ArticlePage:
    conditions = _published_conditions(tenant_id, user)

    if category and category.strip():
        tagged_with_category = (
            select(document_access_tags.c.document_id)
            .join(AccessTag, AccessTag.id == document_access_tags.c.tag_id)
            .where(
                AccessTag.tenant_id == tenant_id,
                func.lower(AccessTag.name) == category.strip().lower(),
            )
        )
        conditions.append(Document.id.in_(tagged_with_category))

    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        conditions.append(
            or_(
                func.lower(Document.name).like(pattern),
                func.lower(func.coalesce(Document.description, "")).like(pattern),
            )
        )

    base = select(Document, DocumentVersion).join(
        DocumentVersion, DocumentVersion.id == Document.active_version_id
    )

    total = (
        await session.execute(
            select(func.count())
            .select_from(Document)
            .join(DocumentVersion, DocumentVersion.id == Document.active_version_id)
            .where(*conditions)
        )
    ).scalar_one()

    page = max(page, 1)
    limit = max(min(limit, 100), 1)
    rows = (
        await session.execute(
            base.where(*conditions)
            .order_by(Document.created_at.desc(), Document.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
    ).all()

    tag_map = await tags_for_documents(session, [doc.id for doc, _ in rows])
    articles = [Article(document=doc, version=ver, tags=tag_map[doc.id]) for doc, ver in rows]

    # 分类只统计当前用户可见的已发布文档
    visible_docs = (
        select(Document.id)
        .join(DocumentVersion, DocumentVersion.id == Document.active_version_id)
        .where(*_published_conditions(tenant_id, user))
    )
    category_rows = await session.execute(
        select(AccessTag, func.count(document_access_tags.c.document_id))
        .join(document_access_tags, document_access_tags.c.tag_id == AccessTag.id)
        .where(
            AccessTag.tenant_id == tenant_id,
            document_access_tags.c.document_id.in_(visible_docs),
        )
        .group_by(AccessTag.id)
        .order_by(AccessTag.name)
    )
    categories = [CategoryCount(tag=tag, count=count) for tag, count in category_rows.all()]

    return ArticlePage(
        articles=articles,
        categories=categories,
        total=total,
        page=page,
        limit=limit,
    )


async def get_article(
    session: AsyncSession,
    *,
    tenant_id: str,
    user: UserContext,
    document_id: str,
) -> Article:
    """
    Raises:
        AuthorizationError: 无权访问（包括文档不属于该租户）
        NotFoundError: 文档没有已审批的活动版本
    """
    if not await can_access_as(session, user=user, tenant_id=tenant_id, document_id=document_id):
        raise AuthorizationError("You do not have permission to access this article")

    version = await version_store.get_active(session, tenant_id=tenant_id, document_id=document_id)
    if version is None:
        raise NotFoundError("Article not found")

    document = await version_store.get_document(session, tenant_id=tenant_id, document_id=document_id)
    tag_map = await tags_for_documents(session, [document.id])
    return Article(document=document, version=version, tags=tag_map[document.id])
