"""
知识库浏览接口

只展示活动版本已审批的文章，按访问标签过滤：
- GET /v1/tenants/{subdomain}/knowledge-base             文章列表
- GET /v1/tenants/{subdomain}/knowledge-base/{article_id} 单篇文章
"""

import math

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import TenantContext, get_db_session, get_tenant_context, get_user_access
from app.schemas import ArticleListResponse, ArticleResponse, CategoryCount, CategoryRef, Pagination
from app.services import knowledge_base
from app.services.acl import UserContext

router = APIRouter(prefix="/v1/tenants/{subdomain}")


def _article_response(article: knowledge_base.Article) -> ArticleResponse:
    doc, version = article.document, article.version
    return ArticleResponse(
        id=doc.id,
        title=doc.name,
        description=doc.description,
        categories=[CategoryRef(id=t.id, name=t.name) for t in article.tags],
        version_id=version.id,
        version=version.version_number,
        file_url=version.file_url,
        file_name=version.original_name,
        file_size=version.file_size,
        mime_type=version.mime_type,
        submitted_by=doc.submitted_by,
        created_at=doc.created_at,
        updated_at=doc.updated_at,
        approved_at=version.approved_at,
    )


@router.get("/knowledge-base", response_model=ArticleListResponse)
async def list_articles(
    search: str | None = Query(default=None, description="按标题/描述搜索（不区分大小写）"),
    category: str | None = Query(default=None, description="分类（标签名）"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    context: TenantContext = Depends(get_tenant_context),
    user: UserContext = Depends(get_user_access),
    db: AsyncSession = Depends(get_db_session),
) -> ArticleListResponse:
    result = await knowledge_base.list_articles(
        db,
        tenant_id=context.tenant_id,
        user=user,
        search=search,
        category=category,
        page=page,
        limit=limit,
    )
    return ArticleListResponse(
        articles=[_article_response(a) for a in result.articles],
        categories=[CategoryCount(id=c.tag.id, name=c.tag.name, count=c.count) for c in result.categories],
        pagination=Pagination(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=math.ceil(result.total / result.limit) if result.total else 0,
        ),
    )


@router.get("/knowledge-base/{article_id}", response_model=ArticleResponse)
async def get_article(
    article_id: str = Path(..., description="Document ID"),
    context: TenantContext = Depends(get_tenant_context),
    user: UserContext = Depends(get_user_access),
    db: AsyncSession = Depends(get_db_session),
) -> ArticleResponse:
    """无权限 403，没有已审批的活动版本 404"""
    article = await knowledge_base.get_article(
        db, tenant_id=context.tenant_id, user=user, document_id=article_id
    )
    return _article_response(article)
