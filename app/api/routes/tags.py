"""
访问标签管理接口（仅管理员）

- GET    /v1/tenants/{subdomain}/tags
- POST   /v1/tenants/{subdomain}/tags
- POST   /v1/tenants/{subdomain}/tags/{tag_id}/grant
- POST   /v1/tenants/{subdomain}/tags/{tag_id}/revoke
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import TenantContext, get_db_session, require_tenant_admin
from app.schemas import TagCreate, TagGrantRequest, TagListResponse, TagResponse
from app.services import tags as tag_service

router = APIRouter(prefix="/v1/tenants/{subdomain}")


@router.get("/tags", response_model=TagListResponse)
async def list_tags(
    context: TenantContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
) -> TagListResponse:
    summaries = await tag_service.list_tags(db, tenant_id=context.tenant_id, admin_user_id=context.user_id)
    return TagListResponse(
        tags=[
            TagResponse(
                id=s.tag.id,
                name=s.tag.name,
                created_at=s.tag.created_at,
                user_count=s.user_count,
                document_count=s.document_count,
            )
            for s in summaries
        ]
    )


@router.post("/tags", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
async def create_tag(
    payload: TagCreate,
    context: TenantContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
) -> TagResponse:
    tag = await tag_service.create_tag(
        db, tenant_id=context.tenant_id, admin_user_id=context.user_id, name=payload.name
    )
    await db.refresh(tag)
    return TagResponse(id=tag.id, name=tag.name, created_at=tag.created_at)


@router.post("/tags/{tag_id}/grant", status_code=status.HTTP_204_NO_CONTENT)
async def grant_tag(
    payload: TagGrantRequest,
    tag_id: str = Path(..., description="Tag ID"),
    context: TenantContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
) -> None:
    await tag_service.grant_tag(
        db,
        tenant_id=context.tenant_id,
        admin_user_id=context.user_id,
        tag_id=tag_id,
        user_id=payload.user_id,
    )


@router.post("/tags/{tag_id}/revoke", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_tag(
    payload: TagGrantRequest,
    tag_id: str = Path(..., description="Tag ID"),
    context: TenantContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
) -> None:
    await tag_service.revoke_tag(
        db,
        tenant_id=context.tenant_id,
        admin_user_id=context.user_id,
        tag_id=tag_id,
        user_id=payload.user_id,
    )
