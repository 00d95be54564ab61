"""
检索接口

POST /v1/tenants/{subdomain}/retrieve

只召回用户有权访问、且为活动已审批版本的片段，供对话助手拼接上下文。
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import TenantContext, get_db_session, get_tenant_context, get_user_access
from app.schemas import ChunkHit, RetrieveRequest, RetrieveResponse
from app.services.acl import UserContext
from app.services.retrieval import retrieve_relevant_chunks

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/tenants/{subdomain}")


@router.post("/retrieve", response_model=RetrieveResponse)
async def retrieve(
    payload: RetrieveRequest,
    context: TenantContext = Depends(get_tenant_context),
    user: UserContext = Depends(get_user_access),
    db: AsyncSession = Depends(get_db_session),
) -> RetrieveResponse:
    hits = await retrieve_relevant_chunks(
        db,
        tenant_id=context.tenant_id,
        user=user,
        query=payload.query,
        top_k=payload.top_k,
    )
    logger.info(f"检索完成: {len(hits)} 个片段")
    return RetrieveResponse(
        results=[
            ChunkHit(
                chunk_id=h.chunk_id,
                document_id=h.document_id,
                document_name=h.document_name,
                version_id=h.version_id,
                ordinal=h.ordinal,
                text=h.text,
                score=h.score,
            )
            for h in hits
        ]
    )
