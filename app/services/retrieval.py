"""
检索服务

为对话助手提供片段召回：
1. 把问题向量化
2. 只读取「文档活动版本」的片段（被替换的旧版本片段不会被召回）
3. 按访问标签过滤（与列表查询同一套规则）
4. 在数据库内按余弦距离排序并截取 top_k（PostgreSQL 为 pgvector 的 <=>）
"""

import logging
import math
from dataclasses import dataclass

from sqlalchemy import bindparam, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.types import EmbeddingVector, cosine_distance
from app.infra.embeddings import get_embedding
from app.models import Chunk, Document, DocumentStatus, DocumentVersion
from app.services.acl import UserContext, build_access_filter

logger = logging.getLogger(__name__)


@dataclass
class RetrievedChunk:
    chunk_id: str
    document_id: str
    document_name: str
    version_id: str
    ordinal: int
    text: str
    score: float


def _similarity(distance: float | None) -> float:
    # 零向量在 pgvector 中得到 NaN
    if distance is None or math.isnan(distance):
        return 0.0
    return 1.0 - float(distance)


async def retrieve_relevant_chunks(
    session: AsyncSession,
    *,
    tenant_id: str,
    user: UserContext,
    query: str,
    top_k: int = 5,
) -> list[RetrievedChunk]:
    """
    召回与问题最相关的片段

    Args:
        tenant_id: 已由租户边界解析的租户 ID
        user: 调用者的访问上下文
        query: 问题
        top_k: 返回数量
    """
    query_vec = await get_embedding(query)

    distance = cosine_distance(
        Chunk.embedding,
        bindparam("query_vector", query_vec, type_=EmbeddingVector()),
    ).label("distance")

    stmt = (
        select(
            Chunk.id,
            Chunk.document_id,
            Chunk.document_version_id,
            Chunk.ordinal,
            Chunk.text,
            Document.name,
            distance,
        )
        .join(Document, Document.id == Chunk.document_id)
        .join(
            DocumentVersion,
            (DocumentVersion.id == Chunk.document_version_id)
            & (DocumentVersion.id == Document.active_version_id),
        )
        .where(
            Chunk.tenant_id == tenant_id,
            Document.tenant_id == tenant_id,
            Document.status == DocumentStatus.APPROVED,
            DocumentVersion.status == DocumentStatus.APPROVED,
            Chunk.embedding_dim == len(query_vec),
            build_access_filter(user),
        )
        .order_by(distance, Chunk.id)
        .limit(top_k)
    )
    rows = (await session.execute(stmt)).all()
    logger.debug(f"检索完成: tenant={tenant_id}, 命中 {len(rows)} 个片段 (top_k={top_k})")

    return [
        RetrievedChunk(
            chunk_id=row.id,
            document_id=row.document_id,
            document_name=row.name,
            version_id=row.document_version_id,
            ordinal=row.ordinal,
            text=row.text,
            score=_similarity(row.distance),
        )
        for row in rows
    ]
