"""
文档片段模型 (Chunk) - 检索的基本单位

数据流向: DocumentVersion → 抽取 → 元数据前缀 → 切分 → 向量化 → Chunk

片段只会作为成功摄取的副作用产生，并与版本审批在同一事务中提交；
版本被删除时片段级联删除。
"""

from sqlalchemy import ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import EmbeddingVector
from app.models.mixins import TimestampMixin, new_id


class Chunk(TimestampMixin, Base):
    """片段表：文本片段 + 向量，(document_version_id, ordinal) 唯一"""
    __tablename__ = "chunks"
    __table_args__ = (
        UniqueConstraint("document_version_id", "ordinal", name="uq_chunks_version_ordinal"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    document_version_id: Mapped[str] = mapped_column(
        ForeignKey("document_versions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    # 冗余存储，检索时按文档 / 租户快速过滤
    document_id: Mapped[str] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )

    ordinal: Mapped[int] = mapped_column(Integer, nullable=False)  # 在版本内的顺序
    text: Mapped[str] = mapped_column(Text, nullable=False)

    # PostgreSQL 上为 pgvector 的 vector 列，其他数据库为 JSON 数组；维度由 embedding 模型决定
    embedding: Mapped[list[float]] = mapped_column(EmbeddingVector(), nullable=False)
    # 检索时只比较与查询向量维度相同的片段（更换模型后旧片段不参与排序）
    embedding_dim: Mapped[int] = mapped_column(Integer, nullable=False)

    # 注意：字段名用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突
    # {"start_char": 0, "end_char": 980, "embedding_model": "text-embedding-3-small"}
    extra_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)
