"""
文档与文档版本模型

数据关系：
    Tenant
       └── Document（逻辑文章）
              ├── DocumentVersion（每次提交的内容修订）
              │      └── Chunk（审批通过时生成的检索片段）
              └── document_access_tags（访问标签）

版本状态机：
    PENDING ──approve──▶ APPROVED（终态）
       └────reject────▶ REJECTED（终态）

Document.status 为派生字段，便于快速过滤：
- 有 active_version_id → APPROVED
- 否则最新版本为 REJECTED 且没有 PENDING → REJECTED
- 否则 → PENDING
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import TimestampMixin, new_id


class DocumentStatus:
    """文档 / 版本状态取值"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ALL = (PENDING, APPROVED, REJECTED)


class IngestionStatus:
    """
    版本的摄取处理状态（与审批状态相互独立）

    - idle: 尚未摄取
    - processing: 正在摄取（同一时刻只允许一个）
    - completed: 摄取并审批成功
    - failed: 最近一次摄取失败，可重试
    - interrupted: 服务重启导致中断，可重试
    """
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


class Document(TimestampMixin, Base):
    """
    文档表

    字段说明：
    - tenant_id: 所属租户
    - name / description: 标题和描述，摄取时会作为元数据前缀写入片段
    - status: 派生状态（见模块说明）
    - active_version_id: 当前对读者提供服务的版本，只能指向本文档的 APPROVED 版本
    - current_version: 已分配的最大版本号
    - submitted_by: 首次提交者
    """
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(Text)

    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=DocumentStatus.PENDING,
        nullable=False,
        index=True,
    )

    # 与 document_versions 互相引用，use_alter 打破建表循环依赖
    active_version_id: Mapped[str | None] = mapped_column(
        ForeignKey(
            "document_versions.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_documents_active_version_id",
        ),
    )

    current_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    submitted_by: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
    )


class DocumentVersion(TimestampMixin, Base):
    """
    文档版本表

    约束：
    - (document_id, version_number) 唯一，版本号按文档单调递增，从 1 开始
    - 每个文档最多一个 PENDING 版本（部分唯一索引兜底）
    - APPROVED / REJECTED 后不可修改
    """
    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint("document_id", "version_number", name="uq_document_versions_number"),
        Index(
            "uq_document_versions_one_pending",
            "document_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    document_id: Mapped[str] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    version_number: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=DocumentStatus.PENDING,
        nullable=False,
    )

    # ==================== 源文件 ====================
    file_url: Mapped[str] = mapped_column(Text, nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    change_notes: Mapped[str | None] = mapped_column(Text)

    uploaded_by: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    # ==================== 审批信息（仅 APPROVED 时设置） ====================
    approved_by: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # ==================== 驳回信息（仅 REJECTED 时设置） ====================
    rejected_by: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # ==================== 摄取处理状态 ====================
    ingestion_status: Mapped[str] = mapped_column(
        String(20),
        default=IngestionStatus.IDLE,
        nullable=False,
        index=True,
    )
    ingestion_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ingestion_error: Mapped[str | None] = mapped_column(Text)

    # 每行一条日志，供运维排查摄取失败原因
    processing_log: Mapped[str | None] = mapped_column(Text)
