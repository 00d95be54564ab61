"""
文档摄取服务 (Ingestion Orchestrator)

把一个 PENDING 版本处理为可检索的片段：
1. 按 MIME 类型选择抽取器，读取源文件并抽取文本
2. 拼接元数据前缀（标题 + 描述），提升检索相关性
3. 段落切分
4. 批量向量化
5. 写入片段（先删除该版本已有片段，重试不会产生重复）

原子性：
- 第 1~4 步只做网络/计算，不写数据库，整体受 ingestion_timeout_seconds 限制
- 第 5 步与版本审批在同一事务中提交（见 app.services.approval），
  任何一步失败都回滚，版本保持 PENDING 且没有片段

同一版本同一时刻只允许一个摄取：claim_version 对 ingestion_status 做
compare-and-swap 并立即提交，重复请求得到 AlreadyInProgressError。
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.exceptions import (
    AlreadyInProgressError,
    EmbeddingFailure,
    EmptyContentError,
    ExtractionFailure,
    IngestionError,
    IngestionTimeoutError,
    InvalidStateError,
)
from app.infra.embeddings import current_embedding_model, get_embeddings
from app.infra.file_store import fetch_file_bytes
from app.infra.logging import RequestTimer
from app.models import Chunk, Document, DocumentStatus, DocumentVersion, IngestionStatus
from app.models.mixins import utcnow
from app.pipeline import operator_registry
from app.pipeline.base import BaseChunkerOperator, ChunkPiece
from app.pipeline.extractors import resolve_extractor

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """
    摄取成功的结果

    version_store.approve 只接受与目标版本匹配的 IngestionResult。
    """
    document_id: str
    version_id: str
    chunk_count: int
    embedding_model: str
    timings: dict[str, float] = field(default_factory=dict)
    processing_log: str = ""


@dataclass
class PreparedChunks:
    """第 1~4 步的产物，尚未写入数据库"""
    pieces: list[ChunkPiece]
    vectors: list[list[float]]
    embedding_model: str


class ProcessingLog:
    """
    版本处理日志

    每行 "[时间] [级别] 消息"，同时写入应用日志，
    最终保存到 DocumentVersion.processing_log 供运维排查。
    """

    def __init__(self) -> None:
        self.lines: list[str] = []
        self._tz = ZoneInfo(get_settings().timezone)

    def add(self, msg: str, level: str = "INFO") -> None:
        ts = datetime.now(self._tz).strftime("%Y-%m-%d %H:%M:%S")
        self.lines.append(f"[{ts}] [{level}] {msg}")
        if level == "ERROR":
            logger.error(msg)
        elif level == "WARNING":
            logger.warning(msg)
        else:
            logger.info(msg)

    def text(self) -> str:
        return "\n".join(self.lines)


def build_metadata_prefix(name: str, description: str | None) -> str:
    """
    元数据前缀，拼在抽取文本之前

    示例：
        "Document Title: 员工手册\\nDescription: 2024 版\\n\\n"
        "Document Title: 员工手册\\n\\n"（无描述）
    """
    if description:
        return f"Document Title: {name}\nDescription: {description}\n\n"
    return f"Document Title: {name}\n\n"


def get_chunker() -> BaseChunkerOperator:
    settings = get_settings()
    chunker_cls = operator_registry.get("chunker", "paragraph")
    return chunker_cls(chunk_size=settings.chunk_size, chunk_overlap=settings.chunk_overlap)


# ==================== 处理中标记 ====================


async def claim_version(session: AsyncSession, version: DocumentVersion) -> DocumentVersion:
    """
    把版本标记为 processing 并立即提交

    已有未过期的 processing 标记时拒绝；超过 ingestion_lease_seconds 的标记视为
    失效（处理进程已崩溃），允许接管。

    Raises:
        InvalidStateError: 版本不是 PENDING
        AlreadyInProgressError: 该版本正在摄取
    """
    if version.status != DocumentStatus.PENDING:
        raise InvalidStateError("Version is not pending approval")

    stale_before = utcnow() - timedelta(seconds=get_settings().ingestion_lease_seconds)
    result = await session.execute(
        update(DocumentVersion)
        .where(
            DocumentVersion.id == version.id,
            DocumentVersion.status == DocumentStatus.PENDING,
            or_(
                DocumentVersion.ingestion_status != IngestionStatus.PROCESSING,
                DocumentVersion.ingestion_started_at.is_(None),
                DocumentVersion.ingestion_started_at < stale_before,
            ),
        )
        .values(
            ingestion_status=IngestionStatus.PROCESSING,
            ingestion_started_at=utcnow(),
            ingestion_error=None,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        await session.rollback()
        await session.refresh(version)
        if version.status != DocumentStatus.PENDING:
            raise InvalidStateError("Version is not pending approval")
        raise AlreadyInProgressError("Ingestion for this version is already in progress")

    await session.commit()
    await session.refresh(version)
    logger.info(f"摄取已占用: version={version.id}")
    return version


async def release_claim(
    session: AsyncSession,
    version_id: str,
    *,
    status: str,
    error: str | None = None,
    log: ProcessingLog | None = None,
) -> None:
    """
    摄取失败后释放处理中标记，并清理该版本未审批的片段

    只在 ingestion_status 仍为 processing 时生效，不会覆盖其他请求的结果。
    """
    values: dict = {"ingestion_status": status, "ingestion_error": error}
    if log is not None:
        values["processing_log"] = log.text()

    await session.execute(
        update(DocumentVersion)
        .where(
            DocumentVersion.id == version_id,
            DocumentVersion.ingestion_status == IngestionStatus.PROCESSING,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(Chunk).where(
            Chunk.document_version_id == version_id,
            Chunk.document_version_id.in_(
                select(DocumentVersion.id).where(DocumentVersion.status != DocumentStatus.APPROVED)
            ),
        )
    )
    await session.commit()


async def recover_interrupted_versions(session: AsyncSession) -> int:
    """
    启动时恢复被中断的摄取

    processing 标记超过 ingestion_lease_seconds 的版本视为处理进程已退出，
    标记为 interrupted（可重试）并删除其未审批的片段。
    未过期的标记可能属于其他仍在运行的进程，保持不动。

    Returns:
        int: 恢复的版本数
    """
    stale_before = utcnow() - timedelta(seconds=get_settings().ingestion_lease_seconds)
    stale_claim = (
        DocumentVersion.ingestion_status == IngestionStatus.PROCESSING,
        or_(
            DocumentVersion.ingestion_started_at.is_(None),
            DocumentVersion.ingestion_started_at < stale_before,
        ),
    )

    rows = await session.execute(select(DocumentVersion.id).where(*stale_claim))
    version_ids = list(rows.scalars().all())
    if not version_ids:
        return 0

    result = await session.execute(
        update(DocumentVersion)
        .where(DocumentVersion.id.in_(version_ids), *stale_claim)
        .values(
            ingestion_status=IngestionStatus.INTERRUPTED,
            ingestion_error="服务重启，摄取被中断",
        )
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(Chunk).where(
            Chunk.document_version_id.in_(
                select(DocumentVersion.id).where(
                    DocumentVersion.id.in_(version_ids),
                    DocumentVersion.ingestion_status == IngestionStatus.INTERRUPTED,
                    DocumentVersion.status != DocumentStatus.APPROVED,
                )
            )
        )
    )
    await session.commit()

    recovered = result.rowcount
    logger.warning(f"已将 {recovered} 个中断的摄取标记为 interrupted")
    return recovered


# ==================== 摄取 ====================


async def prepare_chunks(
    document: Document,
    version: DocumentVersion,
    log: ProcessingLog,
    timer: RequestTimer,
) -> PreparedChunks:
    """
    抽取 → 元数据前缀 → 切分 → 向量化（不写数据库）

    Raises:
        UnsupportedFormatError / ExtractionFailure / EmptyContentError / EmbeddingFailure
    """
    extractor = resolve_extractor(version.mime_type)
    log.add(f"[1/4] 抽取文本: {version.original_name} ({version.mime_type}, 抽取器={extractor.name})")

    data = await fetch_file_bytes(version.file_url)
    try:
        text = await asyncio.to_thread(extractor.extract, data)
    except IngestionError:
        raise
    except Exception as e:
        raise ExtractionFailure(f"Failed to extract text: {e}") from e
    timer.mark("extract")

    if not text or not text.strip():
        raise EmptyContentError("No text content could be extracted from the file")
    log.add(f"抽取完成: {len(text)} 字符")

    combined = build_metadata_prefix(document.name, document.description) + text
    timer.mark("prefix")

    log.add("[2/4] 段落切分")
    pieces = get_chunker().chunk(combined)
    if not pieces:
        raise EmptyContentError("No chunks were produced from the extracted text")
    timer.mark("chunk")
    log.add(f"切分完成: {len(pieces)} 个片段")

    log.add("[3/4] 向量化")
    try:
        vectors = await get_embeddings([p.text for p in pieces])
    except Exception as e:
        raise EmbeddingFailure(f"Failed to generate embeddings: {e}") from e
    if len(vectors) != len(pieces):
        raise EmbeddingFailure(
            f"Embedding count mismatch: expected {len(pieces)}, got {len(vectors)}"
        )
    timer.mark("embed")

    return PreparedChunks(pieces=pieces, vectors=vectors, embedding_model=current_embedding_model())


async def ingest(
    session: AsyncSession,
    *,
    document: Document,
    version: DocumentVersion,
    log: ProcessingLog | None = None,
) -> IngestionResult:
    """
    摄取一个版本并把片段写入当前事务（flush，不提交）

    该版本已有的片段会先被删除，重复摄取得到唯一的一组片段。
    调用方负责在审批成功后提交，或在失败时回滚。

    Raises:
        IngestionError 的各子类；超时为 IngestionTimeoutError
    """
    log = log or ProcessingLog()
    timer = RequestTimer()
    settings = get_settings()

    log.add(f"开始摄取: document={document.id} version={version.id} (v{version.version_number})")

    try:
        prepared = await asyncio.wait_for(
            prepare_chunks(document, version, log, timer),
            timeout=settings.ingestion_timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        raise IngestionTimeoutError(
            f"Ingestion timed out after {settings.ingestion_timeout_seconds:.0f}s"
        ) from e

    log.add("[4/4] 写入片段")
    await session.execute(delete(Chunk).where(Chunk.document_version_id == version.id))
    session.add_all([
        Chunk(
            document_version_id=version.id,
            document_id=document.id,
            tenant_id=document.tenant_id,
            ordinal=ordinal,
            text=piece.text,
            embedding=vector,
            embedding_dim=len(vector),
            extra_metadata={**piece.metadata, "embedding_model": prepared.embedding_model},
        )
        for ordinal, (piece, vector) in enumerate(zip(prepared.pieces, prepared.vectors))
    ])
    await session.flush()
    timer.mark("persist")

    timings = timer.get_metrics()
    log.add(f"摄取完成: {len(prepared.pieces)} 个片段, 耗时 {timings['total_ms']:.0f}ms")

    return IngestionResult(
        document_id=document.id,
        version_id=version.id,
        chunk_count=len(prepared.pieces),
        embedding_model=prepared.embedding_model,
        timings=timings,
        processing_log=log.text(),
    )


async def count_version_chunks(session: AsyncSession, version_id: str) -> int:
    result = await session.execute(
        select(func.count()).select_from(Chunk).where(Chunk.document_version_id == version_id)
    )
    return result.scalar_one()

