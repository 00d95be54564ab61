"""
审批流程

把摄取编排器与版本存储串起来：
    claim → ingest（写片段, 不提交）→ version_store.approve（CAS）→ commit

任何一步失败：回滚片段写入，释放 processing 标记并记录错误，版本保持 PENDING。

提供三种入口：
- approve_version: 同步审批（请求内完成摄取）
- run_background_approval: 后台审批（路由已完成 claim，返回 202）
- submit_document: 提交，管理员上传时按配置自动审批
"""

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import get_settings
from app.exceptions import IngestionError, KnowledgeBaseError
from app.models import DocumentVersion, IngestionStatus
from app.services import version_store
from app.services.ingestion import (
    IngestionResult,
    ProcessingLog,
    claim_version,
    ingest,
    release_claim,
)
from app.services.version_store import FileRef, SubmissionMetadata

logger = logging.getLogger(__name__)


@dataclass
class ApprovalOutcome:
    version: DocumentVersion
    ingestion: IngestionResult


@dataclass
class SubmissionOutcome:
    """
    提交结果

    auto_approved 为 False 且 approval_error 非空，表示管理员上传的自动审批失败，
    版本保持 PENDING。
    """
    version: DocumentVersion
    auto_approved: bool = False
    approval_error: KnowledgeBaseError | None = None


async def claim_for_approval(
    session: AsyncSession,
    *,
    tenant_id: str,
    document_id: str,
    version_id: str,
    admin_user_id: str,
) -> DocumentVersion:
    """
    审批前置检查 + 占用版本

    权限错误在任何摄取工作之前抛出，便于区分"改角色"和"改文件"。

    Raises:
        AuthorizationError / NotFoundError / InvalidStateError / AlreadyInProgressError
    """
    await version_store.require_admin(session, tenant_id=tenant_id, user_id=admin_user_id)
    version = await version_store.get_version(
        session, tenant_id=tenant_id, document_id=document_id, version_id=version_id
    )
    return await claim_version(session, version)


async def run_claimed_approval(
    session: AsyncSession,
    *,
    tenant_id: str,
    document_id: str,
    version_id: str,
    admin_user_id: str,
) -> ApprovalOutcome:
    """
    对已占用的版本执行摄取并审批

    Raises:
        IngestionError: 摄取失败（版本保持 PENDING，没有片段）
        InvalidStateError: 摄取期间版本已被其他请求审批或驳回
    """
    document = await version_store.get_document(session, tenant_id=tenant_id, document_id=document_id)
    version = await version_store.get_version(
        session, tenant_id=tenant_id, document_id=document_id, version_id=version_id
    )
    log = ProcessingLog()

    try:
        result = await ingest(session, document=document, version=version, log=log)
        approved = await version_store.approve(
            session,
            tenant_id=tenant_id,
            document_id=document_id,
            version_id=version_id,
            admin_user_id=admin_user_id,
            ingestion=result,
        )
        await session.commit()
    except IngestionError as e:
        await session.rollback()
        log.add(f"摄取失败 [{e.code}]: {e.message}", "ERROR")
        await release_claim(session, version_id, status=IngestionStatus.FAILED, error=e.message, log=log)
        raise
    except asyncio.CancelledError:
        await session.rollback()
        log.add("摄取被取消", "WARNING")
        await release_claim(
            session, version_id, status=IngestionStatus.INTERRUPTED, error="摄取被取消", log=log
        )
        raise
    except Exception as e:
        await session.rollback()
        message = e.message if isinstance(e, KnowledgeBaseError) else str(e)
        log.add(f"审批失败: {message}", "ERROR")
        await release_claim(session, version_id, status=IngestionStatus.FAILED, error=message, log=log)
        raise

    return ApprovalOutcome(version=approved, ingestion=result)


async def approve_version(
    session: AsyncSession,
    *,
    tenant_id: str,
    document_id: str,
    version_id: str,
    admin_user_id: str,
) -> ApprovalOutcome:
    """在当前请求内完成摄取与审批"""
    await claim_for_approval(
        session,
        tenant_id=tenant_id,
        document_id=document_id,
        version_id=version_id,
        admin_user_id=admin_user_id,
    )
    return await run_claimed_approval(
        session,
        tenant_id=tenant_id,
        document_id=document_id,
        version_id=version_id,
        admin_user_id=admin_user_id,
    )


async def run_background_approval(
    session_factory: async_sessionmaker,
    *,
    tenant_id: str,
    document_id: str,
    version_id: str,
    admin_user_id: str,
) -> None:
    """
    后台任务：对已占用的版本执行摄取与审批

    结果记录在版本的 ingestion_status / ingestion_error 上，可通过版本列表查询。
    """
    logger.info(f"开始后台审批: document={document_id} version={version_id}")

    async with session_factory() as session:
        try:
            outcome = await run_claimed_approval(
                session,
                tenant_id=tenant_id,
                document_id=document_id,
                version_id=version_id,
                admin_user_id=admin_user_id,
            )
        except KnowledgeBaseError as e:
            logger.warning(f"后台审批失败，版本未审批: version={version_id} [{e.code}] {e.message}")
            return

    logger.info(
        f"后台审批完成: version={version_id}, chunks={outcome.ingestion.chunk_count}"
    )


async def submit_document(
    session: AsyncSession,
    *,
    tenant_id: str,
    user_id: str,
    file: FileRef,
    metadata: SubmissionMetadata,
    document_id: str | None = None,
) -> SubmissionOutcome:
    """
    提交文档（或新版本），管理员上传时按配置立即摄取并审批

    自动审批失败不影响提交本身：版本保持 PENDING，等待管理员手动审批。
    """
    version = await version_store.submit(
        session,
        tenant_id=tenant_id,
        user_id=user_id,
        file=file,
        metadata=metadata,
        document_id=document_id,
    )

    member = await version_store.get_member(session, tenant_id=tenant_id, user_id=user_id)
    if not (get_settings().auto_approve_admin_uploads and member is not None and member.is_admin):
        return SubmissionOutcome(version=version)

    target_document_id, target_version_id = version.document_id, version.id
    try:
        outcome = await approve_version(
            session,
            tenant_id=tenant_id,
            document_id=target_document_id,
            version_id=target_version_id,
            admin_user_id=user_id,
        )
    except KnowledgeBaseError as e:
        logger.warning(
            f"自动审批失败，版本保持 PENDING: version={target_version_id} [{e.code}] {e.message}"
        )
        await session.refresh(version)
        return SubmissionOutcome(version=version, approval_error=e)

    return SubmissionOutcome(version=outcome.version, auto_approved=True)
