"""
文档版本存储 (Document Version Store)

负责文档版本状态机，是修改版本状态和 active_version_id 的唯一入口。

状态机：
    PENDING ──approve──▶ APPROVED（终态）
       └────reject────▶ REJECTED（终态）

并发策略：
- 状态迁移使用 compare-and-swap：UPDATE ... WHERE status = 'PENDING'，
  受影响行数为 0 说明被其他请求抢先，抛出 InvalidStateError
- 每个文档最多一个 PENDING 版本：服务层检查 + 部分唯一索引兜底
- active_version_id 与版本状态在同一事务中修改

事务边界：
- submit / reject / activate / delete_document 自行提交
- approve 不提交，由摄取编排器在写入片段的同一事务中提交
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
)
from app.models import (
    AccessTag,
    Chunk,
    Document,
    DocumentStatus,
    DocumentVersion,
    IngestionStatus,
    TenantMember,
    document_access_tags,
)
from app.infra.file_store import check_file_location
from app.models.mixins import utcnow
from app.pipeline.extractors import is_supported_mime, normalize_mime
from app.services.acl import build_access_filter, can_access_as, user_context_for_member

if TYPE_CHECKING:
    from app.services.ingestion import IngestionResult

logger = logging.getLogger(__name__)


@dataclass
class FileRef:
    """已存储的源文件引用"""
    url: str
    original_name: str
    mime_type: str
    size: int = 0


@dataclass
class SubmissionMetadata:
    """
    提交元数据

    name / description / access_tag_ids 仅在创建新文档时使用，
    change_notes 记录在版本上。
    """
    name: str | None = None
    description: str | None = None
    change_notes: str | None = None
    access_tag_ids: list[str] = field(default_factory=list)


@dataclass
class DocumentListing:
    """文档列表项：文档 + 最新版本"""
    document: Document
    latest_version: DocumentVersion | None


@dataclass
class DocumentPage:
    items: list[DocumentListing]
    total: int
    page: int
    limit: int


# ==================== 查询辅助 ====================


async def get_member(session: AsyncSession, *, tenant_id: str, user_id: str) -> TenantMember | None:
    result = await session.execute(
        select(TenantMember).where(
            TenantMember.tenant_id == tenant_id,
            TenantMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def require_member(session: AsyncSession, *, tenant_id: str, user_id: str) -> TenantMember:
    member = await get_member(session, tenant_id=tenant_id, user_id=user_id)
    if member is None:
        raise AuthorizationError("You are not a member of this tenant")
    return member


async def require_admin(session: AsyncSession, *, tenant_id: str, user_id: str) -> TenantMember:
    member = await require_member(session, tenant_id=tenant_id, user_id=user_id)
    if not member.is_admin:
        raise AuthorizationError("Only administrators can perform this action")
    return member


async def get_document(session: AsyncSession, *, tenant_id: str, document_id: str) -> Document:
    """
    按租户获取文档

    Raises:
        NotFoundError: 文档不存在或不属于该租户
    """
    result = await session.execute(
        select(Document).where(
            Document.id == document_id,
            Document.tenant_id == tenant_id,
        )
    )
    document = result.scalar_one_or_none()
    if document is None:
        raise NotFoundError("Document not found")
    return document


async def get_version(
    session: AsyncSession,
    *,
    tenant_id: str,
    document_id: str,
    version_id: str,
) -> DocumentVersion:
    """
    获取属于 (tenant, document) 的版本

    Raises:
        NotFoundError: 文档或版本不存在，或版本不属于该文档
    """
    await get_document(session, tenant_id=tenant_id, document_id=document_id)
    result = await session.execute(
        select(DocumentVersion).where(
            DocumentVersion.id == version_id,
            DocumentVersion.document_id == document_id,
        )
    )
    version = result.scalar_one_or_none()
    if version is None:
        raise NotFoundError("Version not found")
    return version


async def get_pending_version(session: AsyncSession, document_id: str) -> DocumentVersion | None:
    result = await session.execute(
        select(DocumentVersion).where(
            DocumentVersion.document_id == document_id,
            DocumentVersion.status == DocumentStatus.PENDING,
        )
    )
    return result.scalar_one_or_none()


async def derive_document_status(session: AsyncSession, document: Document) -> str:
    """
    重新计算文档派生状态并写回 document.status

    - 有 active_version_id → APPROVED
    - 否则最新版本为 REJECTED 且没有 PENDING → REJECTED
    - 否则 → PENDING
    """
    if document.active_version_id:
        status = DocumentStatus.APPROVED
    else:
        rows = await session.execute(
            select(DocumentVersion.status)
            .where(DocumentVersion.document_id == document.id)
            .order_by(DocumentVersion.version_number.desc())
        )
        statuses = list(rows.scalars().all())
        if DocumentStatus.PENDING not in statuses and statuses and statuses[0] == DocumentStatus.REJECTED:
            status = DocumentStatus.REJECTED
        else:
            status = DocumentStatus.PENDING

    document.status = status
    return status


# ==================== 提交 ====================


def _validate_file(file: FileRef) -> str:
    mime = normalize_mime(file.mime_type)
    if not mime:
        raise InvalidRequestError("File mime type is required")
    if not is_supported_mime(mime):
        raise InvalidRequestError(f"File type not allowed: {file.mime_type}")

    settings = get_settings()
    if file.size > settings.max_file_size_bytes:
        raise InvalidRequestError(f"File size exceeds {settings.max_file_size_mb}MB limit")
    if not file.url:
        raise InvalidRequestError("File reference is required")
    check_file_location(file.url)
    return mime


async def _validate_tag_ids(session: AsyncSession, tenant_id: str, tag_ids: list[str]) -> list[str]:
    unique_ids = list(dict.fromkeys(tag_ids))
    if not unique_ids:
        return []
    rows = await session.execute(
        select(AccessTag.id).where(AccessTag.tenant_id == tenant_id, AccessTag.id.in_(unique_ids))
    )
    found = set(rows.scalars().all())
    missing = [t for t in unique_ids if t not in found]
    if missing:
        raise InvalidRequestError(f"Unknown access tags: {', '.join(missing)}")
    return unique_ids


async def submit(
    session: AsyncSession,
    *,
    tenant_id: str,
    user_id: str,
    file: FileRef,
    metadata: SubmissionMetadata,
    document_id: str | None = None,
) -> DocumentVersion:
    """
    提交文档或新版本，创建 PENDING 版本

    - document_id 为空：创建新文档 + 版本 1
    - document_id 非空：对已有文档提交新版本，版本号为当前最大版本号 + 1
      （REJECTED 之后也可以重新提交，版本号不重置）

    Raises:
        AuthorizationError: 非租户成员，或无权访问要提交新版本的文档
        NotFoundError: 文档不存在或不属于该租户
        InvalidRequestError: 名称为空、文件类型不支持、文件过大、文件位置不合法、标签不属于该租户
        ConflictError: 文档已有 PENDING 版本
    """
    member = await require_member(session, tenant_id=tenant_id, user_id=user_id)
    mime = _validate_file(file)

    if document_id is None:
        name = (metadata.name or "").strip()
        if not name:
            raise InvalidRequestError("Document name is required")
        tag_ids = await _validate_tag_ids(session, tenant_id, metadata.access_tag_ids)

        document = Document(
            tenant_id=tenant_id,
            name=name,
            description=(metadata.description or "").strip() or None,
            mime_type=mime,
            status=DocumentStatus.PENDING,
            current_version=0,
            submitted_by=user_id,
        )
        session.add(document)
        await session.flush()

        if tag_ids:
            await session.execute(
                insert(document_access_tags),
                [{"document_id": document.id, "tag_id": tag_id} for tag_id in tag_ids],
            )
    else:
        document = await get_document(session, tenant_id=tenant_id, document_id=document_id)
        user = await user_context_for_member(session, member)
        if not await can_access_as(session, user=user, tenant_id=tenant_id, document_id=document.id):
            raise AuthorizationError("You do not have access to this document")

        if await get_pending_version(session, document.id) is not None:
            raise ConflictError("Document already has a version pending approval")

    max_number = (
        await session.execute(
            select(func.max(DocumentVersion.version_number)).where(
                DocumentVersion.document_id == document.id
            )
        )
    ).scalar_one_or_none() or 0
    version_number = max(max_number, document.current_version) + 1

    version = DocumentVersion(
        document_id=document.id,
        version_number=version_number,
        status=DocumentStatus.PENDING,
        file_url=file.url,
        original_name=file.original_name,
        file_size=file.size,
        mime_type=mime,
        change_notes=(metadata.change_notes or "").strip() or None,
        uploaded_by=user_id,
        ingestion_status=IngestionStatus.IDLE,
    )
    session.add(version)
    document.current_version = version_number
    document.mime_type = mime

    try:
        await session.flush()
        await derive_document_status(session, document)
        await session.commit()
    except IntegrityError as e:
        # 并发提交撞上部分唯一索引或版本号唯一约束
        await session.rollback()
        raise ConflictError("Document already has a version pending approval") from e

    await session.refresh(version)
    logger.info(
        f"版本已提交: document={document.id} version={version.id} "
        f"number={version_number} by={user_id}"
    )
    return version


# ==================== 状态迁移 ====================


async def approve(
    session: AsyncSession,
    *,
    tenant_id: str,
    document_id: str,
    version_id: str,
    admin_user_id: str,
    ingestion: IngestionResult,
) -> DocumentVersion:
    """
    PENDING → APPROVED，并把文档的 active_version_id 指向该版本

    只能由摄取编排器在片段写入成功后调用，ingestion 参数是摄取成功的凭据。
    本函数不提交事务，片段与审批由调用方一起提交。

    Raises:
        AuthorizationError: 调用者不是该租户管理员
        NotFoundError: 文档/版本不存在或不属于该租户
        InvalidStateError: 版本不是 PENDING（包括被并发请求抢先）
    """
    await require_admin(session, tenant_id=tenant_id, user_id=admin_user_id)
    version = await get_version(
        session, tenant_id=tenant_id, document_id=document_id, version_id=version_id
    )

    if ingestion.version_id != version.id or ingestion.chunk_count < 1:
        raise InvalidStateError("Version cannot be approved without successful ingestion")

    now = utcnow()
    result = await session.execute(
        update(DocumentVersion)
        .where(
            DocumentVersion.id == version_id,
            DocumentVersion.document_id == document_id,
            DocumentVersion.status == DocumentStatus.PENDING,
        )
        .values(
            status=DocumentStatus.APPROVED,
            approved_by=admin_user_id,
            approved_at=now,
            ingestion_status=IngestionStatus.COMPLETED,
            ingestion_error=None,
            processing_log=ingestion.processing_log or None,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidStateError("Version is not pending approval")

    await session.execute(
        update(Document)
        .where(Document.id == document_id, Document.tenant_id == tenant_id)
        .values(active_version_id=version_id, status=DocumentStatus.APPROVED)
        .execution_options(synchronize_session=False)
    )

    document = await session.get(Document, document_id)
    await session.refresh(document)
    await session.refresh(version)
    logger.info(f"版本已审批: document={document_id} version={version_id} by={admin_user_id}")
    return version


async def reject(
    session: AsyncSession,
    *,
    tenant_id: str,
    document_id: str,
    reason: str,
    admin_user_id: str,
) -> DocumentVersion:
    """
    驳回文档当前的 PENDING 版本

    不修改 active_version_id：之前审批通过的版本继续对读者提供服务。

    Raises:
        InvalidRequestError: 驳回原因为空（在任何状态修改之前检查）
        AuthorizationError: 调用者不是该租户管理员
        NotFoundError: 文档不存在或不属于该租户
        InvalidStateError: 没有 PENDING 版本（包括被并发请求抢先）
    """
    reason = (reason or "").strip()
    if not reason:
        raise InvalidRequestError("Rejection reason is required")

    await require_admin(session, tenant_id=tenant_id, user_id=admin_user_id)
    document = await get_document(session, tenant_id=tenant_id, document_id=document_id)

    pending = await get_pending_version(session, document.id)
    if pending is None:
        raise InvalidStateError("Document has no version pending approval")

    result = await session.execute(
        update(DocumentVersion)
        .where(
            DocumentVersion.id == pending.id,
            DocumentVersion.status == DocumentStatus.PENDING,
        )
        .values(
            status=DocumentStatus.REJECTED,
            rejected_by=admin_user_id,
            rejection_reason=reason,
            rejected_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        raise InvalidStateError("Version is not pending approval")

    await derive_document_status(session, document)
    await session.commit()
    await session.refresh(pending)

    logger.info(f"版本已驳回: document={document_id} version={pending.id} by={admin_user_id}")
    return pending


async def activate(
    session: AsyncSession,
    *,
    tenant_id: str,
    document_id: str,
    version_id: str,
    admin_user_id: str,
) -> DocumentVersion:
    """
    把 active_version_id 切换到同一文档的另一个 APPROVED 版本（回滚到旧版本）

    Raises:
        AuthorizationError: 调用者不是该租户管理员
        NotFoundError: 文档/版本不存在
        InvalidStateError: 目标版本不是 APPROVED
    """
    await require_admin(session, tenant_id=tenant_id, user_id=admin_user_id)
    document = await get_document(session, tenant_id=tenant_id, document_id=document_id)
    version = await get_version(
        session, tenant_id=tenant_id, document_id=document_id, version_id=version_id
    )

    if version.status != DocumentStatus.APPROVED:
        raise InvalidStateError("Only approved versions can be activated")

    document.active_version_id = version.id
    await derive_document_status(session, document)
    await session.commit()

    logger.info(f"活动版本已切换: document={document_id} version={version_id} by={admin_user_id}")
    return version


async def get_active(
    session: AsyncSession,
    *,
    tenant_id: str,
    document_id: str,
) -> DocumentVersion | None:
    """返回 active_version_id 指向的 APPROVED 版本，没有则返回 None"""
    document = await get_document(session, tenant_id=tenant_id, document_id=document_id)
    if not document.active_version_id:
        return None

    result = await session.execute(
        select(DocumentVersion).where(
            DocumentVersion.id == document.active_version_id,
            DocumentVersion.document_id == document.id,
            DocumentVersion.status == DocumentStatus.APPROVED,
        )
    )
    return result.scalar_one_or_none()


# ==================== 查询与删除 ====================


async def list_versions(
    session: AsyncSession,
    *,
    tenant_id: str,
    user_id: str,
    document_id: str,
) -> tuple[Document, list[DocumentVersion]]:
    """
    列出文档的所有版本（版本号倒序）

    Raises:
        AuthorizationError: 非租户成员或无权访问该文档
        NotFoundError: 文档不存在
    """
    member = await require_member(session, tenant_id=tenant_id, user_id=user_id)
    document = await get_document(session, tenant_id=tenant_id, document_id=document_id)

    user = await user_context_for_member(session, member)
    if not await can_access_as(session, user=user, tenant_id=tenant_id, document_id=document.id):
        raise AuthorizationError("You do not have access to this document")

    result = await session.execute(
        select(DocumentVersion)
        .where(DocumentVersion.document_id == document.id)
        .order_by(DocumentVersion.version_number.desc())
    )
    return document, list(result.scalars().all())


async def list_documents(
    session: AsyncSession,
    *,
    tenant_id: str,
    user_id: str,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> DocumentPage:
    """
    分页列出用户可见的文档（无权访问的文档被过滤，不报错）

    Raises:
        AuthorizationError: 非租户成员
        InvalidRequestError: 状态值非法
    """
    if status is not None and status not in DocumentStatus.ALL:
        raise InvalidRequestError(f"Invalid status: {status}")

    member = await require_member(session, tenant_id=tenant_id, user_id=user_id)
    user = await user_context_for_member(session, member)

    conditions = [Document.tenant_id == tenant_id, build_access_filter(user)]
    if status:
        conditions.append(Document.status == status)
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        conditions.append(
            or_(
                func.lower(Document.name).like(pattern),
                func.lower(func.coalesce(Document.description, "")).like(pattern),
            )
        )

    total = (
        await session.execute(select(func.count()).select_from(Document).where(*conditions))
    ).scalar_one()

    page = max(page, 1)
    limit = max(min(limit, 100), 1)
    documents = list(
        (
            await session.execute(
                select(Document)
                .where(*conditions)
                .order_by(Document.created_at.desc(), Document.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).scalars().all()
    )

    latest: dict[str, DocumentVersion] = {}
    if documents:
        rows = await session.execute(
            select(DocumentVersion)
            .where(DocumentVersion.document_id.in_([d.id for d in documents]))
            .order_by(DocumentVersion.version_number.desc())
        )
        for version in rows.scalars().all():
            latest.setdefault(version.document_id, version)

    return DocumentPage(
        items=[DocumentListing(document=d, latest_version=latest.get(d.id)) for d in documents],
        total=total,
        page=page,
        limit=limit,
    )


async def delete_document(
    session: AsyncSession,
    *,
    tenant_id: str,
    document_id: str,
    admin_user_id: str,
) -> None:
    """
    删除文档及其全部版本、片段和标签关联

    Raises:
        AuthorizationError: 调用者不是该租户管理员
        NotFoundError: 文档不存在
    """
    await require_admin(session, tenant_id=tenant_id, user_id=admin_user_id)
    document = await get_document(session, tenant_id=tenant_id, document_id=document_id)

    await session.execute(delete(Chunk).where(Chunk.document_id == document.id))
    document.active_version_id = None
    await session.flush()
    await session.execute(delete(DocumentVersion).where(DocumentVersion.document_id == document.id))
    await session.execute(
        delete(document_access_tags).where(document_access_tags.c.document_id == document.id)
    )
    await session.delete(document)
    await session.commit()

    logger.info(f"文档已删除: document={document_id} by={admin_user_id}")
