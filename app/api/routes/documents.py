"""
文档管理接口

文档提交、版本历史、审批、驳回、活动版本切换和删除。
所有接口都在租户边界之内：/v1/tenants/{subdomain}/documents/...

审批流程：
    POST .../versions/{version_id}/approve
      → 摄取（抽取 → 前缀 → 切分 → 向量化 → 写片段）
      → 成功后才把版本置为 APPROVED
      → 失败时版本保持 PENDING，返回 {error, details}
"""

import logging
import math

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.deps import TenantContext, get_db_session, get_session_factory, get_tenant_context
from app.models import DocumentVersion, IngestionStatus
from app.schemas import (
    ApprovalAcceptedResponse,
    ApprovalErrorInfo,
    ApproveResponse,
    DocumentListResponse,
    DocumentResponse,
    DocumentSubmitRequest,
    RejectRequest,
    SubmitResponse,
    VersionListResponse,
    VersionResponse,
    VersionSubmitRequest,
)
from app.services import approval, version_store
from app.services.version_store import FileRef, SubmissionMetadata

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/tenants/{subdomain}")


def _version_response(version: DocumentVersion, active_version_id: str | None = None) -> VersionResponse:
    data = VersionResponse.model_validate(version)
    data.is_active = active_version_id is not None and version.id == active_version_id
    return data


def _submit_response(outcome: approval.SubmissionOutcome) -> SubmitResponse:
    version = outcome.version
    error = None
    if outcome.approval_error is not None:
        error = ApprovalErrorInfo(code=outcome.approval_error.code, detail=outcome.approval_error.message)
    return SubmitResponse(
        document_id=version.document_id,
        version=_version_response(version, version.id if outcome.auto_approved else None),
        auto_approved=outcome.auto_approved,
        approval_error=error,
    )


@router.post("/documents", response_model=SubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_document(
    payload: DocumentSubmitRequest,
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db_session),
) -> SubmitResponse:
    """
    提交新文档，创建版本 1（PENDING）

    管理员上传且开启 auto_approve_admin_uploads 时立即摄取并审批。
    """
    outcome = await approval.submit_document(
        db,
        tenant_id=context.tenant_id,
        user_id=context.user_id,
        file=FileRef(
            url=payload.file.url,
            original_name=payload.file.original_name,
            mime_type=payload.file.mime_type,
            size=payload.file.size,
        ),
        metadata=SubmissionMetadata(
            name=payload.name,
            description=payload.description,
            change_notes=payload.change_notes,
            access_tag_ids=payload.access_tag_ids,
        ),
    )
    return _submit_response(outcome)


@router.get("/documents", response_model=DocumentListResponse)
async def list_documents(
    status_filter: str | None = Query(default=None, alias="status", description="PENDING/APPROVED/REJECTED"),
    search: str | None = Query(default=None, description="按标题/描述搜索"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db_session),
) -> DocumentListResponse:
    """列出当前用户可见的文档（无权访问的文档被过滤）"""
    result = await version_store.list_documents(
        db,
        tenant_id=context.tenant_id,
        user_id=context.user_id,
        status=status_filter,
        search=search,
        page=page,
        limit=limit,
    )

    items = []
    for listing in result.items:
        doc = DocumentResponse.model_validate(listing.document)
        if listing.latest_version is not None:
            doc.latest_version = _version_response(
                listing.latest_version, listing.document.active_version_id
            )
        items.append(doc)

    return DocumentListResponse(
        items=items,
        total=result.total,
        page=result.page,
        limit=result.limit,
        pages=math.ceil(result.total / result.limit) if result.total else 0,
    )


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: str = Path(..., description="Document ID"),
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    """删除文档及其所有版本和片段（仅管理员）"""
    await version_store.delete_document(
        db,
        tenant_id=context.tenant_id,
        document_id=document_id,
        admin_user_id=context.user_id,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/documents/{document_id}/versions",
    response_model=SubmitResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_version(
    payload: VersionSubmitRequest,
    document_id: str = Path(..., description="Document ID"),
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db_session),
) -> SubmitResponse:
    """对已有文档提交新版本（已有 PENDING 版本时返回 409）"""
    outcome = await approval.submit_document(
        db,
        tenant_id=context.tenant_id,
        user_id=context.user_id,
        file=FileRef(
            url=payload.file.url,
            original_name=payload.file.original_name,
            mime_type=payload.file.mime_type,
            size=payload.file.size,
        ),
        metadata=SubmissionMetadata(change_notes=payload.change_notes),
        document_id=document_id,
    )
    return _submit_response(outcome)


@router.get("/documents/{document_id}/versions", response_model=VersionListResponse)
async def list_versions(
    document_id: str = Path(..., description="Document ID"),
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db_session),
) -> VersionListResponse:
    """版本历史（含摄取进度 ingestion_status）"""
    document, versions = await version_store.list_versions(
        db,
        tenant_id=context.tenant_id,
        user_id=context.user_id,
        document_id=document_id,
    )
    return VersionListResponse(
        document_id=document.id,
        document_name=document.name,
        current_version=document.current_version,
        active_version_id=document.active_version_id,
        versions=[_version_response(v, document.active_version_id) for v in versions],
    )


@router.post(
    "/documents/{document_id}/versions/{version_id}/approve",
    response_model=ApproveResponse | ApprovalAcceptedResponse,
)
async def approve_version(
    response: Response,
    background_tasks: BackgroundTasks,
    document_id: str = Path(..., description="Document ID"),
    version_id: str = Path(..., description="Version ID"),
    background: bool = Query(default=False, description="后台执行摄取，立即返回 202"),
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db_session),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> ApproveResponse | ApprovalAcceptedResponse:
    """
    审批版本（仅管理员）

    先摄取，摄取成功后才审批并切换活动版本。
    - background=false：请求内完成，失败返回 500 + {error, details}，版本保持 PENDING
    - background=true：占用版本后立即返回 202，进度见版本列表的 ingestion_status
    """
    context.require_admin()

    if background:
        await approval.claim_for_approval(
            db,
            tenant_id=context.tenant_id,
            document_id=document_id,
            version_id=version_id,
            admin_user_id=context.user_id,
        )
        background_tasks.add_task(
            approval.run_background_approval,
            session_factory,
            tenant_id=context.tenant_id,
            document_id=document_id,
            version_id=version_id,
            admin_user_id=context.user_id,
        )
        logger.info(f"已提交后台审批任务: document={document_id} version={version_id}")
        response.status_code = status.HTTP_202_ACCEPTED
        return ApprovalAcceptedResponse(
            message="Approval accepted. The version will be approved once ingestion succeeds.",
            version_id=version_id,
            ingestion_status=IngestionStatus.PROCESSING,
        )

    outcome = await approval.approve_version(
        db,
        tenant_id=context.tenant_id,
        document_id=document_id,
        version_id=version_id,
        admin_user_id=context.user_id,
    )
    return ApproveResponse(
        message="Version approved and processed successfully",
        version=_version_response(outcome.version, outcome.version.id),
        chunk_count=outcome.ingestion.chunk_count,
    )


@router.post(
    "/documents/{document_id}/versions/{version_id}/activate",
    response_model=VersionResponse,
)
async def activate_version(
    document_id: str = Path(..., description="Document ID"),
    version_id: str = Path(..., description="Version ID"),
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db_session),
) -> VersionResponse:
    """把活动版本切换到另一个已审批版本（仅管理员）"""
    version = await version_store.activate(
        db,
        tenant_id=context.tenant_id,
        document_id=document_id,
        version_id=version_id,
        admin_user_id=context.user_id,
    )
    return _version_response(version, version.id)


@router.post("/documents/{document_id}/reject", response_model=VersionResponse)
async def reject_document(
    payload: RejectRequest,
    document_id: str = Path(..., description="Document ID"),
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db_session),
) -> VersionResponse:
    """驳回文档的 PENDING 版本（仅管理员，原因必填），不影响当前活动版本"""
    version = await version_store.reject(
        db,
        tenant_id=context.tenant_id,
        document_id=document_id,
        reason=payload.reason,
        admin_user_id=context.user_id,
    )
    return _version_response(version)
