"""
文档版本存储测试

测试 app/services/version_store.py：
- 提交新文档 / 新版本，版本号单调递增
- 每个文档最多一个 PENDING 版本
- 驳回（原因必填，不影响活动版本）
- 活动版本切换、版本列表、文档列表、删除
"""

import pytest
from sqlalchemy import func, select

from app.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidFileLocationError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
)
from app.models import Chunk, Document, DocumentStatus, DocumentVersion, IngestionStatus
from app.services import version_store
from app.services.approval import approve_version
from app.services.version_store import FileRef, SubmissionMetadata
from tests.factories import HANDBOOK_TEXT, create_tag, create_user, metadata


async def _submit(session, seeded, make_file, *, user=None, document_id=None, text=HANDBOOK_TEXT):
    return await version_store.submit(
        session,
        tenant_id=seeded.tenant.id,
        user_id=(user or seeded.member).id,
        file=make_file(text),
        metadata=metadata() if document_id is None else SubmissionMetadata(change_notes="update"),
        document_id=document_id,
    )


async def _approve(session, seeded, version):
    return await approve_version(
        session,
        tenant_id=seeded.tenant.id,
        document_id=version.document_id,
        version_id=version.id,
        admin_user_id=seeded.admin.id,
    )


class TestSubmit:
    """测试提交"""

    @pytest.mark.asyncio
    async def test_new_document_creates_pending_version_one(self, session, seeded, make_file):
        """新文档创建版本 1，状态 PENDING，未摄取"""
        version = await _submit(session, seeded, make_file)

        assert version.version_number == 1
        assert version.status == DocumentStatus.PENDING
        assert version.ingestion_status == IngestionStatus.IDLE
        assert version.uploaded_by == seeded.member.id

        document = await session.get(Document, version.document_id)
        assert document.status == DocumentStatus.PENDING
        assert document.active_version_id is None
        assert document.current_version == 1
        assert document.tenant_id == seeded.tenant.id

    @pytest.mark.asyncio
    async def test_second_submission_while_pending_conflicts(self, session, seeded, make_file):
        """已有 PENDING 版本时再提交返回冲突"""
        version = await _submit(session, seeded, make_file)

        with pytest.raises(ConflictError):
            await _submit(session, seeded, make_file, document_id=version.document_id)

        count = (
            await session.execute(
                select(func.count()).select_from(DocumentVersion).where(
                    DocumentVersion.document_id == version.document_id
                )
            )
        ).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_resubmit_after_rejection_increments_version(self, session, seeded, make_file):
        """驳回后可以重新提交，版本号不重置"""
        first = await _submit(session, seeded, make_file)
        await version_store.reject(
            session,
            tenant_id=seeded.tenant.id,
            document_id=first.document_id,
            reason="Outdated numbers",
            admin_user_id=seeded.admin.id,
        )

        second = await _submit(session, seeded, make_file, document_id=first.document_id)

        assert second.version_number == 2
        assert second.status == DocumentStatus.PENDING
        document = await session.get(Document, first.document_id)
        await session.refresh(document)
        assert document.status == DocumentStatus.PENDING

    @pytest.mark.asyncio
    async def test_unsupported_mime_rejected_before_any_write(self, session, seeded, make_file):
        """不支持的 MIME 类型直接拒绝，不创建文档"""
        with pytest.raises(InvalidRequestError):
            await version_store.submit(
                session,
                tenant_id=seeded.tenant.id,
                user_id=seeded.member.id,
                file=make_file(b"\x00\x01", mime_type="image/png", name="logo.png"),
                metadata=metadata(),
            )

        count = (await session.execute(select(func.count()).select_from(Document))).scalar_one()
        assert count == 0

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, session, seeded, make_file):
        with pytest.raises(InvalidRequestError):
            await version_store.submit(
                session,
                tenant_id=seeded.tenant.id,
                user_id=seeded.member.id,
                file=make_file(HANDBOOK_TEXT),
                metadata=metadata(name="   "),
            )

    @pytest.mark.asyncio
    async def test_oversized_file_rejected(self, session, seeded, settings):
        file = FileRef(
            url="file:///tmp/huge.txt",
            original_name="huge.txt",
            mime_type="text/plain",
            size=settings.max_file_size_bytes + 1,
        )
        with pytest.raises(InvalidRequestError):
            await version_store.submit(
                session,
                tenant_id=seeded.tenant.id,
                user_id=seeded.member.id,
                file=file,
                metadata=metadata(),
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "make_url",
        [
            lambda root, outside: str(outside),
            lambda root, outside: outside.as_uri(),
            lambda root, outside: f"file://{root}/../{outside.parent.name}/{outside.name}",
            lambda root, outside: "https://attacker.example.com/handbook.txt",
            lambda root, outside: "ftp://files.example.com/handbook.txt",
        ],
        ids=["bare-path", "outside-root", "dotdot-escape", "host-not-allowed", "unsupported-scheme"],
    )
    async def test_file_location_rejected_before_any_write(
        self, session, seeded, tmp_path, tmp_path_factory, make_url
    ):
        """源文件位置不在存储目录内或主机不在允许列表：直接拒绝，不创建文档"""
        outside = tmp_path_factory.mktemp("outside") / "server_secret.env"
        outside.write_text("DATABASE_PASSWORD=hunter2")
        file = FileRef(
            url=make_url(tmp_path, outside),
            original_name="handbook.txt",
            mime_type="text/plain",
            size=24,
        )

        with pytest.raises(InvalidFileLocationError):
            await version_store.submit(
                session,
                tenant_id=seeded.tenant_id,
                user_id=seeded.member_id,
                file=file,
                metadata=metadata(),
            )

        count = (await session.execute(select(func.count()).select_from(Document))).scalar_one()
        assert count == 0

    @pytest.mark.asyncio
    async def test_allowed_host_accepted(self, session, seeded, settings, monkeypatch):
        monkeypatch.setattr(settings, "file_allowed_hosts", ["files.example.com"])
        file = FileRef(
            url="https://files.example.com/handbook.txt",
            original_name="handbook.txt",
            mime_type="text/plain",
            size=24,
        )

        version = await version_store.submit(
            session,
            tenant_id=seeded.tenant_id,
            user_id=seeded.member_id,
            file=file,
            metadata=metadata(),
        )

        assert version.file_url == "https://files.example.com/handbook.txt"
        assert version.status == DocumentStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_access_tag_rejected(self, session, seeded, make_file):
        with pytest.raises(InvalidRequestError):
            await version_store.submit(
                session,
                tenant_id=seeded.tenant.id,
                user_id=seeded.member.id,
                file=make_file(HANDBOOK_TEXT),
                metadata=metadata(access_tag_ids=["no-such-tag"]),
            )

    @pytest.mark.asyncio
    async def test_non_member_cannot_submit(self, session, seeded, make_file):
        stranger = await create_user(session, "eve@other.com")
        await session.commit()

        with pytest.raises(AuthorizationError):
            await _submit(session, seeded, make_file, user=stranger)


class TestReject:
    """测试驳回"""

    @pytest.mark.asyncio
    async def test_empty_reason_is_validation_error_and_nothing_changes(self, session, seeded, make_file):
        """驳回原因为空：校验错误，版本保持 PENDING"""
        version = await _submit(session, seeded, make_file)

        for reason in ("", "   "):
            with pytest.raises(InvalidRequestError):
                await version_store.reject(
                    session,
                    tenant_id=seeded.tenant.id,
                    document_id=version.document_id,
                    reason=reason,
                    admin_user_id=seeded.admin.id,
                )

        await session.refresh(version)
        assert version.status == DocumentStatus.PENDING
        assert version.rejection_reason is None

    @pytest.mark.asyncio
    async def test_reject_sets_reason_and_document_status(self, session, seeded, make_file):
        version = await _submit(session, seeded, make_file)

        rejected = await version_store.reject(
            session,
            tenant_id=seeded.tenant.id,
            document_id=version.document_id,
            reason="  Missing appendix  ",
            admin_user_id=seeded.admin.id,
        )

        assert rejected.status == DocumentStatus.REJECTED
        assert rejected.rejection_reason == "Missing appendix"
        assert rejected.rejected_by == seeded.admin.id
        assert rejected.rejected_at is not None

        document = await session.get(Document, version.document_id)
        assert document.status == DocumentStatus.REJECTED
        assert document.active_version_id is None

    @pytest.mark.asyncio
    async def test_member_cannot_reject(self, session, seeded, make_file):
        version = await _submit(session, seeded, make_file)

        with pytest.raises(AuthorizationError):
            await version_store.reject(
                session,
                tenant_id=seeded.tenant.id,
                document_id=version.document_id,
                reason="nope",
                admin_user_id=seeded.member.id,
            )

    @pytest.mark.asyncio
    async def test_reject_without_pending_version_is_invalid_state(self, session, seeded, make_file):
        version = await _submit(session, seeded, make_file)
        await version_store.reject(
            session,
            tenant_id=seeded.tenant.id,
            document_id=version.document_id,
            reason="first",
            admin_user_id=seeded.admin.id,
        )

        with pytest.raises(InvalidStateError):
            await version_store.reject(
                session,
                tenant_id=seeded.tenant.id,
                document_id=version.document_id,
                reason="again",
                admin_user_id=seeded.admin.id,
            )

    @pytest.mark.asyncio
    async def test_reject_new_version_keeps_previous_active(self, session, seeded, make_file):
        """驳回新版本后，之前审批通过的版本继续提供服务"""
        v1 = await _submit(session, seeded, make_file)
        await _approve(session, seeded, v1)

        v2 = await _submit(session, seeded, make_file, document_id=v1.document_id, text="Revised handbook text")
        await version_store.reject(
            session,
            tenant_id=seeded.tenant.id,
            document_id=v1.document_id,
            reason="Wrong figures",
            admin_user_id=seeded.admin.id,
        )

        active = await version_store.get_active(
            session, tenant_id=seeded.tenant.id, document_id=v1.document_id
        )
        assert active is not None
        assert active.id == v1.id

        document = await session.get(Document, v1.document_id)
        await session.refresh(document)
        assert document.status == DocumentStatus.APPROVED

        await session.refresh(v2)
        assert v2.status == DocumentStatus.REJECTED
        v2_chunks = (
            await session.execute(
                select(func.count()).select_from(Chunk).where(Chunk.document_version_id == v2.id)
            )
        ).scalar_one()
        assert v2_chunks == 0


class TestActivate:
    """测试活动版本切换"""

    @pytest.mark.asyncio
    async def test_activate_previous_approved_version(self, session, seeded, make_file):
        v1 = await _submit(session, seeded, make_file)
        await _approve(session, seeded, v1)
        v2 = await _submit(session, seeded, make_file, document_id=v1.document_id, text="Second edition")
        await _approve(session, seeded, v2)

        await version_store.activate(
            session,
            tenant_id=seeded.tenant.id,
            document_id=v1.document_id,
            version_id=v1.id,
            admin_user_id=seeded.admin.id,
        )

        active = await version_store.get_active(
            session, tenant_id=seeded.tenant.id, document_id=v1.document_id
        )
        assert active.id == v1.id

    @pytest.mark.asyncio
    async def test_activate_pending_version_is_invalid_state(self, session, seeded, make_file):
        version = await _submit(session, seeded, make_file)

        with pytest.raises(InvalidStateError):
            await version_store.activate(
                session,
                tenant_id=seeded.tenant.id,
                document_id=version.document_id,
                version_id=version.id,
                admin_user_id=seeded.admin.id,
            )


class TestQueries:
    """测试版本列表、文档列表和删除"""

    @pytest.mark.asyncio
    async def test_list_versions_newest_first(self, session, seeded, make_file):
        v1 = await _submit(session, seeded, make_file)
        await _approve(session, seeded, v1)
        await _submit(session, seeded, make_file, document_id=v1.document_id, text="Second edition")

        document, versions = await version_store.list_versions(
            session,
            tenant_id=seeded.tenant.id,
            user_id=seeded.member.id,
            document_id=v1.document_id,
        )

        assert document.id == v1.document_id
        assert [v.version_number for v in versions] == [2, 1]
        assert versions[0].status == DocumentStatus.PENDING
        assert versions[1].status == DocumentStatus.APPROVED

    @pytest.mark.asyncio
    async def test_list_documents_filters_by_status_and_access(self, session, seeded, make_file):
        public = await _submit(session, seeded, make_file)
        await _approve(session, seeded, public)

        tag = await create_tag(session, seeded.tenant, "finance")
        await session.commit()
        await version_store.submit(
            session,
            tenant_id=seeded.tenant.id,
            user_id=seeded.admin.id,
            file=make_file("Quarterly budget"),
            metadata=metadata(name="Budget", description=None, access_tag_ids=[tag.id]),
        )

        member_page = await version_store.list_documents(
            session, tenant_id=seeded.tenant.id, user_id=seeded.member.id
        )
        assert [item.document.name for item in member_page.items] == ["Employee Handbook"]
        assert member_page.total == 1

        admin_page = await version_store.list_documents(
            session, tenant_id=seeded.tenant.id, user_id=seeded.admin.id, status=DocumentStatus.PENDING
        )
        assert [item.document.name for item in admin_page.items] == ["Budget"]
        assert admin_page.items[0].latest_version.version_number == 1

    @pytest.mark.asyncio
    async def test_list_documents_rejects_unknown_status(self, session, seeded):
        with pytest.raises(InvalidRequestError):
            await version_store.list_documents(
                session, tenant_id=seeded.tenant.id, user_id=seeded.member.id, status="ARCHIVED"
            )

    @pytest.mark.asyncio
    async def test_delete_document_removes_versions_and_chunks(self, session, seeded, make_file):
        version = await _submit(session, seeded, make_file)
        await _approve(session, seeded, version)

        await version_store.delete_document(
            session,
            tenant_id=seeded.tenant.id,
            document_id=version.document_id,
            admin_user_id=seeded.admin.id,
        )

        assert (await session.execute(select(func.count()).select_from(DocumentVersion))).scalar_one() == 0
        assert (await session.execute(select(func.count()).select_from(Chunk))).scalar_one() == 0
        with pytest.raises(NotFoundError):
            await version_store.get_document(
                session, tenant_id=seeded.tenant.id, document_id=version.document_id
            )
