"""
访问标签服务测试

测试 app/services/acl.py：
- 纯函数 check_document_access（角色短路 + 标签交集）
- can_access：无成员关系、跨租户时拒绝
- build_access_filter：列表查询只过滤不报错
"""

import pytest
from sqlalchemy import select

from app.models import Document, MemberRole
from app.services import version_store
from app.services.acl import (
    DocumentACL,
    UserContext,
    build_access_filter,
    can_access,
    check_document_access,
    load_user_context,
)
from tests.factories import (
    HANDBOOK_TEXT,
    add_member,
    create_tag,
    create_tenant,
    create_user,
    grant,
    metadata,
)


class TestCheckDocumentAccess:
    """测试纯函数访问检查"""

    def test_admin_short_circuits(self):
        """管理员可以访问任何文档，与标签无关"""
        admin = UserContext(user_id="u1", member_id="m1", is_admin=True)
        doc = DocumentACL(document_id="d1", required_tag_ids=frozenset({"hr"}))

        assert check_document_access(admin, doc) is True

    def test_untagged_document_visible_to_all_members(self):
        member = UserContext(user_id="u2", member_id="m2")
        doc = DocumentACL(document_id="d1")

        assert check_document_access(member, doc) is True

    def test_tag_intersection_grants_access(self):
        member = UserContext(user_id="u2", member_id="m2", tag_ids=frozenset({"finance", "hr"}))
        doc = DocumentACL(document_id="d1", required_tag_ids=frozenset({"hr", "legal"}))

        assert check_document_access(member, doc) is True

    def test_disjoint_tags_denied(self):
        member = UserContext(user_id="u2", member_id="m2", tag_ids=frozenset({"finance"}))
        doc = DocumentACL(document_id="d1", required_tag_ids=frozenset({"hr"}))

        assert check_document_access(member, doc) is False

    def test_member_without_tags_denied_on_tagged_document(self):
        member = UserContext(user_id="u2", member_id="m2")
        doc = DocumentACL(document_id="d1", required_tag_ids=frozenset({"hr"}))

        assert check_document_access(member, doc) is False


@pytest.fixture
async def hr_document(session, seeded, make_file):
    """带 HR 标签的文档"""
    hr = await create_tag(session, seeded.tenant, "HR")
    await session.commit()
    version = await version_store.submit(
        session,
        tenant_id=seeded.tenant.id,
        user_id=seeded.admin.id,
        file=make_file(HANDBOOK_TEXT),
        metadata=metadata(access_tag_ids=[hr.id]),
    )
    return hr, version.document_id


class TestCanAccess:
    """测试数据库版本的访问检查"""

    @pytest.mark.asyncio
    async def test_tagged_document_scenario(self, session, seeded, hr_document):
        """文档带 HR 标签：未授予 HR 的成员拒绝，授予后允许，管理员始终允许"""
        hr, document_id = hr_document
        tenant_id = seeded.tenant.id

        assert await can_access(session, user_id=seeded.member.id, tenant_id=tenant_id, document_id=document_id) is False
        assert await can_access(session, user_id=seeded.admin.id, tenant_id=tenant_id, document_id=document_id) is True

        await grant(session, seeded.member_membership, hr)
        await session.commit()

        assert await can_access(session, user_id=seeded.member.id, tenant_id=tenant_id, document_id=document_id) is True

    @pytest.mark.asyncio
    async def test_non_member_denied(self, session, seeded, hr_document):
        """没有成员关系时拒绝（fail closed）"""
        _, document_id = hr_document
        stranger = await create_user(session, "eve@example.com")
        await session.commit()

        assert await can_access(
            session, user_id=stranger.id, tenant_id=seeded.tenant.id, document_id=document_id
        ) is False

    @pytest.mark.asyncio
    async def test_cross_tenant_document_denied(self, session, seeded, hr_document):
        """其他租户的管理员不能访问本租户文档"""
        _, document_id = hr_document
        other = await create_tenant(session, "globex")
        await add_member(session, other, seeded.admin, MemberRole.ADMIN)
        await session.commit()

        assert await can_access(
            session, user_id=seeded.admin.id, tenant_id=other.id, document_id=document_id
        ) is False

    @pytest.mark.asyncio
    async def test_unknown_document_denied(self, session, seeded):
        assert await can_access(
            session, user_id=seeded.admin.id, tenant_id=seeded.tenant.id, document_id="missing"
        ) is False


class TestBuildAccessFilter:
    """测试列表过滤条件"""

    @pytest.mark.asyncio
    async def test_member_sees_only_untagged_and_granted(self, session, seeded, make_file, hr_document):
        hr, hr_doc_id = hr_document
        finance = await create_tag(session, seeded.tenant, "Finance")
        await grant(session, seeded.member_membership, finance)
        await session.commit()

        public = await version_store.submit(
            session,
            tenant_id=seeded.tenant.id,
            user_id=seeded.admin.id,
            file=make_file("Office hours"),
            metadata=metadata(name="Office", description=None),
        )
        budget = await version_store.submit(
            session,
            tenant_id=seeded.tenant.id,
            user_id=seeded.admin.id,
            file=make_file("Budget"),
            metadata=metadata(name="Budget", description=None, access_tag_ids=[finance.id]),
        )

        user = await load_user_context(session, tenant_id=seeded.tenant.id, user_id=seeded.member.id)
        rows = await session.execute(
            select(Document.id).where(Document.tenant_id == seeded.tenant.id, build_access_filter(user))
        )
        visible = set(rows.scalars().all())

        assert visible == {public.document_id, budget.document_id}
        assert hr_doc_id not in visible

    @pytest.mark.asyncio
    async def test_admin_filter_is_unrestricted(self, session, seeded, hr_document):
        _, hr_doc_id = hr_document
        admin = await load_user_context(session, tenant_id=seeded.tenant.id, user_id=seeded.admin.id)

        rows = await session.execute(
            select(Document.id).where(Document.tenant_id == seeded.tenant.id, build_access_filter(admin))
        )
        assert set(rows.scalars().all()) == {hr_doc_id}
