"""
租户边界测试

测试 app/auth/tenant.py：
- 租户不存在、已禁用、非成员一律 AuthorizationError（不区分原因）
- 服务层按 tenant_id 隔离：其他租户的文档表现为不存在
"""

import pytest

from app.auth.tenant import resolve_tenant_context
from app.exceptions import AuthorizationError, NotFoundError
from app.infra.logging import get_tenant_id
from app.models import MemberRole
from app.services import version_store
from tests.factories import HANDBOOK_TEXT, add_member, create_tenant, create_user, metadata


class TestResolveTenantContext:
    """测试租户上下文解析"""

    @pytest.mark.asyncio
    async def test_member_resolves_context(self, session, seeded):
        context = await resolve_tenant_context(session, subdomain="acme", user=seeded.member)

        assert context.tenant_id == seeded.tenant.id
        assert context.user_id == seeded.member.id
        assert context.is_admin is False
        assert get_tenant_id() == seeded.tenant.id

    @pytest.mark.asyncio
    async def test_subdomain_is_case_insensitive(self, session, seeded):
        context = await resolve_tenant_context(session, subdomain="ACME", user=seeded.admin)

        assert context.is_admin is True

    @pytest.mark.asyncio
    async def test_member_cannot_require_admin(self, session, seeded):
        context = await resolve_tenant_context(session, subdomain="acme", user=seeded.member)

        with pytest.raises(AuthorizationError):
            context.require_admin()

    @pytest.mark.asyncio
    async def test_unknown_tenant_forbidden(self, session, seeded):
        with pytest.raises(AuthorizationError) as exc_info:
            await resolve_tenant_context(session, subdomain="nowhere", user=seeded.admin)

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_non_member_forbidden_with_same_message(self, session, seeded):
        """非成员与租户不存在返回同样的错误，不泄露租户是否存在"""
        await create_tenant(session, "globex")
        await session.commit()

        with pytest.raises(AuthorizationError) as not_member:
            await resolve_tenant_context(session, subdomain="globex", user=seeded.member)
        with pytest.raises(AuthorizationError) as missing:
            await resolve_tenant_context(session, subdomain="nowhere", user=seeded.member)

        assert not_member.value.message == missing.value.message

    @pytest.mark.asyncio
    async def test_disabled_tenant_forbidden(self, session, seeded):
        disabled = await create_tenant(session, "initech", status="disabled")
        await add_member(session, disabled, seeded.admin, MemberRole.ADMIN)
        await session.commit()

        with pytest.raises(AuthorizationError):
            await resolve_tenant_context(session, subdomain="initech", user=seeded.admin)


class TestCrossTenantIsolation:
    """测试跨租户访问"""

    @pytest.mark.asyncio
    async def test_admin_of_other_tenant_cannot_touch_document(self, session, seeded, make_file):
        version = await version_store.submit(
            session,
            tenant_id=seeded.tenant.id,
            user_id=seeded.member.id,
            file=make_file(HANDBOOK_TEXT),
            metadata=metadata(),
        )

        other = await create_tenant(session, "globex")
        other_admin = await create_user(session, "root@globex.com")
        await add_member(session, other, other_admin, MemberRole.ADMIN)
        await session.commit()

        with pytest.raises(NotFoundError):
            await version_store.reject(
                session,
                tenant_id=other.id,
                document_id=version.document_id,
                reason="not yours",
                admin_user_id=other_admin.id,
            )

        with pytest.raises(NotFoundError):
            await version_store.list_versions(
                session,
                tenant_id=other.id,
                user_id=other_admin.id,
                document_id=version.document_id,
            )

        page = await version_store.list_documents(session, tenant_id=other.id, user_id=other_admin.id)
        assert page.total == 0
