"""
租户边界 (Tenant Boundary Guard)

在任何业务逻辑之前执行：
1. 解析会话用户（API Key）
2. 按路径中的 {subdomain} 解析租户
3. 解析用户在该租户中的成员关系

租户不存在、已禁用或用户不是成员时一律返回 AuthorizationError，
不区分三种情况，避免泄露租户是否存在。

后续所有查询都必须使用 context.tenant.id，而不是客户端传入的任何租户标识。
"""

import logging
from dataclasses import dataclass

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.api_key import get_current_user
from app.db.session import get_db
from app.exceptions import AuthorizationError
from app.infra.logging import set_tenant_id
from app.models import Tenant, TenantMember, User

logger = logging.getLogger(__name__)


@dataclass
class TenantContext:
    """已解析的租户上下文：租户 + 用户 + 成员关系"""
    tenant: Tenant
    user: User
    member: TenantMember

    @property
    def tenant_id(self) -> str:
        return self.tenant.id

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.member.is_admin

    def require_admin(self) -> None:
        if not self.member.is_admin:
            raise AuthorizationError("Only administrators can perform this action")


async def resolve_tenant_context(
    session: AsyncSession,
    *,
    subdomain: str,
    user: User,
) -> TenantContext:
    """
    解析租户与成员关系

    Raises:
        AuthorizationError: 租户不存在、已禁用，或用户不是成员
    """
    row = (
        await session.execute(
            select(Tenant, TenantMember)
            .join(TenantMember, TenantMember.tenant_id == Tenant.id)
            .where(
                Tenant.subdomain == subdomain.lower(),
                TenantMember.user_id == user.id,
            )
        )
    ).one_or_none()

    if row is None:
        logger.info(f"租户访问被拒绝: subdomain={subdomain} user={user.id}")
        raise AuthorizationError("You do not have access to this tenant")

    tenant, member = row
    if tenant.status != "active":
        logger.info(f"租户已禁用: subdomain={subdomain}")
        raise AuthorizationError("You do not have access to this tenant")

    set_tenant_id(tenant.id)
    return TenantContext(tenant=tenant, user=user, member=member)


async def get_tenant_context(
    subdomain: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TenantContext:
    """FastAPI 依赖：路径参数 {subdomain} → TenantContext"""
    return await resolve_tenant_context(db, subdomain=subdomain, user=user)


async def require_tenant_admin(
    context: TenantContext = Depends(get_tenant_context),
) -> TenantContext:
    context.require_admin()
    return context
