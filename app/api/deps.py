"""
API 依赖注入函数

所有 /v1/tenants/{subdomain}/... 路由共用的依赖项。

使用示例：
    @router.get("/example")
    async def example_endpoint(
        context: TenantContext = Depends(get_tenant_context),  # 租户边界
        db: AsyncSession = Depends(get_db_session),            # 数据库会话
    ):
        pass
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth.tenant import TenantContext, get_tenant_context, require_tenant_admin
from app.db.session import SessionLocal, get_db
from app.services.acl import UserContext, user_context_for_member


async def get_user_access(
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
) -> UserContext:
    """当前成员的访问上下文（角色 + 被授予的标签）"""
    return await user_context_for_member(db, context.member)


def get_session_factory() -> async_sessionmaker:
    """后台任务使用的会话工厂（请求结束后请求会话已关闭）"""
    return SessionLocal


# 重新导出，方便路由模块导入
get_db_session = get_db

__all__ = [
    "TenantContext",
    "get_db_session",
    "get_session_factory",
    "get_tenant_context",
    "get_user_access",
    "require_tenant_admin",
]
