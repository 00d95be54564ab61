"""
初始化租户脚本

创建（或复用）租户、用户、成员关系，并为该用户签发一个 API Key。
API Key 只在此时显示一次，请妥善保存。

用法示例：
    python scripts/seed_tenant.py --subdomain acme --tenant-name "Acme" --email admin@acme.com
    python scripts/seed_tenant.py --subdomain acme --email alice@acme.com --role MEMBER --tag hr --tag finance
    python scripts/seed_tenant.py --subdomain acme --email admin@acme.com --create-tables
"""

import argparse
import asyncio

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.api_key import generate_api_key
from app.config import get_settings
from app.db.session import SessionLocal, init_models
from app.models import AccessTag, APIKey, MemberRole, Tenant, TenantMember, User, member_access_tags


async def get_or_create_tenant(session: AsyncSession, subdomain: str, name: str | None) -> Tenant:
    result = await session.execute(select(Tenant).where(Tenant.subdomain == subdomain))
    tenant = result.scalar_one_or_none()
    if tenant is None:
        tenant = Tenant(name=name or subdomain, subdomain=subdomain, status="active")
        session.add(tenant)
        await session.flush()
        print(f"Created tenant {subdomain} ({tenant.id})")
    return tenant


async def get_or_create_user(session: AsyncSession, email: str, name: str | None) -> User:
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=email, name=name)
        session.add(user)
        await session.flush()
        print(f"Created user {email} ({user.id})")
    return user


async def ensure_membership(session: AsyncSession, tenant: Tenant, user: User, role: str) -> TenantMember:
    result = await session.execute(
        select(TenantMember).where(
            TenantMember.tenant_id == tenant.id,
            TenantMember.user_id == user.id,
        )
    )
    member = result.scalar_one_or_none()
    if member is None:
        member = TenantMember(tenant_id=tenant.id, user_id=user.id, role=role)
        session.add(member)
    else:
        member.role = role
    await session.flush()
    return member


async def grant_tags(session: AsyncSession, tenant: Tenant, member: TenantMember, tag_names: list[str]) -> None:
    """按名称授予访问标签，标签不存在时创建"""
    for tag_name in tag_names:
        result = await session.execute(
            select(AccessTag).where(AccessTag.tenant_id == tenant.id, AccessTag.name == tag_name)
        )
        tag = result.scalar_one_or_none()
        if tag is None:
            tag = AccessTag(tenant_id=tenant.id, name=tag_name)
            session.add(tag)
            await session.flush()

        existing = await session.execute(
            select(member_access_tags.c.tag_id).where(
                member_access_tags.c.member_id == member.id,
                member_access_tags.c.tag_id == tag.id,
            )
        )
        if existing.first() is None:
            await session.execute(insert(member_access_tags).values(member_id=member.id, tag_id=tag.id))
        print(f"Granted tag {tag_name}")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Seed a tenant, a member and an API key")
    parser.add_argument("--subdomain", required=True, help="Tenant subdomain")
    parser.add_argument("--tenant-name", help="Tenant display name (defaults to subdomain)")
    parser.add_argument("--email", required=True, help="User email")
    parser.add_argument("--name", help="User display name")
    parser.add_argument("--role", choices=MemberRole.ALL, default=MemberRole.ADMIN, help="Member role")
    parser.add_argument("--tag", action="append", default=[], help="Access tag to grant (repeatable)")
    parser.add_argument("--key-name", default="seed", help="API key name")
    parser.add_argument("--create-tables", action="store_true", help="Create tables before seeding (dev only)")
    args = parser.parse_args()

    if args.create_tables:
        await init_models()

    async with SessionLocal() as session:
        tenant = await get_or_create_tenant(session, args.subdomain, args.tenant_name)
        user = await get_or_create_user(session, args.email, args.name)
        member = await ensure_membership(session, tenant, user, args.role)
        if args.tag:
            await grant_tags(session, tenant, member, args.tag)

        display_key, hashed_key, prefix = generate_api_key(get_settings().api_key_prefix)
        session.add(APIKey(user_id=user.id, name=args.key_name, prefix=prefix, hashed_key=hashed_key))
        await session.commit()

    print(f"Member {args.email} is {args.role} of {args.subdomain}")
    print(f"API key (shown once): {display_key}")


if __name__ == "__main__":
    asyncio.run(main())
