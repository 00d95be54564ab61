"""测试数据构造函数"""

from dataclasses import dataclass

from sqlalchemy import insert

from app.auth.api_key import generate_api_key
from app.config import get_settings
from app.models import (
    AccessTag,
    APIKey,
    MemberRole,
    Tenant,
    TenantMember,
    User,
    document_access_tags,
    member_access_tags,
)
from app.services.version_store import SubmissionMetadata

HANDBOOK_TEXT = (
    "Refund policy\n\n"
    "Customers can request a refund within thirty days of purchase.\n\n"
    "Vacation policy\n\n"
    "Employees accrue two vacation days every month and may carry over five days."
)


@dataclass
class Seeded:
    """
    一个租户内的管理员和普通成员

    会话回滚后 ORM 对象会过期，异步会话里不能再同步读取属性；
    需要在失败之后继续调用服务的测试使用 *_id 字段。
    """
    tenant: Tenant
    admin: User
    admin_member: TenantMember
    member: User
    member_membership: TenantMember
    tenant_id: str
    admin_id: str
    member_id: str


async def create_tenant(session, subdomain: str, status: str = "active") -> Tenant:
    tenant = Tenant(name=subdomain.title(), subdomain=subdomain, status=status)
    session.add(tenant)
    await session.flush()
    return tenant


async def create_user(session, email: str) -> User:
    user = User(email=email, name=email.split("@")[0])
    session.add(user)
    await session.flush()
    return user


async def add_member(session, tenant: Tenant, user: User, role: str = MemberRole.MEMBER) -> TenantMember:
    member = TenantMember(tenant_id=tenant.id, user_id=user.id, role=role)
    session.add(member)
    await session.flush()
    return member


async def create_tag(session, tenant: Tenant, name: str) -> AccessTag:
    tag = AccessTag(tenant_id=tenant.id, name=name)
    session.add(tag)
    await session.flush()
    return tag


async def grant(session, member: TenantMember, tag: AccessTag) -> None:
    await session.execute(insert(member_access_tags).values(member_id=member.id, tag_id=tag.id))
    await session.flush()


async def tag_document(session, document_id: str, tag: AccessTag) -> None:
    await session.execute(insert(document_access_tags).values(document_id=document_id, tag_id=tag.id))
    await session.flush()


async def issue_api_key(session, user: User) -> str:
    display_key, hashed_key, prefix = generate_api_key(get_settings().api_key_prefix)
    session.add(APIKey(user_id=user.id, name="test", prefix=prefix, hashed_key=hashed_key))
    await session.flush()
    return display_key


def metadata(name: str = "Employee Handbook", description: str | None = "HR policies", **kwargs) -> SubmissionMetadata:
    return SubmissionMetadata(name=name, description=description, **kwargs)


def build_pdf(text: str) -> bytes:
    """生成单页 PDF，页面上用 Helvetica 写一行文本"""
    escaped = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
    stream = f"BT /F1 24 Tf 72 720 Td ({escaped}) Tj ET".encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length " + str(len(stream)).encode() + b" >>\nstream\n" + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_at = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_at}\n%%EOF\n".encode()
    return bytes(out)
