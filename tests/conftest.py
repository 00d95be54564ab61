"""
测试公共夹具

- 每个测试使用 tmp_path 下独立的 SQLite 文件库（多个会话共享同一库）
- Embedding 使用确定性哈希向量，不访问外部服务
"""

import os

# 设置测试环境变量（必须在导入 app 模块之前）
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ["ENVIRONMENT"] = "test"
os.environ["EMBEDDING_PROVIDER"] = "hash"
os.environ["EMBEDDING_DIM"] = "64"

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402

from app.config import get_settings  # noqa: E402
from app.db.session import build_engine, init_models  # noqa: E402
from app.models import MemberRole  # noqa: E402
from app.services.version_store import FileRef  # noqa: E402
from tests.factories import Seeded, add_member, create_tenant, create_user  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    db_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_models(db_engine)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture(autouse=True)
def settings(monkeypatch, tmp_path):
    """
    全局配置

    默认关闭管理员上传自动审批，需要的测试自行打开；
    源文件存储目录指向本测试的 tmp_path，不允许任何远程主机；
    通过 monkeypatch 修改的字段在测试结束后还原。
    """
    current = get_settings()
    monkeypatch.setattr(current, "auto_approve_admin_uploads", False)
    monkeypatch.setattr(current, "file_storage_root", str(tmp_path))
    monkeypatch.setattr(current, "file_allowed_hosts", [])
    return current


@pytest.fixture
async def seeded(session) -> Seeded:
    tenant = await create_tenant(session, "acme")
    admin = await create_user(session, "admin@acme.com")
    admin_member = await add_member(session, tenant, admin, MemberRole.ADMIN)
    member = await create_user(session, "alice@acme.com")
    member_membership = await add_member(session, tenant, member, MemberRole.MEMBER)
    await session.commit()
    return Seeded(
        tenant=tenant,
        admin=admin,
        admin_member=admin_member,
        member=member,
        member_membership=member_membership,
        tenant_id=tenant.id,
        admin_id=admin.id,
        member_id=member.id,
    )


@pytest.fixture
def make_file(tmp_path):
    """把内容写入临时文件，返回 file:// 形式的 FileRef"""
    counter = {"n": 0}

    def _make(content: str | bytes, mime_type: str = "text/plain", name: str | None = None) -> FileRef:
        counter["n"] += 1
        filename = name or f"doc_{counter['n']}.txt"
        path = tmp_path / filename
        data = content.encode("utf-8") if isinstance(content, str) else content
        path.write_bytes(data)
        return FileRef(url=path.as_uri(), original_name=filename, mime_type=mime_type, size=len(data))

    return _make
