"""
数据库会话管理

这个模块负责：
1. 创建数据库引擎（连接池）
2. 提供异步会话工厂
3. 实现 FastAPI 依赖注入的数据库会话获取函数

使用方式（在 FastAPI 路由中）：
    from app.db.session import get_db

    @router.get("/documents")
    async def list_documents(db: AsyncSession = Depends(get_db)):
        ...
"""

from collections.abc import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings
from app.db.base import Base
from app.db.types import sqlite_cosine_distance

settings = get_settings()


def build_engine(database_url: str) -> AsyncEngine:
    """
    根据连接串创建异步引擎

    - PostgreSQL：启用连接池参数（生产环境）
    - SQLite：测试/开发使用，打开外键约束（SQLite 默认不校验外键），
      并注册向量检索用的 vector_cosine_distance 函数
    """
    if database_url.startswith("sqlite"):
        sqlite_engine = create_async_engine(database_url, echo=False, future=True)

        @event.listens_for(sqlite_engine.sync_engine, "connect")
        def _on_connect(dbapi_connection, _):  # pragma: no cover - 驱动回调
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
            dbapi_connection.create_function("vector_cosine_distance", 2, sqlite_cosine_distance)

        return sqlite_engine

    return create_async_engine(
        database_url,
        echo=False,
        future=True,
        pool_pre_ping=True,     # 取连接前先探活，避免使用已断开的连接
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=1800,      # 防止数据库端超时断开
    )


engine = build_engine(settings.database_url)

# 提交后不自动过期对象，便于在提交后继续读取属性
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    获取数据库会话（FastAPI 依赖注入函数）

    每个请求一个独立会话，请求结束后自动关闭。
    """
    async with SessionLocal() as session:
        yield session


async def init_models(target: AsyncEngine | None = None) -> None:
    """
    初始化数据库表（仅开发/测试环境使用）

    生产环境应该使用 Alembic 进行数据库迁移。
    """
    from app import models  # noqa: F401

    async with (target or engine).begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)
