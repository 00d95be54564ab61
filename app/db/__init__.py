"""
数据库模块

- base.py    : SQLAlchemy 基类定义，所有 ORM 模型都继承自它
- session.py : 数据库会话管理（引擎、异步会话工厂）

使用 SQLAlchemy 2.0 异步模式（生产 asyncpg，测试 aiosqlite）。

典型使用方式：
    from app.db.session import get_db

    async def my_endpoint(db: AsyncSession = Depends(get_db)):
        result = await db.execute(select(Document))
        documents = result.scalars().all()
"""
