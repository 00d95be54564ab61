"""
SQLAlchemy ORM 基类定义

所有数据库模型都必须继承自这个 Base 类。
Base.metadata 收集所有模型的表结构信息，用于建表和生成迁移脚本。
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# 统一约束命名，保证 Alembic 迁移中的约束名稳定
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """
    声明式基类

    所有继承此类的模型会自动注册到 Base.metadata，
    并可通过 Base.metadata.create_all() 创建表。
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
