"""
模型混入类 (Mixins)

提供可复用的模型字段，通过多重继承添加到具体模型中。

使用示例：
    class MyModel(TimestampMixin, Base):
        __tablename__ = "my_table"
        id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import DateTime, func
from sqlalchemy.orm import Mapped, mapped_column


def new_id() -> str:
    """生成 UUID 字符串主键（36 位标准格式）"""
    return str(uuid4())


def utcnow() -> datetime:
    """带时区的当前时间，用于审批/驳回时间戳"""
    return datetime.now(timezone.utc)


class TimestampMixin:
    """
    时间戳混入类

    - created_at: 记录创建时间，由数据库自动设置
    - updated_at: 记录最后更新时间，每次 UPDATE 时自动刷新

    INSERT / UPDATE 后立即取回数据库生成的时间戳，异步会话中读取属性不会触发懒加载
    """

    __mapper_args__ = {"eager_defaults": True}

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
