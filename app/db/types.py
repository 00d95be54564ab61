"""
向量列类型与余弦距离

- PostgreSQL：列类型为 pgvector 的 vector，距离用 <=> 运算符在数据库内计算，
  向量以 "[x,y,...]" 字符串传递
- SQLite（测试/开发）：列以 JSON 数组存储，距离由连接上注册的
  vector_cosine_distance 函数计算（见 app.db.session.build_engine）

检索只需写一次：
    distance = cosine_distance(Chunk.embedding, bindparam("query_vector", vec, type_=EmbeddingVector()))
    select(...).order_by(distance).limit(top_k)
"""

import json

import numpy as np
from sqlalchemy import Float, JSON
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.functions import FunctionElement
from sqlalchemy.types import TypeDecorator, UserDefinedType


class PgVector(UserDefinedType):
    """pgvector 的 vector 类型，不指定维度时可存放任意维度"""

    cache_ok = True

    def __init__(self, dim: int | None = None):
        self.dim = dim

    def get_col_spec(self, **kw) -> str:
        return f"vector({self.dim})" if self.dim else "vector"


def format_vector(values: list[float]) -> str:
    return "[" + ",".join(str(float(x)) for x in values) + "]"


def parse_vector(value: str) -> list[float]:
    body = value.strip().lstrip("[").rstrip("]")
    if not body:
        return []
    return [float(x) for x in body.split(",")]


class EmbeddingVector(TypeDecorator):
    """PostgreSQL 上使用 vector，其他数据库回退为 JSON 数组"""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PgVector())
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return format_vector(value)
        return [float(x) for x in value]

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            return parse_vector(value)
        return [float(x) for x in value]


class cosine_distance(FunctionElement):
    """余弦距离（1 - 余弦相似度），越小越相似"""

    type = Float()
    inherit_cache = True


@compiles(cosine_distance)
def _compile_cosine_distance(element, compiler, **kw):
    return f"vector_cosine_distance({compiler.process(element.clauses, **kw)})"


@compiles(cosine_distance, "postgresql")
def _compile_cosine_distance_pg(element, compiler, **kw):
    left, right = list(element.clauses)
    return f"({compiler.process(left, **kw)} <=> {compiler.process(right, **kw)})"


def sqlite_cosine_distance(left: str | None, right: str | None) -> float | None:
    """
    SQLite 自定义函数：两个 JSON 数组之间的余弦距离

    维度不同返回 NULL；任一方为零向量时相似度记为 0（距离 1）。
    """
    if left is None or right is None:
        return None
    a = np.asarray(json.loads(left), dtype=np.float64)
    b = np.asarray(json.loads(right), dtype=np.float64)
    if a.shape != b.shape:
        return None
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    if denom == 0:
        return 1.0
    return float(1.0 - np.dot(a, b) / denom)
