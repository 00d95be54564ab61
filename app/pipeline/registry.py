"""
算法注册表

提供抽取器、切分器的注册和发现机制。

使用方式：
1. 通过装饰器注册：
   @register_operator("extractor", "pdf")
   class PdfExtractor: ...

2. 通过注册表获取：
   chunker_cls = operator_registry.get("chunker", "paragraph")
   instance = chunker_cls(chunk_size=1000)
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable


class OperatorRegistry:
    """按 kind（类型）和 name（名称）两级索引管理算法组件"""

    def __init__(self) -> None:
        # kind -> name -> operator_class，保留注册顺序
        self._operators: dict[str, dict[str, Any]] = defaultdict(dict)

    def register(self, kind: str, name: str, op: Any) -> None:
        self._operators[kind][name] = op

    def get(self, kind: str, name: str) -> Any:
        return self._operators.get(kind, {}).get(name)

    def list(self, kind: str) -> list[str]:
        """列出某类型下所有已注册的算法名称"""
        return list(self._operators.get(kind, {}).keys())

    def all(self, kind: str) -> list[Any]:
        """按注册顺序返回某类型下的所有组件"""
        return list(self._operators.get(kind, {}).values())


operator_registry = OperatorRegistry()


def register_operator(kind: str, name: str) -> Callable[[Any], Any]:
    """
    算法注册装饰器

    使用示例：
        @register_operator("chunker", "paragraph")
        class ParagraphChunker:
            ...
    """
    def wrapper(cls_or_fn: Any) -> Any:
        operator_registry.register(kind, name, cls_or_fn)
        return cls_or_fn

    return wrapper
