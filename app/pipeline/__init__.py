"""
Pipeline 可插拔算法模块

文档摄取流程使用的处理组件：
- extractors/ : 文本抽取器（PDF、Word、纯文本），按 MIME 类型选择
- chunkers/   : 文本切分器
- registry.py : 算法注册表，支持按名称动态获取算法实例

使用示例：
    from app.pipeline import operator_registry
    from app.pipeline.extractors import resolve_extractor

    text = resolve_extractor("application/pdf").extract(data)
    chunker = operator_registry.get("chunker", "paragraph")(chunk_size=1000)
    pieces = chunker.chunk(text)
"""

from app.pipeline import chunkers, extractors  # noqa: F401
from app.pipeline.registry import operator_registry

__all__ = ["operator_registry"]
