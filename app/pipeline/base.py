"""
Pipeline 基础类型定义

定义摄取流程中各算法组件的抽象接口：
- 抽取器 (extractor): 源文件字节 → 纯文本
- 切分器 (chunker):   纯文本 → 片段列表

设计理念：
- 使用 Protocol 而非抽象基类，提供结构化类型检查
- 统一的 name/kind 属性，便于注册和发现
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass
class ChunkPiece:
    """
    文本片段数据结构

    切分器的输出单元，包含文本内容和元数据。
    """
    text: str                                      # 片段文本
    metadata: dict = field(default_factory=dict)   # 元数据（如起止字符位置）


class BaseOperator(Protocol):
    """算法组件基础协议"""
    name: str  # 算法名称，如 "pdf", "paragraph"
    kind: str  # 算法类型，如 "extractor", "chunker"


class BaseExtractorOperator(BaseOperator, Protocol):
    """
    抽取器协议

    每个抽取器声明自己能处理的 MIME 类型，由 resolve_extractor 按 MIME 选择。
    """
    kind: str = "extractor"

    def supports(self, mime_type: str) -> bool:
        ...

    def extract(self, data: bytes) -> str:
        """
        从源文件字节中抽取纯文本

        Raises:
            ExtractionFailure: 文件损坏或无法解析
        """
        ...


class BaseChunkerOperator(BaseOperator, Protocol):
    """
    切分器协议

    所有文本切分算法需实现此接口。
    """
    kind: str = "chunker"

    def chunk(self, text: str, metadata: dict | None = None) -> list[ChunkPiece]:
        """
        将文本切分为多个片段

        Args:
            text: 原始文本
            metadata: 附加元数据（会传递到每个片段）

        Returns:
            list[ChunkPiece]: 切分后的片段列表，顺序即片段序号
        """
        ...
