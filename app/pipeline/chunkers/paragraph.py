"""
段落切分器

按空行切分段落，再把相邻段落合并到不超过 chunk_size 的片段中。
超长段落按固定窗口切分，相邻窗口保持 chunk_overlap 重叠。

分块规则：
1. 段落是最小的合并单位，尽量不在段落中间断开
2. 新片段以前一个片段的末尾（不超过 chunk_overlap 字符，按单词边界对齐）开头
3. 每个片段都不超过 chunk_size，且不为空
"""

import re

from app.pipeline.base import BaseChunkerOperator, ChunkPiece
from app.pipeline.registry import register_operator

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


@register_operator("chunker", "paragraph")
class ParagraphChunker(BaseChunkerOperator):
    """段落感知切分器，摄取流程的默认切分器"""
    name = "paragraph"
    kind = "chunker"

    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200):
        """
        Args:
            chunk_size: 每个片段的最大字符数
            chunk_overlap: 相邻片段的重叠字符数
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size ({chunk_size}) 必须大于 0")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError(f"chunk_overlap ({chunk_overlap}) 必须小于 chunk_size ({chunk_size})")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def chunk(self, text: str, metadata: dict | None = None) -> list[ChunkPiece]:
        if not text or not text.strip():
            return []

        paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(text) if p.strip()]

        chunks: list[str] = []
        current = ""

        for para in paragraphs:
            if len(para) > self.chunk_size:
                if current:
                    chunks.append(current)
                    current = ""
                chunks.extend(self._split_long(para))
                continue

            candidate = f"{current}\n\n{para}" if current else para
            if len(candidate) <= self.chunk_size:
                current = candidate
                continue

            chunks.append(current)
            overlap = self._tail(current)
            if overlap and len(overlap) + 2 + len(para) <= self.chunk_size:
                current = f"{overlap}\n\n{para}"
            else:
                current = para

        if current:
            chunks.append(current)

        base = metadata or {}
        return [
            ChunkPiece(text=chunk, metadata={**base, "chunk_index": i})
            for i, chunk in enumerate(chunks)
        ]

    def _split_long(self, text: str) -> list[str]:
        """固定窗口切分超长段落"""
        step = self.chunk_size - self.chunk_overlap
        pieces: list[str] = []
        for start in range(0, len(text), step):
            piece = text[start:start + self.chunk_size].strip()
            if piece:
                pieces.append(piece)
            if start + self.chunk_size >= len(text):
                break
        return pieces

    def _tail(self, text: str) -> str:
        """取片段末尾作为下一个片段的重叠部分，从单词边界开始"""
        if self.chunk_overlap == 0:
            return ""
        tail = text[-self.chunk_overlap:]
        if len(text) > self.chunk_overlap:
            space = tail.find(" ")
            if space != -1:
                tail = tail[space + 1:]
        return tail.strip()
