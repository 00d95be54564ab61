"""
文本切分器模块

- ParagraphChunker : 按段落合并切分，超长段落按窗口切分（默认）
"""

from app.pipeline.chunkers.paragraph import ParagraphChunker  # noqa: F401

__all__ = ["ParagraphChunker"]
