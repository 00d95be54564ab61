"""
文本抽取器模块

按 MIME 类型选择抽取器：
- PdfExtractor  : application/pdf（pypdf）
- WordExtractor : docx / doc（python-docx）
- TextExtractor : text/*、JSON、XML 等文本格式

未匹配到任何抽取器的 MIME 类型直接拒绝，不做猜测解码。
"""

from app.exceptions import UnsupportedFormatError
from app.pipeline.extractors.pdf import PdfExtractor
from app.pipeline.extractors.text import TextExtractor
from app.pipeline.extractors.word import WordExtractor
from app.pipeline.registry import operator_registry


def normalize_mime(mime_type: str | None) -> str:
    """去掉参数部分并转小写，如 "text/plain; charset=utf-8" → "text/plain" """
    return (mime_type or "").split(";", 1)[0].strip().lower()


def is_supported_mime(mime_type: str | None) -> bool:
    mime = normalize_mime(mime_type)
    return any(cls().supports(mime) for cls in operator_registry.all("extractor"))


def resolve_extractor(mime_type: str | None):
    """
    按 MIME 类型获取抽取器实例

    Raises:
        UnsupportedFormatError: 没有抽取器支持该类型
    """
    mime = normalize_mime(mime_type)
    for extractor_cls in operator_registry.all("extractor"):
        extractor = extractor_cls()
        if extractor.supports(mime):
            return extractor
    raise UnsupportedFormatError(f"Unsupported file type: {mime_type or 'unknown'}")


__all__ = [
    "PdfExtractor",
    "TextExtractor",
    "WordExtractor",
    "is_supported_mime",
    "normalize_mime",
    "resolve_extractor",
]
