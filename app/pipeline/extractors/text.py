"""纯文本抽取器"""

from app.pipeline.registry import register_operator

TEXT_APPLICATION_TYPES = frozenset({
    "application/json",
    "application/xml",
    "application/x-yaml",
    "application/yaml",
    "application/csv",
    "application/markdown",
})


@register_operator("extractor", "text")
class TextExtractor:
    """UTF-8 解码，失败时回退到 latin-1（任何字节序列都可解码）"""
    name = "text"
    kind = "extractor"

    def supports(self, mime_type: str) -> bool:
        return mime_type.startswith("text/") or mime_type in TEXT_APPLICATION_TYPES

    def extract(self, data: bytes) -> str:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            text = data.decode("latin-1")
        return text.lstrip("\ufeff")
