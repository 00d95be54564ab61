"""PDF 抽取器（pypdf）"""

import io
import logging

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from app.exceptions import ExtractionFailure
from app.pipeline.registry import register_operator

logger = logging.getLogger(__name__)


@register_operator("extractor", "pdf")
class PdfExtractor:
    """逐页抽取文本，页与页之间用空行分隔，保留段落边界供切分器使用"""
    name = "pdf"
    kind = "extractor"

    MIME_TYPES = frozenset({"application/pdf"})

    def supports(self, mime_type: str) -> bool:
        return mime_type in self.MIME_TYPES

    def extract(self, data: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PdfReadError, ValueError, KeyError) as e:
            raise ExtractionFailure(f"PDF parsing error: {e}") from e

        logger.debug(f"PDF 抽取完成: {len(pages)} 页")
        return "\n\n".join(pages)
