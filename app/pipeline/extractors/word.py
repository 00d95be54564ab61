"""Word 抽取器（python-docx）"""

import io
import logging
import zipfile

from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError

from app.exceptions import ExtractionFailure
from app.pipeline.registry import register_operator

logger = logging.getLogger(__name__)


@register_operator("extractor", "word")
class WordExtractor:
    """
    抽取段落和表格中的文本

    旧版 .doc（application/msword）按同一路径尝试解析，
    二进制格式无法打开时报抽取失败。
    """
    name = "word"
    kind = "extractor"

    MIME_TYPES = frozenset({
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/docx",
        "application/msword",
    })

    def supports(self, mime_type: str) -> bool:
        return mime_type in self.MIME_TYPES

    def extract(self, data: bytes) -> str:
        try:
            doc = DocxDocument(io.BytesIO(data))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise ExtractionFailure(f"Error loading DOCX: {e}") from e

        paragraphs = [p.text for p in doc.paragraphs if p.text.strip()]

        for table in doc.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    paragraphs.append(" | ".join(cells))

        logger.debug(f"DOCX 抽取完成: {len(paragraphs)} 段")
        return "\n\n".join(paragraphs)
