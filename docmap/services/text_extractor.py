"""Turn a document's original bytes into plain text.

PDFs are read with PyMuPDF (``fitz``) page by page; pages are joined with a
blank line so the chunker sees page breaks as paragraph breaks.  Plain text
and markdown are decoded as UTF-8 (a leading BOM is dropped).

:func:`detect_content_type` is used at submission time to decide whether a
file is supported at all.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from docmap.utils.errors import TextExtractionError
from docmap.utils.text_normalizer import count_words

logger = structlog.get_logger(logger_name=__name__)

_PDF_MAGIC = b"%PDF"

_EXTENSION_TYPES = {
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".text": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
}


def detect_content_type(filename: str, data: bytes, declared: str | None = None) -> str | None:
    """Best guess at a file's content type, or ``None`` if unsupported.

    The PDF magic number wins over everything else; otherwise the declared
    type is trusted when given, then the file extension.
    """
    if data[:4] == _PDF_MAGIC:
        return "application/pdf"
    if declared:
        return declared.split(";", 1)[0].strip().lower()
    return _EXTENSION_TYPES.get(PurePath(filename).suffix.lower())


@dataclass(frozen=True)
class ExtractedText:
    text: str
    page_count: int
    word_count: int


class TextExtractor:
    """Extracts text from PDF, plain-text and markdown documents."""

    def extract(self, data: bytes, content_type: str) -> ExtractedText:
        """Extract the full text of a document.

        Raises
        ------
        TextExtractionError
            If the bytes cannot be read as *content_type*, or the content
            type is not supported.
        """
        if content_type == "application/pdf":
            text, pages = self._extract_pdf(data)
        elif content_type in ("text/plain", "text/markdown"):
            text, pages = self._decode_text(data), 1
        else:
            raise TextExtractionError(message=f"Unsupported content type: {content_type}")

        extracted = ExtractedText(text=text, page_count=pages, word_count=count_words(text))
        logger.debug(
            "text_extracted",
            content_type=content_type,
            pages=extracted.page_count,
            words=extracted.word_count,
        )
        return extracted

    @staticmethod
    def _decode_text(data: bytes) -> str:
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise TextExtractionError(message=f"Document is not valid UTF-8: {exc}") from exc

    @staticmethod
    def _extract_pdf(data: bytes) -> tuple[str, int]:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:  # noqa: BLE001
            raise TextExtractionError(message=f"Could not open PDF: {exc}") from exc

        try:
            page_count = len(doc)
            pages = [doc[i].get_text("text").strip() for i in range(page_count)]
        finally:
            doc.close()

        text = "\n\n".join(p for p in pages if p)
        if not text:
            logger.warning("pdf_no_text_extracted", pages=page_count)
        return text, page_count
