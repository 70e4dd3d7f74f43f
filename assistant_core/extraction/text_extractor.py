"""把上传文档转换为纯文本。

- application/pdf: 使用 pypdf 逐页提取，页文本以单个空格拼接；
  某页提取失败时该页记为空字符串，不影响其他页。
- image/*: Pillow 打开图片后交给 Tesseract OCR，识别结果原样返回。
- 其他类型: 返回空字符串，并记录 UnsupportedFormat（软错误，不抛出）。

整个过程只读内存中的缓冲区，不写磁盘。
"""

import io
import logging
from typing import List, Optional, Tuple

import pytesseract
from PIL import Image
from pypdf import PdfReader

from assistant_core.config.settings import settings
from assistant_core.domain.exceptions import ExtractionError, UnsupportedFormat
from assistant_core.infrastructure.logging.logger import log_event


PDF_MIME_TYPES = frozenset({"application/pdf", "application/x-pdf"})


class TextExtractor:
    def __init__(self, ocr_language: Optional[str] = None):
        self._ocr_language = ocr_language or settings.ocr_language

    def extract(self, data: bytes, mime_type: str) -> str:
        text, _ = self.extract_with_status(data, mime_type)
        return text

    def extract_with_status(self, data: bytes, mime_type: str) -> Tuple[str, Optional[ExtractionError]]:
        """提取文本，同时返回软错误（没有错误时为 None）。"""

        kind = (mime_type or "").split(";", 1)[0].strip().lower()
        log_ctx = {"mime_type": kind, "size": len(data or b"")}
        try:
            if kind in PDF_MIME_TYPES:
                text = self._extract_pdf(data, log_ctx)
            elif kind.startswith("image/"):
                text = self._extract_image(data)
            else:
                raise UnsupportedFormat(
                    code="UNSUPPORTED_FORMAT",
                    message=f"unsupported document type: {mime_type!r}",
                    mime_type=mime_type,
                )
        except ExtractionError as e:
            log_event(logging.WARNING, "Document extraction degraded to empty text", log_ctx, code=e.code, error=e.message)
            return "", e
        log_event(logging.INFO, "Extracted document text", log_ctx, chars=len(text))
        return text, None

    def _extract_pdf(self, data: bytes, log_ctx: dict) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = list(reader.pages)
        except Exception as e:  # noqa: BLE001 - 损坏的页树会抛出各种异常，统一视为软错误
            raise ExtractionError(code="PDF_READ_ERROR", message=f"{type(e).__name__}: {e}")
        texts: List[str] = []
        for index, page in enumerate(pages):
            try:
                texts.append(page.extract_text() or "")
            except Exception as e:  # noqa: BLE001 - 单页失败只影响该页
                log_event(logging.WARNING, "PDF page extraction failed", log_ctx, page=index + 1, error=str(e))
                texts.append("")
        return " ".join(texts)

    def _extract_image(self, data: bytes) -> str:
        try:
            image = Image.open(io.BytesIO(data))
            return pytesseract.image_to_string(image, lang=self._ocr_language)
        except Exception as e:  # noqa: BLE001 - 包括 DecompressionBombError 与 OCR 引擎错误
            raise ExtractionError(code="OCR_ERROR", message=f"{type(e).__name__}: {e}")
