"""文档提取流水线。

- text_extractor: 字节缓冲 + MIME 类型 -> 纯文本（PDF 逐页提取，图片 OCR）。
- element_parser: 纯文本 -> ExtractedPlan（按词表统计元素出现次数）。
"""

from assistant_core.extraction.element_parser import ElementParser
from assistant_core.extraction.text_extractor import TextExtractor

__all__ = ["ElementParser", "TextExtractor"]
