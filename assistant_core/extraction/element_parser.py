"""按词表统计文本中的建筑元素。

统计的是关键词的出现次数（而不是句子数）：同一个词出现两次就计两次。
匹配前统一做大小写与去重音归一化，只匹配完整单词。
"""

from typing import Iterable, List, Mapping, Optional, Pattern, Tuple

from assistant_core.config.knowledge import load_knowledge
from assistant_core.domain.models import ExtractedPlan
from assistant_core.extraction.normalize import compile_keywords, normalize_text


class ElementParser:
    def __init__(self, vocabulary: Optional[Mapping[str, Iterable[str]]] = None):
        if vocabulary is None:
            vocabulary = load_knowledge().vocabulary
        self._patterns: List[Tuple[str, Optional[Pattern[str]]]] = [
            (name, compile_keywords(synonyms)) for name, synonyms in vocabulary.items()
        ]

    def parse(self, text: str) -> ExtractedPlan:
        normalized = normalize_text(text or "")
        counts = {}
        for name, pattern in self._patterns:
            counts[name] = len(pattern.findall(normalized)) if pattern else 0
        return ExtractedPlan(raw_text=text or "", elements=counts)
