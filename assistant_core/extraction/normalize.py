"""文本归一化工具：统一大小写并去掉重音，保证匹配与区域设置无关。"""

import re
import unicodedata
from typing import Iterable, Optional, Pattern


def normalize_text(text: str) -> str:
    """返回小写、去重音后的文本（"Fenêtre" -> "fenetre"）。"""

    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def compile_keywords(keywords: Iterable[str]) -> Optional[Pattern[str]]:
    """把关键词编译为只匹配完整单词的正则（作用于 normalize_text 之后的文本）。

    没有有效关键词时返回 None。
    """

    words = {normalize_text(k).strip() for k in keywords if k and k.strip()}
    if not words:
        return None
    # 长词优先，避免 "mur" 抢先匹配 "murs"
    ordered = sorted(words, key=lambda w: (-len(w), w))
    alternation = "|".join(re.escape(w) for w in ordered)
    return re.compile(rf"(?<!\w)(?:{alternation})(?!\w)")
