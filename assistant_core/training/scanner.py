"""花括号平衡扫描：不依赖分隔符，按 {/} 嵌套深度切分记录。

深度从 0 变为正数时开始一条候选记录，回到 0 时记录结束；
记录之间的任何字符（换行、逗号、方括号、孤立的 "}"）都被忽略。
字符串内的花括号不计入深度。扫描结束时深度仍大于 0 的尾部内容视为不完整。
"""

import re
from dataclasses import dataclass, field
from typing import List


CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


@dataclass
class ScanResult:
    records: List[str] = field(default_factory=list)
    incomplete_tail: bool = False


def strip_control_chars(text: str) -> str:
    return CONTROL_CHARS.sub("", text)


def scan_records(text: str) -> ScanResult:
    result = ScanResult()
    depth = 0
    start = 0
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if depth == 0:
            if ch == "{":
                depth = 1
                start = i
                in_string = False
                escaped = False
            continue
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                result.records.append(text[start:i + 1])
    result.incomplete_tail = depth > 0
    return result
