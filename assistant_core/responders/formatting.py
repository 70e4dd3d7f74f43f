"""数值解析与法式数字格式化（千位空格、小数逗号）。"""

import math
from typing import Any, Dict, Mapping, Optional


def as_number(value: Any) -> Optional[float]:
    """把输入值转成 float；布尔值、NaN 与无法解析的字符串返回 None。"""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(" ", "").replace(",", "."))
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def numeric_values(values: Optional[Mapping[str, Any]]) -> Dict[str, float]:
    """只保留可以解析为数字的字段。"""

    result: Dict[str, float] = {}
    for key, raw in (values or {}).items():
        number = as_number(raw)
        if number is not None:
            result[str(key)] = number
    return result


def format_number(value: float) -> str:
    """1234.5 -> "1 234,5"；整数不带小数部分。"""

    rounded = round(value, 2)
    if rounded == int(rounded):
        return f"{int(rounded):,}".replace(",", " ")
    text = f"{rounded:,.2f}".rstrip("0")
    return text.replace(",", " ").replace(".", ",")
