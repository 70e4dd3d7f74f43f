"""规则层：按声明顺序匹配关键词规则，先匹配先得。

关键词只匹配完整单词（"epi" 不会命中 "epicerie"），忽略大小写与重音。

模板可以引用调用方提供的数值字段（values）以及规则派生的乘积字段；
命中的规则缺少必需字段时返回 None（NoMatch），而不是抛异常，
也不会继续尝试后面的规则。
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence

from assistant_core.config.knowledge import Rule, load_knowledge
from assistant_core.extraction.normalize import compile_keywords, normalize_text
from assistant_core.infrastructure.logging.logger import log_event
from assistant_core.responders.formatting import as_number, format_number


@dataclass
class RuleMatch:
    keyword: str
    reply: str
    computed: Dict[str, float] = field(default_factory=dict)


class RuleResponder:
    def __init__(self, rules: Optional[Sequence[Rule]] = None):
        if rules is None:
            rules = load_knowledge().rules
        self._rules = [(rule, compile_keywords(rule.patterns)) for rule in rules]

    def match(self, message: str, values: Optional[Mapping[str, Any]] = None) -> Optional[RuleMatch]:
        text = normalize_text(message or "")
        if not text.strip():
            return None
        for rule, pattern in self._rules:
            if pattern is not None and pattern.search(text):
                return self._render(rule, values or {})
        return None

    def _render(self, rule: Rule, values: Mapping[str, Any]) -> Optional[RuleMatch]:
        numbers: Dict[str, float] = {}
        for name in rule.requires:
            number = as_number(values.get(name))
            if number is None:
                log_event(logging.INFO, "Rule matched but value missing", {"keyword": rule.keyword}, field=name)
                return None
            numbers[name] = number

        computed: Dict[str, float] = {}
        for name, factors in rule.computed:
            product = 1.0
            for factor in factors:
                if not isinstance(factor, str):
                    product *= factor
                    continue
                number = computed.get(factor)
                if number is None:
                    number = numbers.get(factor)
                if number is None:
                    number = as_number(values.get(factor))
                    if number is None:
                        log_event(logging.INFO, "Rule matched but value missing", {"keyword": rule.keyword}, field=factor)
                        return None
                    numbers[factor] = number
                product *= number
            computed[name] = round(product, 2)

        fields = {name: format_number(v) for name, v in numbers.items()}
        fields.update({name: format_number(v) for name, v in computed.items()})
        try:
            reply = rule.template.format(**fields)
        except (KeyError, IndexError, ValueError) as e:
            log_event(logging.WARNING, "Rule template could not be rendered", {"keyword": rule.keyword}, error=str(e))
            return None
        return RuleMatch(keyword=rule.keyword, reply=reply, computed=computed)
