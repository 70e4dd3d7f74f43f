"""本地层的知识库：规则表、元素词表与项目画像。

知识库在启动时从 YAML 加载一次，之后只读：

- vocabulary: 元素名 -> 同义词列表（ElementParser 使用）。
- rules: 有序规则表（RuleResponder 使用，先匹配先得）。
- profiles: 项目类型画像（HeuristicResponder 使用）。

默认读取包内的 knowledge.yaml，可通过 settings.knowledge_file 覆盖。
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple, Union

import yaml

from assistant_core.config.settings import settings
from assistant_core.domain.exceptions import ValidationError


KNOWLEDGE_FILE = Path(__file__).resolve().parent / "knowledge.yaml"

# 追问的优先级：结构类字段先于装修类字段
STAGE_ORDER: Tuple[str, ...] = ("structural", "finishing")

Factor = Union[str, float]


@dataclass(frozen=True)
class Rule:
    """一条关键词规则。

    - patterns: 任一关键词以完整单词出现在（归一化后的）消息中即视为匹配。
    - requires: 模板需要的数值字段，缺失时规则层返回 NoMatch。
    - computed: 派生字段，值为各因子之积（因子可以是字段名或常数）。
    """

    keyword: str
    patterns: Tuple[str, ...]
    template: str
    requires: Tuple[str, ...] = ()
    computed: Tuple[Tuple[str, Tuple[Factor, ...]], ...] = ()


@dataclass(frozen=True)
class EstimationTerm:
    factors: Tuple[str, ...]
    coefficient: float


@dataclass(frozen=True)
class FollowUpQuestion:
    field: str
    stage: str
    text: str


@dataclass(frozen=True)
class ProjectProfile:
    name: str
    label: str
    opening: str
    estimation: Tuple[Tuple[str, Tuple[EstimationTerm, ...]], ...]
    questions: Tuple[FollowUpQuestion, ...]


@dataclass(frozen=True)
class KnowledgeBase:
    currency: str
    default_profile: str
    fallback_reply: str
    vocabulary: Mapping[str, Tuple[str, ...]]
    element_labels: Mapping[str, str]
    rules: Tuple[Rule, ...]
    profiles: Mapping[str, ProjectProfile]

    def profile(self, project_type: Optional[str]) -> ProjectProfile:
        """按项目类型取画像，未知类型回落到默认画像。"""

        key = (project_type or "").strip().lower()
        return self.profiles.get(key) or self.profiles[self.default_profile]

    def label_for(self, element: str) -> str:
        return self.element_labels.get(element, element)


def parse_knowledge(data: Mapping[str, Any]) -> KnowledgeBase:
    """把 YAML 字典转换为只读的 KnowledgeBase，结构不合法时抛 ValidationError。"""

    if not isinstance(data, Mapping):
        raise ValidationError(code="KNOWLEDGE_INVALID", message="knowledge root must be a mapping")
    try:
        vocabulary = {
            str(name): tuple(str(s) for s in synonyms)
            for name, synonyms in (data.get("vocabulary") or {}).items()
        }
        labels = {str(k): str(v) for k, v in (data.get("element_labels") or {}).items()}
        rules = tuple(_parse_rule(raw) for raw in (data.get("rules") or []))
        profiles = {
            str(name).lower(): _parse_profile(str(name).lower(), raw)
            for name, raw in (data.get("profiles") or {}).items()
        }
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ValidationError(code="KNOWLEDGE_INVALID", message=str(e))

    default_profile = str(data.get("default_profile") or "generic").lower()
    if default_profile not in profiles:
        raise ValidationError(
            code="KNOWLEDGE_INVALID",
            message=f"default profile {default_profile!r} is not defined",
        )
    return KnowledgeBase(
        currency=str(data.get("currency") or "FCFA"),
        default_profile=default_profile,
        fallback_reply=str(data.get("fallback_reply") or "").strip(),
        vocabulary=MappingProxyType(vocabulary),
        element_labels=MappingProxyType(labels),
        rules=rules,
        profiles=MappingProxyType(profiles),
    )


@lru_cache(maxsize=None)
def load_knowledge(path: Optional[str] = None) -> KnowledgeBase:
    """加载知识库（带缓存，同一路径只解析一次）。"""

    source = Path(path or settings.knowledge_file or KNOWLEDGE_FILE).expanduser()
    try:
        data = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ValidationError(code="KNOWLEDGE_READ_ERROR", message=f"{source}: {e}")
    return parse_knowledge(data)


def _parse_rule(raw: Mapping[str, Any]) -> Rule:
    computed = []
    for name, factors in (raw.get("computed") or {}).items():
        computed.append((str(name), tuple(_factor(f) for f in factors)))
    return Rule(
        keyword=str(raw["keyword"]),
        patterns=tuple(str(p) for p in raw["patterns"]),
        template=str(raw["template"]).strip(),
        requires=tuple(str(r) for r in (raw.get("requires") or [])),
        computed=tuple(computed),
    )


def _parse_profile(name: str, raw: Mapping[str, Any]) -> ProjectProfile:
    estimation = []
    for category, terms in (raw.get("estimation") or {}).items():
        estimation.append(
            (
                str(category),
                tuple(
                    EstimationTerm(
                        factors=tuple(str(f) for f in term["factors"]),
                        coefficient=float(term["coefficient"]),
                    )
                    for term in terms
                ),
            )
        )
    questions = []
    for q in raw.get("questions") or []:
        stage = str(q.get("stage") or "finishing")
        if stage not in STAGE_ORDER:
            raise ValueError(f"unknown question stage {stage!r} in profile {name!r}")
        questions.append(FollowUpQuestion(field=str(q["field"]), stage=stage, text=str(q["text"])))
    return ProjectProfile(
        name=name,
        label=str(raw.get("label") or name),
        opening=str(raw.get("opening") or "").strip(),
        estimation=tuple(estimation),
        questions=tuple(questions),
    )


def _factor(value: Any) -> Factor:
    if isinstance(value, bool):
        raise ValueError(f"invalid factor {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    return str(value)

