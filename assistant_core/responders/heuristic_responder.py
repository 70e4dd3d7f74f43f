"""启发式顾问层（最后一层，总是给出答复）。

回复由四部分组成：

1. 项目类型画像的开场白（未知类型使用默认画像）；
2. 提取到的非零元素计数；
3. 基于 values 与固定单价系数的费用估算（乘积求和，完全确定）；
4. 最多 N 个追问，按“结构类优先于装修类”的稳定顺序，只问 values 中缺失的字段。

数据缺失时不会失败，只会多问几个问题。
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from assistant_core.config.knowledge import STAGE_ORDER, KnowledgeBase, ProjectProfile, load_knowledge
from assistant_core.config.settings import settings
from assistant_core.domain.models import ExtractedPlan, ResponderResult, Tier
from assistant_core.responders.formatting import format_number, numeric_values


MAX_ECHO_CHARS = 200


class HeuristicResponder:
    def __init__(self, knowledge: Optional[KnowledgeBase] = None, max_questions: Optional[int] = None):
        self._kb = knowledge or load_knowledge()
        if max_questions is None:
            max_questions = settings.max_follow_up_questions
        self._max_questions = max(0, int(max_questions))

    def advise(
        self,
        history: Sequence[Any],
        extracted_plan: Optional[ExtractedPlan],
        project_type: Optional[str],
        values: Optional[Mapping[str, Any]],
    ) -> ResponderResult:
        profile = self._kb.profile(project_type)
        known = self.known_values(values, extracted_plan)
        estimation = self.estimate(profile, known)
        questions = self.follow_up_questions(profile, known)
        reply = self._compose(profile, history, extracted_plan, estimation, questions)
        return ResponderResult(
            reply=reply,
            tier=Tier.HEURISTIC,
            estimation=estimation,
            follow_up_questions=questions,
        )

    @staticmethod
    def known_values(values: Optional[Mapping[str, Any]], plan: Optional[ExtractedPlan]) -> Dict[str, float]:
        """合并调用方的数值与计划中的非零计数；调用方显式提供的值优先。"""

        known = numeric_values(values)
        if plan is not None:
            for name, count in plan.non_zero():
                known.setdefault(name, float(count))
        return known

    @staticmethod
    def estimate(profile: ProjectProfile, known: Mapping[str, float]) -> Dict[str, float]:
        estimation: Dict[str, float] = {}
        for category, terms in profile.estimation:
            subtotal = 0.0
            used = False
            for term in terms:
                if not all(f in known for f in term.factors):
                    continue
                product = term.coefficient
                for f in term.factors:
                    product *= known[f]
                subtotal += product
                used = True
            if used:
                estimation[category] = round(subtotal, 2)
        if estimation:
            estimation["total"] = round(sum(estimation.values()), 2)
        return estimation

    def follow_up_questions(self, profile: ProjectProfile, known: Mapping[str, float]) -> List[str]:
        ordered = sorted(profile.questions, key=lambda q: STAGE_ORDER.index(q.stage))
        questions: List[str] = []
        asked = set()
        for q in ordered:
            if len(questions) >= self._max_questions:
                break
            if q.field in known or q.field in asked:
                continue
            asked.add(q.field)
            questions.append(q.text)
        return questions

    def _compose(
        self,
        profile: ProjectProfile,
        history: Sequence[Any],
        plan: Optional[ExtractedPlan],
        estimation: Mapping[str, float],
        questions: Sequence[str],
    ) -> str:
        sections: List[str] = [profile.opening or f"Analyse de ton {profile.label}."]

        request = _last_user_content(history)
        if request:
            if len(request) > MAX_ECHO_CHARS:
                request = request[:MAX_ECHO_CHARS].rstrip() + "…"
            sections.append(f"Ta demande : « {request} »")

        if plan is not None:
            found = plan.non_zero()
            if found:
                listed = ", ".join(f"{count} {self._kb.label_for(name)}" for name, count in found)
                sections.append(f"Éléments détectés sur le plan : {listed}.")
            else:
                sections.append("Aucun élément structurel n'a été reconnu sur le document fourni.")

        currency = self._kb.currency
        if estimation:
            lines = [f"Estimation indicative ({currency}) :"]
            for category, amount in estimation.items():
                if category == "total":
                    continue
                lines.append(f"- {_category_label(category)} : {format_number(amount)} {currency}")
            lines.append(f"Total estimé : {format_number(estimation['total'])} {currency}")
            sections.append("\n".join(lines))
        else:
            sections.append("Je n'ai pas encore assez de données chiffrées pour estimer le coût.")

        if questions:
            sections.append("\n".join(["Pour affiner l'analyse, peux-tu préciser :"] + [f"- {q}" for q in questions]))
        else:
            sections.append("Ces chiffres sont indicatifs : fais-les valider par un bureau d'études avant engagement.")
        return "\n\n".join(sections)


def _last_user_content(history: Sequence[Any]) -> str:
    for item in reversed(list(history or [])):
        if isinstance(item, Mapping):
            role, content = item.get("role"), item.get("content")
        else:
            role, content = getattr(item, "role", None), getattr(item, "content", None)
        if role == "user" and content:
            return str(content).strip()
    return ""


def _category_label(category: str) -> str:
    return category.replace("_", " ").capitalize()
