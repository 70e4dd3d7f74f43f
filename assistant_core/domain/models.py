"""统一的请求、结果与训练样本数据模型。

本模块定义编排器各层之间共享的标准数据结构：

- ChatMessage: 一条发给远程 Provider 的消息（system/user/assistant）。
- ChatRequest / ChatResult: 远程 Provider 的请求与解析后的响应。
- ExtractedPlan: 从上传文档中提取出的文本与元素计数。
- ResponderResult: 某一层（Remote/Rule/Heuristic）产出的唯一答复。
- TrainingExample: 追加到训练语料中的一条交互样本。
- DocumentUpload / ChatTurnRequest / ChatTurnResult: 编排器入口的输入与输出。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from assistant_core.domain.conversation import MessageRecord


# LLM 消息角色类型（与 OpenAI 兼容接口的 role 字段对应）
Role = Literal["system", "user", "assistant"]


class Tier(str, Enum):
    """应答层级，按降级顺序排列。"""

    REMOTE = "remote"
    RULE = "rule"
    HEURISTIC = "heuristic"


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。

    - meta: 附加元数据，不直接发给 Provider，主要用于日志。
    """

    role: Role
    content: str
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatRequest:
    """一次完整的远程聊天请求。"""

    provider: str  # 逻辑 Provider 名，如 "openai"
    model: str  # 逻辑模型名，如 "btp-chat"（再由 registry 映射为真实模型名）
    messages: List[ChatMessage]
    temperature: float = 0.7
    top_p: float = 0.9
    max_tokens: Optional[int] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次远程调用的最终结果；raw 保留原始 JSON 便于调试。"""

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None


@dataclass
class ExtractedPlan:
    """文档提取结果：原始文本 + 元素计数（按词表顺序）。"""

    raw_text: str
    elements: Dict[str, int] = field(default_factory=dict)

    def non_zero(self) -> List[Tuple[str, int]]:
        return [(name, count) for name, count in self.elements.items() if count > 0]

    def summary(self) -> str:
        """简短的计数摘要，用作训练样本的 plan_summary。"""

        return ", ".join(f"{name}={count}" for name, count in self.non_zero())

    def to_dict(self) -> Dict[str, Any]:
        return {"rawText": self.raw_text, "elements": dict(self.elements)}


@dataclass
class ResponderResult:
    """单层应答结果，每次编排恰好产生一个。"""

    reply: str
    tier: Tier
    estimation: Dict[str, float] = field(default_factory=dict)
    follow_up_questions: List[str] = field(default_factory=list)
    keyword: Optional[str] = None


@dataclass
class DocumentUpload:
    """上传的文档：字节缓冲 + 声明的 MIME 类型。"""

    data: bytes
    mime_type: str
    filename: Optional[str] = None


@dataclass
class ChatTurnRequest:
    """编排器入口参数。message 与 document 至少提供一个。"""

    user_id: str
    message: Optional[str] = None
    document: Optional[DocumentUpload] = None
    project_type: str = "generic"
    values: Dict[str, float] = field(default_factory=dict)


@dataclass
class ChatTurnResult:
    reply: str
    tier: Tier
    estimation: Dict[str, float] = field(default_factory=dict)
    questions: List[str] = field(default_factory=list)
    extracted_plan: Optional[ExtractedPlan] = None
    fallback_reasons: List[str] = field(default_factory=list)
    transitions: List[str] = field(default_factory=list)
    user_message: Optional["MessageRecord"] = None
    assistant_message: Optional["MessageRecord"] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reply": self.reply,
            "estimation": dict(self.estimation),
            "questions": list(self.questions),
            "extractedPlan": self.extracted_plan.to_dict() if self.extracted_plan else None,
            "tier": self.tier.value,
            "fallbackReasons": list(self.fallback_reasons),
            "userMessage": _record_to_dict(self.user_message),
            "assistantMessage": _record_to_dict(self.assistant_message),
        }


@dataclass
class TrainingExample:
    """训练语料中的一条样本。

    去重键为 (keyword 或第一条用户消息, response)：规则层样本带 keyword，
    对话导出的样本没有 keyword，此时用第一条用户消息代替。
    """

    history: List[Dict[str, str]]
    response: str
    project_type: str = "generic"
    plan_summary: str = ""
    keyword: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def first_user_content(self) -> str:
        for msg in self.history:
            if msg.get("role") == "user":
                return msg.get("content") or ""
        return ""

    def dedup_key(self) -> Tuple[str, str]:
        return (self.keyword or self.first_user_content(), self.response)

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "history": [dict(m) for m in self.history],
            "projectType": self.project_type,
            "planSummary": self.plan_summary,
            "response": self.response,
        }
        if self.keyword:
            record["keyword"] = self.keyword
        if self.meta:
            record["meta"] = dict(self.meta)
        return record

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "TrainingExample":
        """把语料中的各种历史记录形状统一为 TrainingExample。

        兼容：当前格式 {history, response}、规则记忆 {keyword, response}、
        {message, response}、{input, output} 以及导出格式 {history, aiResponse}。
        没有可用 response 时抛 ValueError。
        """

        if not isinstance(data, Mapping):
            raise ValueError("record is not an object")
        response = data.get("response")
        if response is None:
            response = data.get("aiResponse")
        if response is None:
            response = data.get("output")
        if not isinstance(response, str) or not response.strip():
            raise ValueError("record has no response")

        keyword = data.get("keyword")
        history_raw = data.get("history")
        if isinstance(history_raw, list):
            history = []
            for item in history_raw:
                if not isinstance(item, Mapping):
                    raise ValueError("history item is not an object")
                history.append({"role": str(item.get("role") or "user"), "content": str(item.get("content") or "")})
        else:
            prompt = keyword if keyword is not None else data.get("message", data.get("input"))
            if not isinstance(prompt, str):
                raise ValueError("record has no history")
            history = [{"role": "user", "content": prompt}]

        meta = data.get("meta")
        return cls(
            history=history,
            response=response,
            project_type=str(data.get("projectType") or "generic"),
            plan_summary=str(data.get("planSummary") or ""),
            keyword=str(keyword) if keyword else None,
            meta=dict(meta) if isinstance(meta, Mapping) else {},
        )


def _record_to_dict(rec: Optional["MessageRecord"]) -> Optional[Dict[str, Any]]:
    if rec is None:
        return None
    return {
        "id": rec.id,
        "role": rec.role,
        "content": rec.content,
        "seq": rec.seq,
        "created_at": rec.created_at.isoformat(),
    }
