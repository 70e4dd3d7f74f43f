from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Literal, Protocol
from datetime import datetime


MessageRole = Literal["user", "assistant"]


@dataclass
class Conversation:
    user_id: str
    created_at: datetime
    updated_at: datetime
    message_count: int = 0
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MessageRecord:
    id: str
    user_id: str
    role: MessageRole
    content: str
    seq: int
    created_at: datetime
    meta: Dict[str, Any] = field(default_factory=dict)


class ConversationStore(Protocol):
    """按用户 ID 组织的只追加会话存储。

    同一用户的 append 必须串行（不会交错写入）；不同用户之间互不阻塞。
    """

    def find_or_create(self, user_id: str) -> Conversation:
        ...

    def append(
        self,
        user_id: str,
        role: MessageRole,
        content: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> MessageRecord:
        ...

    def list_messages(self, user_id: str) -> List[MessageRecord]:
        ...
