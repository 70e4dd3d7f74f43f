"""把会话历史导出为训练样本。"""

from typing import Any, Iterable, List, Mapping

from assistant_core.domain.models import TrainingExample


def examples_from_messages(
    messages: Iterable[Any],
    project_type: str = "generic",
    plan_summary: str = "",
) -> List[TrainingExample]:
    """每条助手回复生成一个样本，回复之前的全部消息作为 history。

    messages 可以是 MessageRecord 之类的对象，也可以是 {role, content} 字典；
    空回复以及没有前置消息的回复会被跳过。
    """

    history: List[dict] = []
    examples: List[TrainingExample] = []
    for msg in messages:
        if isinstance(msg, Mapping):
            role, content = msg.get("role"), msg.get("content")
        else:
            role, content = getattr(msg, "role", None), getattr(msg, "content", None)
        content = content or ""
        if role == "assistant" and content.strip() and history:
            examples.append(
                TrainingExample(
                    history=[dict(h) for h in history],
                    response=content,
                    project_type=project_type,
                    plan_summary=plan_summary,
                )
            )
        history.append({"role": str(role or "user"), "content": content})
    return examples
