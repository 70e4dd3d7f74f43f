"""远程层：把 ProviderClient 包装成 complete(system_prompt, history) 接口。

远程层可能抛出 NetworkError / AuthError / RateLimitError 等业务异常，
编排器对它们一视同仁：记录日志后降级到本地层。
"""

from typing import Optional, Protocol, Sequence

from assistant_core.config.settings import settings
from assistant_core.domain.exceptions import MalformedResponseError
from assistant_core.domain.models import ChatMessage, ChatRequest
from assistant_core.providers import create_provider
from assistant_core.providers.base import ProviderClient


class RemoteResponder(Protocol):
    def complete(self, system_prompt: str, history: Sequence[ChatMessage]) -> str:
        ...


class ProviderRemoteResponder:
    def __init__(self, provider_client: ProviderClient, model: Optional[str] = None, temperature: float = 0.3):
        self._provider = provider_client
        self._model = model or getattr(settings, "remote_model", "btp-chat")
        self._temperature = temperature

    @property
    def name(self) -> str:
        return getattr(self._provider, "name", "remote")

    def complete(self, system_prompt: str, history: Sequence[ChatMessage]) -> str:
        messages = [ChatMessage(role="system", content=system_prompt)]
        messages.extend(ChatMessage(role=m.role, content=m.content) for m in history)
        req = ChatRequest(
            provider=self.name,
            model=self._model,
            messages=messages,
            temperature=self._temperature,
        )
        result = self._provider.chat(req)
        if not result.choices:
            raise MalformedResponseError(code="MALFORMED_RESPONSE", message="remote returned no choices")
        return result.choices[0].message.content or ""


def create_remote_responder(cfg=settings) -> Optional[RemoteResponder]:
    """根据配置创建远程层；未配置 API 密钥时返回 None（远程层禁用）。"""

    if not getattr(cfg, "remote_api_key", None):
        return None
    provider = create_provider(getattr(cfg, "remote_provider", None))
    return ProviderRemoteResponder(provider, model=getattr(cfg, "remote_model", None))
