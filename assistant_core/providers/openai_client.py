"""OpenAI 兼容 Provider 适配器。

使用 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

本实现只依赖公共字段：model/messages/temperature/max_tokens/top_p。
"""

from typing import Any, Dict

import httpx

from assistant_core.config.settings import settings
from assistant_core.domain.exceptions import (
    ApiError,
    AuthError,
    MalformedResponseError,
    NetworkError,
    RateLimitError,
)
from assistant_core.domain.models import (
    ChatChoice,
    ChatMessage,
    ChatRequest,
    ChatResult,
    ChatUsage,
)
from assistant_core.providers.registry import OPENAI_CONFIG, ModelConfig


class OpenAIClient:
    """OpenAI 兼容 Provider 客户端实现。"""

    name = "openai"

    def __init__(self, cfg=settings):
        self._settings = cfg

    def chat(self, req: ChatRequest) -> ChatResult:
        api_key = getattr(self._settings, "remote_api_key", None)
        if not api_key:
            raise AuthError(code="MISSING_API_KEY", message="REMOTE_API_KEY not set")
        model_cfg = self._model_config(req.model)
        payload = self._build_payload(req, model_cfg)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                base = getattr(self._settings, "remote_base_url", None) or OPENAI_CONFIG.base_url
                resp = client.post(
                    f"{base}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code in (401, 403):
            raise AuthError(code="AUTH_ERROR", message="remote credentials rejected", http_status=resp.status_code)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="remote rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError(code="MALFORMED_RESPONSE", message=str(e))
        return self._parse_response(data, req)

    # ---- 辅助方法 ----

    @staticmethod
    def _model_config(logical_name: str) -> ModelConfig:
        cfg = OPENAI_CONFIG.models.get(logical_name)
        if cfg is not None:
            return cfg
        # 未登记的逻辑名直接当作厂商模型 ID 使用
        return ModelConfig(
            logical_name=logical_name,
            provider_model=logical_name,
            max_tokens=2000,
            default_temperature=0.7,
        )

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> dict:
        return {
            "model": model_cfg.provider_model,
            "messages": [self._message_to_payload(m) for m in req.messages],
            "temperature": req.temperature or model_cfg.default_temperature,
            "max_tokens": req.max_tokens or model_cfg.max_tokens,
            "top_p": req.top_p,
        }

    def _parse_response(self, data: Any, req: ChatRequest) -> ChatResult:
        if not isinstance(data, dict) or not isinstance(data.get("choices"), list):
            raise MalformedResponseError(code="MALFORMED_RESPONSE", message="response has no choices")
        choices: list[ChatChoice] = []
        for i, ch in enumerate(data["choices"]):
            msg = (ch or {}).get("message") or {}
            cm = ChatMessage(role=msg.get("role") or "assistant", content=msg.get("content") or "")
            choices.append(ChatChoice(index=i, message=cm, finish_reason=(ch or {}).get("finish_reason")))
        usage_raw = data.get("usage") or {}
        usage = ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )
        return ChatResult(provider=self.name, model=req.model, choices=choices, usage=usage, raw=data)

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, Any]:
        return {"role": message.role, "content": message.content}
