"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供具体实现 (openai_client)。
"""

from typing import Optional

from assistant_core.config.settings import settings
from assistant_core.providers.base import ProviderClient
from assistant_core.providers.openai_client import OpenAIClient
from assistant_core.providers.registry import get_provider_config


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。

    未登记的名称抛 KeyError。
    """

    provider_name = (name or getattr(settings, "remote_provider", "openai")).lower()
    cfg = get_provider_config(provider_name)
    if cfg.name == "openai":
        return OpenAIClient(settings)
    raise KeyError(f"No client for provider: {provider_name!r}")
