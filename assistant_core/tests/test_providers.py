import pytest

from assistant_core.domain.exceptions import MalformedResponseError
from assistant_core.domain.models import ChatChoice, ChatMessage, ChatResult
from assistant_core.providers import create_provider
from assistant_core.providers.openai_client import OpenAIClient
from assistant_core.providers.registry import get_provider_config
from assistant_core.responders.remote import ProviderRemoteResponder, create_remote_responder


class FakeProvider:
    name = "fake"

    def __init__(self, content="Réponse", choices=True):
        self._content = content
        self._choices = choices
        self.requests = []

    def chat(self, req):
        self.requests.append(req)
        choices = [ChatChoice(index=0, message=ChatMessage(role="assistant", content=self._content))] if self._choices else []
        return ChatResult(provider=self.name, model=req.model, choices=choices)


def test_registry_lookup_is_case_insensitive():
    assert get_provider_config("OpenAI").models["btp-chat"].provider_model == "gpt-4o-mini"
    with pytest.raises(KeyError):
        get_provider_config("unknown")


def test_create_provider():
    assert isinstance(create_provider("openai"), OpenAIClient)
    with pytest.raises(KeyError):
        create_provider("nope")


def test_remote_responder_prepends_system_prompt():
    provider = FakeProvider()
    responder = ProviderRemoteResponder(provider, model="btp-chat")
    history = [ChatMessage(role="user", content="béton ?")]
    assert responder.complete("Tu es un assistant BTP.", history) == "Réponse"
    req = provider.requests[0]
    assert [(m.role, m.content) for m in req.messages] == [
        ("system", "Tu es un assistant BTP."),
        ("user", "béton ?"),
    ]
    assert req.provider == "fake"
    assert req.temperature == 0.3


def test_remote_responder_without_choices():
    with pytest.raises(MalformedResponseError):
        ProviderRemoteResponder(FakeProvider(choices=False)).complete("sys", [])


def test_remote_tier_disabled_without_api_key():
    class NoKey:
        remote_api_key = None

    assert create_remote_responder(NoKey()) is None
