import httpx
import pytest

from assistant_core.domain.exceptions import ApiError, AuthError, MalformedResponseError, NetworkError, RateLimitError
from assistant_core.domain.models import ChatMessage, ChatRequest
from assistant_core.providers.openai_client import OpenAIClient


class SettingsStub:
    remote_api_key = "sk-test-123456"
    http_timeout = 1.0
    remote_base_url = "https://example.test/v1"


def _request():
    return ChatRequest(
        provider="openai",
        model="btp-chat",
        messages=[ChatMessage(role="system", content="sys"), ChatMessage(role="user", content="béton ?")],
        temperature=0.3,
    )


def _fake_client(monkeypatch, status_code=200, body=None, error=None, seen=None):
    class Resp:
        text = "error body"

        def __init__(self):
            self.status_code = status_code

        def json(self):
            if isinstance(body, Exception):
                raise body
            return body

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None):
            if seen is not None:
                seen.update(url=url, json=json, headers=headers)
            if error is not None:
                raise error
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)


def test_openai_client_basic(monkeypatch):
    seen = {}
    body = {
        "choices": [{"index": 0, "message": {"role": "assistant", "content": "ok"}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
    }
    _fake_client(monkeypatch, body=body, seen=seen)
    res = OpenAIClient(SettingsStub()).chat(_request())
    assert res.choices[0].message.content == "ok"
    assert res.usage.total_tokens == 4
    assert seen["url"] == "https://example.test/v1/chat/completions"
    assert seen["json"]["model"] == "gpt-4o-mini"
    assert seen["json"]["messages"][0] == {"role": "system", "content": "sys"}
    assert seen["headers"]["Authorization"] == "Bearer sk-test-123456"


@pytest.mark.parametrize(
    "status, error_type",
    [(401, AuthError), (403, AuthError), (429, RateLimitError), (500, ApiError)],
)
def test_openai_client_http_errors(monkeypatch, status, error_type):
    _fake_client(monkeypatch, status_code=status, body={})
    with pytest.raises(error_type):
        OpenAIClient(SettingsStub()).chat(_request())


def test_openai_client_network_error(monkeypatch):
    _fake_client(monkeypatch, error=httpx.ConnectError("refused"))
    with pytest.raises(NetworkError):
        OpenAIClient(SettingsStub()).chat(_request())


def test_openai_client_malformed_body(monkeypatch):
    _fake_client(monkeypatch, body=ValueError("not json"))
    with pytest.raises(MalformedResponseError):
        OpenAIClient(SettingsStub()).chat(_request())
    _fake_client(monkeypatch, body={"error": "nothing"})
    with pytest.raises(MalformedResponseError):
        OpenAIClient(SettingsStub()).chat(_request())


def test_openai_client_requires_api_key():
    class NoKey(SettingsStub):
        remote_api_key = None

    with pytest.raises(AuthError) as exc:
        OpenAIClient(NoKey()).chat(_request())
    assert exc.value.code == "MISSING_API_KEY"
