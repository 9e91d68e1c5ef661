import httpx
import pytest

from yojana_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ResponderUnavailable
from yojana_core.domain.models import ChatTurn
from yojana_core.providers.bedrock_client import BedrockClient


class SettingsStub:
    bedrock_api_key = "bedrock-test-key"
    bedrock_endpoint = "https://bedrock-runtime.ap-south-1.amazonaws.com"
    bedrock_model_id = "anthropic.claude-3-5-sonnet-20241022-v2:0"
    bedrock_max_tokens = 512
    http_timeout = 1.0
    primary_timeout = None


def _fake_client(captured, status_code=200, body=None, text=""):
    class Resp:
        def __init__(self):
            self.status_code = status_code
            self.text = text

        def json(self):
            return body

    class Client:
        def __init__(self, *a, **kw):
            captured["timeout"] = kw.get("timeout")

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **_):
            captured["url"] = url
            captured["payload"] = json
            captured["headers"] = headers
            return Resp()

    return Client


def test_bedrock_client_parse_basic(monkeypatch):
    captured = {}
    body = {"content": [{"type": "text", "text": "Try PM-KISAN"}], "stop_reason": "end_turn"}
    monkeypatch.setattr("httpx.Client", _fake_client(captured, body=body))
    reply = BedrockClient(SettingsStub()).respond("What schemes for a farmer?", [], {"category": "Farmer"})
    assert reply.text == "Try PM-KISAN"
    assert reply.ai_model == "primary"
    assert reply.model_name == "Bedrock Claude 3.5 Sonnet"
    assert captured["url"].endswith("/model/anthropic.claude-3-5-sonnet-20241022-v2%3A0/invoke")
    assert captured["headers"]["Authorization"] == "Bearer bedrock-test-key"
    assert captured["timeout"] == 1.0


def test_bedrock_client_payload_has_persona_profile_and_chronological_history(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.Client", _fake_client(captured, body={"content": [{"type": "text", "text": "ok"}]}))
    t1 = ChatTurn.create("c", "u1", "user", "I am a farmer")
    t2 = ChatTurn.create("c", "u1", "assistant", "Noted")
    t3 = ChatTurn.create("c", "u1", "user", "In Maharashtra")
    t4 = ChatTurn.create("c", "u1", "assistant", "Thanks")
    newest_first = [t4, t3, t2, t1]

    BedrockClient(SettingsStub()).respond("Which schemes?", newest_first, {"category": "Farmer", "state": "Maharashtra"})

    payload = captured["payload"]
    assert "YojanaMitra" in payload["system"]
    assert 'User Profile: {"category": "Farmer", "state": "Maharashtra"}' in payload["system"]
    assert payload["max_tokens"] == 512
    assert [m["content"] for m in payload["messages"]] == ["I am a farmer", "Noted", "In Maharashtra", "Thanks", "Which schemes?"]
    assert [m["role"] for m in payload["messages"]] == ["user", "assistant", "user", "assistant", "user"]


def test_bedrock_client_omits_profile_without_context(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.Client", _fake_client(captured, body={"content": [{"type": "text", "text": "ok"}]}))
    BedrockClient(SettingsStub()).respond("hi", [])
    assert "User Profile" not in captured["payload"]["system"]
    assert captured["payload"]["messages"] == [{"role": "user", "content": "hi"}]


def test_bedrock_client_normalizes_roles():
    a1 = ChatTurn.create("c", "u1", "assistant", "stray reply")
    u1 = ChatTurn.create("c", "u1", "user", "first")
    u2 = ChatTurn.create("c", "u1", "user", "second")
    messages = BedrockClient._build_messages("third", [u2, u1, a1])
    assert messages == [{"role": "user", "content": "first\n\nsecond\n\nthird"}]


def test_bedrock_client_http_error(monkeypatch):
    monkeypatch.setattr("httpx.Client", _fake_client({}, status_code=500, text="boom"))
    with pytest.raises(ApiError) as exc_info:
        BedrockClient(SettingsStub()).respond("hi", [])
    assert exc_info.value.extra["upstream_status"] == 500
    assert exc_info.value.http_status == 500


def test_bedrock_client_rate_limit(monkeypatch):
    monkeypatch.setattr("httpx.Client", _fake_client({}, status_code=429))
    with pytest.raises(RateLimitError):
        BedrockClient(SettingsStub()).respond("hi", [])


def test_bedrock_client_malformed_body(monkeypatch):
    monkeypatch.setattr("httpx.Client", _fake_client({}, body={"content": []}))
    with pytest.raises(ApiError) as exc_info:
        BedrockClient(SettingsStub()).respond("hi", [])
    assert exc_info.value.code == "MALFORMED_RESPONSE"


def test_bedrock_client_network_error(monkeypatch):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, *a, **kw):
            raise httpx.ConnectTimeout("timed out")

    monkeypatch.setattr("httpx.Client", Client)
    with pytest.raises(NetworkError):
        BedrockClient(SettingsStub()).respond("hi", [])


def test_bedrock_client_missing_key_makes_no_call(monkeypatch):
    class NoKey(SettingsStub):
        bedrock_api_key = None

    def _explode(*a, **kw):
        raise AssertionError("no HTTP call expected")

    monkeypatch.setattr("httpx.Client", _explode)
    with pytest.raises(ResponderUnavailable) as exc_info:
        BedrockClient(NoKey()).respond("hi", [])
    assert exc_info.value.code == "MISSING_API_KEY"
