import pytest
import requests

from conftest import FakeGateway
from insightstream.config import LLMConfig
from insightstream.conversation import Turn
from insightstream.errors import DownstreamError, EmptyHistoryError, ParseError
from insightstream.llm import DEFAULT_INTENT, LLMGateway, extract_json


# ===== classify_intent =====

@pytest.mark.parametrize("reply", [
    "This looks like a general question to me.",
    "",
    "Sure! {intent: data_cleaning, oops}",
    "[1, 2, 3]",
])
def test_classify_intent_falls_back_to_default(reply):
    gw = FakeGateway([reply])
    assert gw.classify_intent("what's the weather today?") == DEFAULT_INTENT


def test_classify_intent_returns_embedded_json_exactly():
    gw = FakeGateway(['Here is my analysis:\n{"intent":"data_cleaning","action":"x","parameters":{}}\nHope it helps!'])
    assert gw.classify_intent("clean this data") == {"intent": "data_cleaning", "action": "x", "parameters": {}}


def test_classify_intent_does_not_validate_enum():
    gw = FakeGateway(['{"intent": "teleport", "action": "beam", "parameters": {"to": "mars"}}'])
    assert gw.classify_intent("beam me up")["intent"] == "teleport"


def test_classify_intent_prompt_embeds_command():
    gw = FakeGateway()
    gw.classify_intent("show me a bar chart")
    prompt = gw.calls[0]["messages"][0]["content"]
    assert '"show me a bar chart"' in prompt
    assert gw.calls[0]["temperature"] == 0.0


def test_default_intent_is_not_shared():
    gw = FakeGateway(["nothing", "nothing"])
    first = gw.classify_intent("a")
    first["parameters"]["x"] = 1
    assert gw.classify_intent("b") == DEFAULT_INTENT


def test_extract_json_is_greedy():
    assert extract_json('a {"x": {"y": 1}} b') == {"x": {"y": 1}}
    with pytest.raises(ParseError):
        extract_json("no braces")


# ===== chat_with_context =====

def test_single_turn_sends_empty_history(monkeypatch):
    gw = FakeGateway()
    seen = {}

    def fake_send(history, message, max_tokens=None):
        seen.update(history=history, message=message, max_tokens=max_tokens)
        return "Hello! How can I help?"

    monkeypatch.setattr(gw, "send_message", fake_send)
    assert gw.chat_with_context([{"role": "user", "content": "hi"}]) == "Hello! How can I help?"
    assert seen == {"history": [], "message": "hi", "max_tokens": 1000}


def test_history_roles_are_mapped():
    gw = FakeGateway(["sure"])
    history = [
        {"role": "user", "content": "a"},
        {"role": "assistant", "content": "b"},
        {"role": "system", "content": "c"},
        {"role": "user", "content": "d"},
    ]
    assert gw.chat_with_context(history) == "sure"
    messages = gw.calls[0]["messages"]
    assert messages == [
        {"role": "user", "content": "a"},
        {"role": "assistant", "content": "b"},
        {"role": "assistant", "content": "c"},
        {"role": "user", "content": "d"},
    ]
    assert gw.calls[0]["max_tokens"] == 1000


def test_chat_with_context_accepts_turns():
    gw = FakeGateway(["fine"])
    gw.chat_with_context([Turn("user", "hello"), Turn("assistant", "hi"), Turn("user", "how are you?")])
    assert [m["content"] for m in gw.calls[0]["messages"]] == ["hello", "hi", "how are you?"]


def test_empty_history_is_rejected():
    with pytest.raises(EmptyHistoryError):
        FakeGateway().chat_with_context([])


# ===== chat_completion over HTTP =====

class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


@pytest.fixture
def real_gateway():
    return LLMGateway(LLMConfig(base_url="http://llm.test/v1/", api_key="sk-secret", model="m1", timeout_seconds=5))


def test_chat_completion_posts_openai_payload(monkeypatch, real_gateway):
    captured = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        captured.update(url=url, headers=headers, json=json, timeout=timeout)
        return FakeResponse(body={"choices": [{"message": {"content": "42"}}]})

    monkeypatch.setattr(requests, "post", fake_post)
    out = real_gateway.chat_completion([{"role": "user", "content": "q"}], max_tokens=1000)

    assert out == "42"
    assert captured["url"] == "http://llm.test/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer sk-secret"
    assert captured["timeout"] == 5
    payload = captured["json"]
    assert payload["model"] == "m1"
    assert payload["max_tokens"] == 1000
    assert payload["messages"][0]["role"] == "system"
    assert payload["messages"][-1] == {"role": "user", "content": "q"}


def test_generate_omits_max_tokens(monkeypatch, real_gateway):
    captured = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        captured.update(json=json)
        return FakeResponse(body={"choices": [{"message": {"content": "A pivot table summarises data."}}]})

    monkeypatch.setattr(requests, "post", fake_post)
    assert real_gateway.generate("What is a pivot table?") == "A pivot table summarises data."
    assert "max_tokens" not in captured["json"]


@pytest.mark.parametrize("response", [
    FakeResponse(status_code=401, text="invalid key sk-secret"),
    FakeResponse(body={"unexpected": True}),
    FakeResponse(body=None),
    FakeResponse(body={"choices": [{"message": {"content": None}}]}),
])
def test_bad_upstream_responses_raise_downstream_error(monkeypatch, real_gateway, response):
    monkeypatch.setattr(requests, "post", lambda *a, **k: response)
    with pytest.raises(DownstreamError) as info:
        real_gateway.chat_completion([{"role": "user", "content": "q"}])
    assert "sk-secret" not in info.value.message


@pytest.mark.parametrize("exc", [requests.Timeout("slow"), requests.ConnectionError("down")])
def test_transport_errors_raise_downstream_error(monkeypatch, real_gateway, exc):
    def fake_post(*a, **k):
        raise exc

    monkeypatch.setattr(requests, "post", fake_post)
    with pytest.raises(DownstreamError):
        real_gateway.generate("q")
