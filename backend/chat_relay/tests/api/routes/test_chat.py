from fastapi.testclient import TestClient

from chat_relay.core.config import settings
from chat_relay.core.errors import UpstreamRejection
from chat_relay.providers.gemini_provider import GeminiProvider

CHAT_URL = f"{settings.API_PREFIX}/chat"


def test_chat_streams_fragments_then_done(client: TestClient, scripted, chat_payload: dict) -> None:
    provider = scripted("Hel", "lo!")
    r = client.post(CHAT_URL, json=chat_payload)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.headers["cache-control"] == "no-cache, no-transform"
    assert r.text == 'data: {"text":"Hel"}\n\ndata: {"text":"lo!"}\n\ndata: [DONE]\n\n'
    assert provider.seeds == [[]]
    assert provider.turns == ["hi"]
    assert provider.params[0].top_k == 40


def test_chat_forwards_prior_turns_as_seed(client: TestClient, scripted, chat_payload: dict) -> None:
    provider = scripted("fine")
    chat_payload["messages"] = [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "hi there"},
        {"role": "user", "content": "how are you?"},
    ]
    r = client.post(CHAT_URL, json=chat_payload)
    assert r.status_code == 200
    assert [(t.role, t.text) for t in provider.seeds[0]] == [("user", "hello"), ("model", "hi there")]
    assert provider.turns == ["how are you?"]


def test_chat_midstream_failure_is_an_error_frame(client: TestClient, scripted, chat_payload: dict) -> None:
    scripted("partial ", "answer", fail_after=1, stream_error=RuntimeError("connection reset"))
    r = client.post(CHAT_URL, json=chat_payload)
    assert r.status_code == 200
    assert r.text == 'data: {"text":"partial "}\n\ndata: {"error":"connection reset"}\n\n'


def test_chat_empty_upstream_stream(client: TestClient, scripted, chat_payload: dict) -> None:
    scripted()
    r = client.post(CHAT_URL, json=chat_payload)
    assert r.status_code == 200
    assert r.text == "data: [DONE]\n\n"


def test_chat_missing_credential_is_plain_error(client: TestClient, use_provider, chat_payload: dict) -> None:
    use_provider(GeminiProvider(api_key=None))
    r = client.post(CHAT_URL, json=chat_payload)
    assert r.status_code == 500
    assert r.headers["content-type"] == "application/json"
    assert r.json() == {"error": "API key not configured"}
    assert "data:" not in r.text


def test_chat_rejection_before_stream_is_502(client: TestClient, scripted, chat_payload: dict) -> None:
    scripted(send_error=UpstreamRejection("Gemini API error 400: model not found"))
    r = client.post(CHAT_URL, json=chat_payload)
    assert r.status_code == 502
    assert r.json() == {"error": "Gemini API error 400: model not found"}


def test_chat_unexpected_open_failure_is_500(client: TestClient, scripted, chat_payload: dict) -> None:
    scripted(send_error=ValueError("socket closed"))
    r = client.post(CHAT_URL, json=chat_payload)
    assert r.status_code == 500
    assert r.json() == {"error": "socket closed"}


def test_chat_requires_at_least_one_message(client: TestClient, scripted, chat_payload: dict) -> None:
    provider = scripted("never")
    chat_payload["messages"] = []
    r = client.post(CHAT_URL, json=chat_payload)
    assert r.status_code == 500
    assert "messages" in r.json()["error"]
    assert provider.turns == []


def test_chat_rejects_unknown_role(client: TestClient, scripted, chat_payload: dict) -> None:
    scripted("never")
    chat_payload["messages"] = [{"role": "system", "content": "x"}]
    r = client.post(CHAT_URL, json=chat_payload)
    assert r.status_code == 500
    assert "error" in r.json()


def test_chat_settings_are_optional(client: TestClient, scripted) -> None:
    provider = scripted("ok")
    r = client.post(CHAT_URL, json={"messages": [{"role": "user", "content": "hi"}]})
    assert r.status_code == 200
    assert provider.params[0].model == "gemini-1.5-pro"
    assert provider.params[0].system_instruction is None


def test_chat_echoes_request_id(client: TestClient, scripted, chat_payload: dict) -> None:
    scripted("ok")
    r = client.post(CHAT_URL, json=chat_payload, headers={"X-Request-ID": "abc123"})
    assert r.headers["x-request-id"] == "abc123"


def test_chat_unparseable_body_is_plain_error(client: TestClient, scripted) -> None:
    provider = scripted("never")
    r = client.post(CHAT_URL, content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 500
    assert "error" in r.json()
    assert "data:" not in r.text
    assert provider.turns == []
