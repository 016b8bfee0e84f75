import json

import pytest

from conftest import FakeChatModel, echo_translation
from core.exceptions import ModelInvocationError
from logs.logging_config import get_request_id
from main import app
from translation.service import format_event, get_translator, status_for_error, stream_translation
from translation.translator import Translator


def use_model(model: FakeChatModel, profiles) -> None:
    app.dependency_overrides[get_translator] = lambda: Translator(model, profiles)


def parse_events(body: str):
    """Split an SSE body into (event, data, id) tuples."""
    events = []
    for block in body.strip().split("\n\n"):
        fields = {}
        for line in block.split("\n"):
            key, _, value = line.partition(": ")
            fields[key] = value
        events.append((fields.get("event"), json.loads(fields["data"]), fields.get("id")))
    return events


class TestPlainEndpoints:

    def test_simple_returns_plain_text(self, client, fake_model):
        response = client.get("/translation/simple", params={"text": "你好"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/plain; charset=utf-8"
        assert response.text == "Hello"
        assert response.headers["x-request-id"]
        assert fake_model.calls[0][2].name == "default"

    def test_custom_uses_precise_profile(self, client, fake_model):
        response = client.get(
            "/translation/custom",
            params={"text": "Bonjour", "sourceLanguage": "French", "targetLanguage": "German"}
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/plain; charset=utf-8"
        _, prompt, profile = fake_model.calls[0]
        assert profile.name == "precise"
        assert (profile.temperature, profile.top_p, profile.top_k) == (0.5, 0.7, 50)
        assert prompt == "Translate the following text from French to German:\n\nBonjour"

    def test_blank_languages_fall_back_to_defaults(self, client, fake_model):
        client.get("/translation/simple", params={"text": "你好", "sourceLanguage": "  "})

        assert fake_model.calls[0][1] == "Translate the following text from Chinese to English:\n\n你好"

    @pytest.mark.parametrize("path", ["/translation/simple", "/translation/custom"])
    def test_non_ascii_bytes_are_exact(self, client, profiles, path):
        use_model(FakeChatModel(reply_fn=echo_translation), profiles)
        text = "日本語のテキスト 🎌 Ñoño"

        response = client.get(path, params={"text": text})

        assert response.status_code == 200
        assert response.content == ("EN:" + text).encode("utf-8")

    @pytest.mark.parametrize("params", [{}, {"text": ""}, {"text": "   "}])
    def test_missing_text_is_bad_request(self, client, fake_model, params):
        response = client.get("/translation/simple", params=params)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "invalid_request"
        assert detail["retryable"] is False
        assert fake_model.call_count == 0

    @pytest.mark.parametrize("reason,status_code", [
        ("unavailable", 503),
        ("rate_limited", 503),
        ("timeout", 504),
        ("auth", 502),
        ("bad_response", 502),
    ])
    def test_model_failure_status(self, client, profiles, reason, status_code):
        use_model(FakeChatModel(error=ModelInvocationError("boom", reason=reason)), profiles)

        response = client.get("/translation/simple", params={"text": "你好"})

        assert response.status_code == status_code
        detail = response.json()["detail"]
        assert detail["error"] == "model_invocation_failed"
        assert detail["reason"] == reason

    def test_empty_reply_is_bad_gateway(self, client, profiles):
        from core.llm_client_base import ModelReply
        use_model(FakeChatModel(reply=ModelReply(results=())), profiles)

        response = client.get("/translation/custom", params={"text": "你好"})

        assert response.status_code == 502
        assert response.json()["detail"]["error"] == "empty_response"


class TestStreamEndpoint:

    def test_stream_emits_fragments_then_done(self, client):
        response = client.get("/translation/stream", params={"text": "你好"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/event-stream; charset=utf-8"
        assert response.headers["cache-control"] == "no-cache"
        events = parse_events(response.text)
        assert events[0] == ("fragment", {"index": 0, "text": "Hel"}, "0")
        assert events[1] == ("fragment", {"index": 1, "text": "lo"}, "1")
        assert events[2][0] == "done"
        assert events[2][1]["fragments"] == 2

    def test_stream_non_ascii_bytes_are_exact(self, client, profiles):
        use_model(FakeChatModel(chunks=["你", "好 🌏"]), profiles)

        response = client.get("/translation/stream", params={"text": "hello"})

        assert "你".encode("utf-8") in response.content
        assert "好 🌏".encode("utf-8") in response.content
        texts = [data["text"] for event, data, _ in parse_events(response.text) if event == "fragment"]
        assert "".join(texts) == "你好 🌏"

    def test_stream_failure_mid_stream_sends_error_event(self, client, profiles):
        model = FakeChatModel(
            chunks=["Hel", "lo"],
            error=ModelInvocationError("connection reset", reason="unavailable"),
            fail_after=1
        )
        use_model(model, profiles)

        response = client.get("/translation/stream", params={"text": "你好"})

        assert response.status_code == 200
        events = parse_events(response.text)
        assert [event for event, _, _ in events] == ["fragment", "error"]
        error = events[1][1]
        assert error["error"] == "stream_interrupted"
        assert error["fragments_delivered"] == 1
        assert error["retryable"] is True
        assert model.stream_closed

    def test_stream_without_completion_sends_error_event(self, client, profiles):
        use_model(FakeChatModel(chunks=["Hel", "lo"], complete=False), profiles)

        response = client.get("/translation/stream", params={"text": "你好"})

        events = parse_events(response.text)
        assert [event for event, _, _ in events] == ["fragment", "fragment", "error"]
        assert events[-1][1]["fragments_delivered"] == 2

    @pytest.mark.parametrize("reason,status_code", [("unavailable", 503), ("timeout", 504)])
    def test_stream_failure_before_first_fragment_is_http_error(self, client, profiles, reason, status_code):
        use_model(FakeChatModel(error=ModelInvocationError("down", reason=reason), fail_after=0), profiles)

        response = client.get("/translation/stream", params={"text": "你好"})

        assert response.status_code == status_code
        assert response.json()["detail"]["reason"] == reason

    def test_stream_missing_text_is_bad_request(self, client, fake_model):
        response = client.get("/translation/stream")

        assert response.status_code == 400
        assert fake_model.call_count == 0


class TestConfigAndHealth:

    def test_config_lists_profiles(self, client):
        response = client.get("/translation/config")

        assert response.status_code == 200
        data = response.json()
        assert data["response_charset"] == "utf-8"
        assert data["default_source_language"] == "Chinese"
        assert data["default_target_language"] == "English"
        assert [p["name"] for p in data["profiles"]] == ["default", "precise"]

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


def test_format_event_keeps_newlines_inside_data():
    encoded = format_event("fragment", {"index": 3, "text": "a\nb"}, event_id=3)

    assert encoded == b'id: 3\nevent: fragment\ndata: {"index": 3, "text": "a\\nb"}\n\n'


def test_unknown_profile_is_server_error():
    from core.exceptions import UnknownProfile

    assert status_for_error(UnknownProfile("missing", ["default"])) == 500


class ContextRecordingModel(FakeChatModel):
    """Records the request_id bound while each chunk is produced."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.seen_request_ids = []

    async def stream(self, prompt, profile):
        async for reply in super().stream(prompt, profile):
            self.seen_request_ids.append(get_request_id())
            yield reply


def test_stream_binds_request_id_for_every_fragment(client, profiles):
    model = ContextRecordingModel(chunks=["a", "b", "c", "d"])
    use_model(model, profiles)

    response = client.get("/translation/stream", params={"text": "你好"})

    assert len(model.seen_request_ids) == 4
    assert set(model.seen_request_ids) == {response.headers["x-request-id"]}


@pytest.mark.asyncio
async def test_stream_response_cleanup_closes_model_stream_without_body(profiles):
    model = FakeChatModel(chunks=["a", "b", "c"])
    translator = Translator(model, profiles)

    response = await stream_translation(
        text="你好", sourceLanguage=None, targetLanguage=None, translator=translator
    )
    # Client went away: the body is never iterated
    assert not model.stream_closed

    await response.background()

    assert model.stream_closed
