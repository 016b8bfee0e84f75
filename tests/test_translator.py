import asyncio

import pytest

from conftest import FakeChatModel, echo_translation
from core.exceptions import (
    EmptyResponse,
    InvalidRequest,
    ModelInvocationError,
    StreamInterrupted,
    UnknownProfile,
)
from core.llm_client_base import ModelReply
from translation.schemas import TranslationMode, TranslationRequest, TranslationResult
from translation.translator import Translator


async def collect(fragments):
    return [(f.sequence_index, f.text) async for f in fragments]


@pytest.mark.asyncio
async def test_sync_translation(translator, fake_model):
    result = await translator.translate(TranslationRequest(text="你好"))

    assert isinstance(result, TranslationResult)
    assert result.text == "Hello"
    assert result.profile == "default"
    assert fake_model.call_count == 1
    kind, prompt, profile = fake_model.calls[0]
    assert kind == "call"
    assert prompt == "Translate the following text from Chinese to English:\n\n你好"
    assert profile.name == "default"


@pytest.mark.asyncio
async def test_precise_profile_reaches_model(translator, fake_model):
    await translator.translate(TranslationRequest(text="你好"), "precise")

    _, _, profile = fake_model.calls[0]
    assert (profile.temperature, profile.top_p, profile.top_k) == (0.5, 0.7, 50)


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", [TranslationMode.SYNC, TranslationMode.STREAM])
async def test_blank_text_rejected_before_model_call(translator, fake_model, mode):
    with pytest.raises(InvalidRequest):
        await translator.translate(TranslationRequest(text="   "), "default", mode)

    assert fake_model.call_count == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", [TranslationMode.SYNC, TranslationMode.STREAM])
async def test_unknown_profile_rejected_before_model_call(translator, fake_model, mode):
    with pytest.raises(UnknownProfile):
        await translator.translate(TranslationRequest(text="你好"), "unknown", mode)

    assert fake_model.call_count == 0


@pytest.mark.asyncio
async def test_prompt_over_token_budget_rejected(fake_model, profiles):
    translator = Translator(fake_model, profiles, max_token_percent=1)
    # qwen-plus context is 131072 tokens, 1% is 1310; chars estimate is len // 4
    request = TranslationRequest(text="x" * 10000)

    with pytest.raises(InvalidRequest) as exc_info:
        await translator.translate(request)

    assert exc_info.value.code == "token_limit_exceeded"
    assert fake_model.call_count == 0


@pytest.mark.asyncio
async def test_sync_empty_reply_raises(profiles):
    model = FakeChatModel(reply=ModelReply(results=()))
    translator = Translator(model, profiles)

    with pytest.raises(EmptyResponse):
        await translator.translate(TranslationRequest(text="你好"))


@pytest.mark.asyncio
async def test_sync_model_error_propagates(profiles):
    model = FakeChatModel(error=ModelInvocationError("timed out", reason="timeout"))
    translator = Translator(model, profiles)

    with pytest.raises(ModelInvocationError) as exc_info:
        await translator.translate(TranslationRequest(text="你好"))

    assert exc_info.value.is_timeout
    assert exc_info.value.retryable
    assert model.call_count == 1


@pytest.mark.asyncio
async def test_stream_fragments_in_order(translator, fake_model):
    fragments = await translator.translate(TranslationRequest(text="你好"), "default", TranslationMode.STREAM)

    # Nothing is sent until the stream is consumed
    assert fake_model.call_count == 0

    collected = await collect(fragments)

    assert collected == [(0, "Hel"), (1, "lo")]
    assert "".join(text for _, text in collected) == "Hello"
    assert fake_model.call_count == 1
    assert fake_model.stream_closed


@pytest.mark.asyncio
async def test_stream_is_not_restartable(translator):
    fragments = await translator.translate(TranslationRequest(text="你好"), "default", TranslationMode.STREAM)

    assert len(await collect(fragments)) == 2
    assert await collect(fragments) == []


@pytest.mark.asyncio
async def test_stream_failure_after_one_chunk(profiles):
    model = FakeChatModel(
        chunks=["Hel", "lo"],
        error=ModelInvocationError("connection reset", reason="unavailable"),
        fail_after=1
    )
    translator = Translator(model, profiles)
    fragments = await translator.translate(TranslationRequest(text="你好"), "default", TranslationMode.STREAM)

    received = []
    with pytest.raises(StreamInterrupted) as exc_info:
        async for fragment in fragments:
            received.append((fragment.sequence_index, fragment.text))

    assert received == [(0, "Hel")]
    assert exc_info.value.fragments_delivered == 1
    assert isinstance(exc_info.value.cause, ModelInvocationError)
    assert exc_info.value.retryable
    assert model.stream_closed


@pytest.mark.asyncio
async def test_stream_failure_before_first_chunk_is_invocation_error(profiles):
    model = FakeChatModel(error=ModelInvocationError("refused", reason="unavailable"), fail_after=0)
    translator = Translator(model, profiles)
    fragments = await translator.translate(TranslationRequest(text="你好"), "default", TranslationMode.STREAM)

    with pytest.raises(ModelInvocationError):
        await collect(fragments)


@pytest.mark.asyncio
async def test_stream_without_completion_signal_is_interrupted(profiles):
    model = FakeChatModel(chunks=["Hel", "lo"], complete=False)
    translator = Translator(model, profiles)
    fragments = await translator.translate(TranslationRequest(text="你好"), "default", TranslationMode.STREAM)

    received = []
    with pytest.raises(StreamInterrupted) as exc_info:
        async for fragment in fragments:
            received.append(fragment.text)

    assert received == ["Hel", "lo"]
    assert exc_info.value.fragments_delivered == 2
    assert exc_info.value.cause is None


@pytest.mark.asyncio
async def test_abandoned_stream_releases_model_stream(profiles):
    model = FakeChatModel(chunks=["a", "b", "c", "d"])
    translator = Translator(model, profiles)
    fragments = await translator.translate(TranslationRequest(text="你好"), "default", TranslationMode.STREAM)

    first = await fragments.__anext__()
    await fragments.aclose()

    assert first.text == "a"
    assert model.stream_closed


@pytest.mark.asyncio
async def test_multibyte_text_preserved(profiles):
    text = "翻译测试 🌏 ñandú — Ünïcödé"
    model = FakeChatModel(reply_fn=echo_translation, chunks=["翻译", "测试 🌏", " ñandú"])
    translator = Translator(model, profiles)

    result = await translator.translate(TranslationRequest(text=text, source_language="Mixed"))
    fragments = await translator.translate(TranslationRequest(text=text), "default", TranslationMode.STREAM)
    streamed = "".join([f.text async for f in fragments])

    assert result.text.encode("utf-8") == ("EN:" + text).encode("utf-8")
    assert streamed == "翻译测试 🌏 ñandú"


@pytest.mark.asyncio
async def test_concurrent_requests_do_not_cross_talk(profiles):
    model = FakeChatModel(reply_fn=echo_translation, delay=0.01)
    translator = Translator(model, profiles)
    texts = [f"sentence {i} 第{i}句" for i in range(20)]

    results = await asyncio.gather(*[
        translator.translate(TranslationRequest(text=text), "precise" if i % 2 else "default")
        for i, text in enumerate(texts)
    ])

    for i, (text, result) in enumerate(zip(texts, results)):
        assert result.text == "EN:" + text
        assert result.profile == ("precise" if i % 2 else "default")
    sent_prompts = sorted(prompt for _, prompt, _ in model.calls)
    assert sent_prompts == sorted(
        f"Translate the following text from Chinese to English:\n\n{text}" for text in texts
    )
