import os

# Keep tests offline and quiet before any project module reads its config
os.environ.setdefault("TOKEN_ESTIMATOR", "chars")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("TRANSLATION_EXTRA_PROFILES", "")

import asyncio
from collections.abc import Generator
from typing import Callable, List, Optional

import pytest
from fastapi.testclient import TestClient

from core.llm_client_base import GenerationProfile, ModelReply
from translation.profiles import build_profile_registry
from translation.service import get_translator
from translation.translator import Translator


class FakeChatModel:
    """
    Scripted stand-in for the chat model.

    call() answers with `reply`, or with `reply_fn(prompt)` when given.
    stream() yields `chunks`; the last one carries the finish signal unless
    `complete` is False. With `error` set, stream() raises it when it reaches
    index `fail_after` (call() raises it immediately).
    """

    def __init__(
        self,
        reply: Optional[ModelReply] = None,
        reply_fn: Optional[Callable[[str], str]] = None,
        chunks: Optional[List[str]] = None,
        error: Optional[BaseException] = None,
        fail_after: Optional[int] = None,
        complete: bool = True,
        delay: float = 0.0
    ):
        self.reply = reply or ModelReply(results=("Hello",), finish_reason="stop", model="qwen-plus")
        self.reply_fn = reply_fn
        self.chunks = chunks if chunks is not None else ["Hel", "lo"]
        self.error = error
        self.fail_after = fail_after
        self.complete = complete
        self.delay = delay
        self.calls = []
        self.stream_closed = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def call(self, prompt: str, profile: GenerationProfile) -> ModelReply:
        self.calls.append(("call", prompt, profile))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.reply_fn is not None:
            return ModelReply(results=(self.reply_fn(prompt),), finish_reason="stop", model=profile.model_id)
        return self.reply

    async def stream(self, prompt: str, profile: GenerationProfile):
        self.calls.append(("stream", prompt, profile))
        try:
            for i, text in enumerate(self.chunks):
                if self.error is not None and self.fail_after == i:
                    raise self.error
                is_last = i == len(self.chunks) - 1
                yield ModelReply(
                    results=(text,),
                    finish_reason="stop" if is_last and self.complete else None,
                    model=profile.model_id
                )
            if self.error is not None and self.fail_after is not None and self.fail_after >= len(self.chunks):
                raise self.error
        finally:
            self.stream_closed = True


def echo_translation(prompt: str) -> str:
    """Return the source text embedded in the prompt, marked as translated."""
    return "EN:" + prompt.split("\n\n", 1)[1]


@pytest.fixture()
def profiles():
    return build_profile_registry(model_id="qwen-plus", extra_profiles="")


@pytest.fixture()
def fake_model() -> FakeChatModel:
    return FakeChatModel()


@pytest.fixture()
def translator(fake_model, profiles) -> Translator:
    return Translator(fake_model, profiles)


@pytest.fixture()
def client(translator) -> Generator[TestClient, None, None]:
    from main import app

    app.dependency_overrides[get_translator] = lambda: translator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
