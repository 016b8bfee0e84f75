import pytest

from core.exceptions import EmptyResponse
from core.llm_client_base import ModelReply
from translation.adapter import adapt, adapt_chunk


def test_adapt_returns_top_result():
    reply = ModelReply(results=("first", "second"), finish_reason="stop")

    assert adapt(reply) == "first"


def test_adapt_without_result_raises():
    with pytest.raises(EmptyResponse):
        adapt(ModelReply(results=()))


def test_adapt_keeps_empty_string_result():
    assert adapt(ModelReply(results=("",))) == ""


def test_adapt_chunk_numbers_fragment():
    fragment = adapt_chunk(ModelReply(results=("lo",)), 1)

    assert fragment.sequence_index == 1
    assert fragment.text == "lo"
