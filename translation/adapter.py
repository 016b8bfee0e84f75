"""
Response adapter: model reply envelopes to caller-facing text.
"""
from core.exceptions import EmptyResponse
from core.llm_client_base import ModelReply
from .schemas import StreamFragment


def adapt(reply: ModelReply) -> str:
    """
    Extract the text of the top result.

    Raises:
        EmptyResponse: If the reply carries no result at all
    """
    if not reply.results:
        raise EmptyResponse("Model reply contained no result")
    return reply.results[0]


def adapt_chunk(reply: ModelReply, index: int) -> StreamFragment:
    """Map one stream chunk to one fragment. No merging, no reordering."""
    return StreamFragment(sequence_index=index, text=adapt(reply))
