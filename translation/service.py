"""
Translation Service

FastAPI endpoints for text translation using LLM.

Every response declares its charset explicitly and encodes the body with it,
so non-ASCII text reaches the client byte-exact on both the plain and the
streaming endpoints.
"""
import json
import uuid
from typing import AsyncIterator, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse, StreamingResponse

from core.exceptions import (
    EmptyResponse,
    InvalidRequest,
    ModelInvocationError,
    StreamInterrupted,
    TranslationError,
    UnknownProfile,
)
from logs.logging_config import RequestContext, get_llm_logger, set_user_id
from .config import (
    TRANSLATION_DEFAULT_MODEL,
    TRANSLATION_LLM_BACKEND,
    TRANSLATION_DEFAULT_SOURCE_LANGUAGE,
    TRANSLATION_DEFAULT_TARGET_LANGUAGE,
    TRANSLATION_RESPONSE_CHARSET,
)
from .profiles import DEFAULT_PROFILE, PRECISE_PROFILE
from .schemas import (
    GenerationProfileInfo,
    StreamFragment,
    TranslationConfigResponse,
    TranslationMode,
    TranslationRequest,
)
from .translator import Translator

logger = get_llm_logger("service")

PLAIN_TEXT_MEDIA_TYPE = f"text/plain; charset={TRANSLATION_RESPONSE_CHARSET}"
EVENT_STREAM_MEDIA_TYPE = f"text/event-stream; charset={TRANSLATION_RESPONSE_CHARSET}"


# =====================
# Dependencies
# =====================

def get_translator(request: Request) -> Translator:
    """Translator built once at startup (see main.lifespan)."""
    return request.app.state.translator


async def bind_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> Optional[str]:
    """Attach the caller's user id to log records of this request."""
    set_user_id(x_user_id)
    return x_user_id


# Create router
router = APIRouter(prefix="/translation", tags=["Translation"], dependencies=[Depends(bind_user_id)])


# =====================
# Error Mapping
# =====================

def status_for_error(exc: TranslationError) -> int:
    if isinstance(exc, InvalidRequest):
        return 400
    if isinstance(exc, UnknownProfile):
        return 500
    if isinstance(exc, ModelInvocationError):
        if exc.reason == "timeout":
            return 504
        if exc.reason in ("unavailable", "rate_limited"):
            return 503
        return 502
    if isinstance(exc, (EmptyResponse, StreamInterrupted)):
        return 502
    return 500


def error_detail(exc: TranslationError, request_id: str) -> dict:
    detail = {
        "error": exc.code,
        "message": str(exc),
        "request_id": request_id,
        "retryable": exc.retryable,
    }
    if isinstance(exc, InvalidRequest):
        detail.update(exc.details)
    if isinstance(exc, ModelInvocationError):
        detail["reason"] = exc.reason
    if isinstance(exc, StreamInterrupted):
        detail["fragments_delivered"] = exc.fragments_delivered
    return detail


def to_http_exception(exc: TranslationError, request_id: str) -> HTTPException:
    status_code = status_for_error(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        f"[TRANSLATE] ERROR | request_id={request_id} | status={status_code} | "
        f"error={exc.code} | message={exc}"
    )
    return HTTPException(status_code=status_code, detail=error_detail(exc, request_id))


# =====================
# Server-Sent Events
# =====================

def format_event(event: str, data: dict, event_id: Optional[int] = None) -> bytes:
    """Encode one SSE event. JSON keeps newlines inside the data line."""
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data, ensure_ascii=False)}")
    return ("\n".join(lines) + "\n\n").encode(TRANSLATION_RESPONSE_CHARSET)


def format_fragment(fragment: StreamFragment) -> bytes:
    return format_event(
        "fragment",
        {"index": fragment.sequence_index, "text": fragment.text},
        event_id=fragment.sequence_index
    )


async def _pull_fragment(fragments: AsyncIterator[StreamFragment], request_id: str) -> Optional[StreamFragment]:
    """Advance the stream with request_id bound, so log records from the pipeline carry it."""
    with RequestContext(request_id):
        try:
            return await fragments.__anext__()
        except StopAsyncIteration:
            return None


async def _sse_events(
    fragments: AsyncIterator[StreamFragment],
    first: Optional[StreamFragment],
    request_id: str
) -> AsyncIterator[bytes]:
    delivered = 0
    fragment = first
    try:
        while fragment is not None:
            yield format_fragment(fragment)
            delivered += 1
            fragment = await _pull_fragment(fragments, request_id)

    except TranslationError as e:
        with RequestContext(request_id):
            logger.error(
                f"[TRANSLATE_STREAM] ERROR | request_id={request_id} | fragments={delivered} | "
                f"error={e.code} | message={e}"
            )
        yield format_event("error", error_detail(e, request_id))
        return

    finally:
        # Client disconnects land here too; closing releases the model connection
        await fragments.aclose()

    with RequestContext(request_id):
        logger.info(f"[TRANSLATE_STREAM] END | request_id={request_id} | fragments={delivered}")
    yield format_event("done", {"fragments": delivered, "request_id": request_id})


# =====================
# API Endpoints
# =====================

async def _translate_plain(
    translator: Translator,
    text: Optional[str],
    source_language: Optional[str],
    target_language: Optional[str],
    profile_name: str,
    tag: str
) -> PlainTextResponse:
    request_id = str(uuid.uuid4())
    translation_request = TranslationRequest.from_params(text, source_language, target_language)

    logger.info(
        f"[{tag}] START | request_id={request_id} | chars={len(translation_request.text)} | "
        f"profile={profile_name} | {translation_request.source_language} -> "
        f"{translation_request.target_language}"
    )

    try:
        with RequestContext(request_id):
            result = await translator.translate(
                translation_request,
                profile_name,
                TranslationMode.SYNC,
                request_id=request_id
            )
    except TranslationError as e:
        raise to_http_exception(e, request_id)

    logger.info(f"[{tag}] END | request_id={request_id} | output_chars={len(result.text)}")

    return PlainTextResponse(
        result.text,
        media_type=PLAIN_TEXT_MEDIA_TYPE,
        headers={"X-Request-ID": request_id}
    )


@router.get("/simple", response_class=PlainTextResponse)
async def simple_translation(
    text: Optional[str] = Query(None, description="Text to translate"),
    sourceLanguage: Optional[str] = Query(None, description="Source language"),
    targetLanguage: Optional[str] = Query(None, description="Target language"),
    translator: Translator = Depends(get_translator)
):
    """
    Translate text with the default generation profile.

    **Returns:** the translated text as `text/plain; charset=utf-8`.
    """
    return await _translate_plain(
        translator, text, sourceLanguage, targetLanguage, DEFAULT_PROFILE, "TRANSLATE_SIMPLE"
    )


@router.get("/custom", response_class=PlainTextResponse)
async def custom_translation(
    text: Optional[str] = Query(None, description="Text to translate"),
    sourceLanguage: Optional[str] = Query(None, description="Source language"),
    targetLanguage: Optional[str] = Query(None, description="Target language"),
    translator: Translator = Depends(get_translator)
):
    """
    Translate text with the `precise` profile (temperature 0.5, top_p 0.7, top_k 50).

    **Returns:** the translated text as `text/plain; charset=utf-8`.
    """
    return await _translate_plain(
        translator, text, sourceLanguage, targetLanguage, PRECISE_PROFILE, "TRANSLATE_CUSTOM"
    )


@router.get("/stream")
async def stream_translation(
    text: Optional[str] = Query(None, description="Text to translate"),
    sourceLanguage: Optional[str] = Query(None, description="Source language"),
    targetLanguage: Optional[str] = Query(None, description="Target language"),
    translator: Translator = Depends(get_translator)
):
    """
    Stream the translation as Server-Sent Events.

    **Events:**
    - `fragment`: `{"index": n, "text": "..."}`, in order, `id` = index
    - `done`: the model finished; `{"fragments": count}`
    - `error`: the stream broke off; same fields as an HTTP error detail

    Failures before the first fragment are returned as a regular HTTP error.
    """
    request_id = str(uuid.uuid4())
    translation_request = TranslationRequest.from_params(text, sourceLanguage, targetLanguage)

    logger.info(
        f"[TRANSLATE_STREAM] START | request_id={request_id} | chars={len(translation_request.text)} | "
        f"{translation_request.source_language} -> {translation_request.target_language}"
    )

    try:
        with RequestContext(request_id):
            fragments = await translator.translate(
                translation_request,
                DEFAULT_PROFILE,
                TranslationMode.STREAM,
                request_id=request_id
            )
        first = await _pull_fragment(fragments, request_id)
    except TranslationError as e:
        raise to_http_exception(e, request_id)

    # The model stream is already open. Closing it again after the response
    # covers a client that leaves before the body starts.
    cleanup = BackgroundTasks()
    cleanup.add_task(fragments.aclose)

    return StreamingResponse(
        _sse_events(fragments, first, request_id),
        media_type=EVENT_STREAM_MEDIA_TYPE,
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            "X-Request-ID": request_id,
        },
        background=cleanup
    )


@router.get("/config", response_model=TranslationConfigResponse)
async def get_translation_config(translator: Translator = Depends(get_translator)):
    """
    Get the translation configuration.

    **Returns:**
    - Default model, backend and languages
    - Available generation profiles
    """
    return TranslationConfigResponse(
        default_model=TRANSLATION_DEFAULT_MODEL,
        backend=TRANSLATION_LLM_BACKEND,
        default_source_language=TRANSLATION_DEFAULT_SOURCE_LANGUAGE,
        default_target_language=TRANSLATION_DEFAULT_TARGET_LANGUAGE,
        response_charset=TRANSLATION_RESPONSE_CHARSET,
        profiles=[GenerationProfileInfo(**info) for info in translator.profiles.describe()]
    )
