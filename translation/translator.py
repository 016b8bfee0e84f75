"""
Core translation logic using LLM.
"""
import uuid
from typing import AsyncIterator, Optional, Tuple, Union

from config import estimate_tokens, get_model_context_length
from core.exceptions import ModelInvocationError, StreamInterrupted
from core.llm_client_base import ChatModel, GenerationProfile
from core.validators import validate_token_count
from logs.logging_config import get_llm_logger
from .adapter import adapt, adapt_chunk
from .config import TRANSLATION_MAX_TOKEN_PERCENT
from .profiles import DEFAULT_PROFILE, ProfileRegistry, get_profile_registry
from .prompts import PromptBuilder
from .schemas import StreamFragment, TranslationMode, TranslationRequest, TranslationResult

logger = get_llm_logger("translator")


class Translator:
    """
    Translator using an injected chat model.

    Holds only read-only collaborators, so one instance serves all
    concurrent requests. Every piece of per-request state lives in the
    call itself.
    """

    def __init__(
        self,
        model: ChatModel,
        profiles: Optional[ProfileRegistry] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        max_token_percent: int = TRANSLATION_MAX_TOKEN_PERCENT
    ):
        """
        Initialize the translator.

        Args:
            model: Chat model exposing call() and stream()
            profiles: Profile registry (process-wide registry if not given)
            prompt_builder: Prompt builder (default template if not given)
            max_token_percent: Prompt budget as a percentage of the model context
        """
        self.model = model
        self.profiles = profiles or get_profile_registry()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.max_token_percent = max_token_percent

    def _prepare(self, request: TranslationRequest, profile_name: str) -> Tuple[str, GenerationProfile]:
        """Validate, render and resolve. Runs before any model call."""
        prompt = self.prompt_builder.render(
            request.text,
            request.source_language,
            request.target_language
        )
        profile = self.profiles.resolve(profile_name)

        max_tokens = int(get_model_context_length(profile.model_id) * (self.max_token_percent / 100))
        validate_token_count(estimate_tokens(prompt), max_tokens, profile.model_id, "Translation")

        return prompt, profile

    async def translate(
        self,
        request: TranslationRequest,
        profile_name: str = DEFAULT_PROFILE,
        mode: TranslationMode = TranslationMode.SYNC,
        request_id: Optional[str] = None
    ) -> Union[TranslationResult, AsyncIterator[StreamFragment]]:
        """
        Translate text.

        Args:
            request: Text and language pair
            profile_name: Generation profile to use
            mode: SYNC returns a TranslationResult; STREAM returns an async
                iterator of StreamFragment that calls the model lazily
            request_id: Identifier for log correlation

        Raises:
            InvalidRequest: Empty text, empty language, or prompt over budget
            UnknownProfile: No profile with that name
            ModelInvocationError: Remote call failed
            EmptyResponse: Model reply contained no result
        """
        request_id = request_id or str(uuid.uuid4())
        prompt, profile = self._prepare(request, profile_name)

        logger.info(
            f"[TRANSLATOR] START | request_id={request_id} | mode={mode.value} | "
            f"profile={profile.name} | model={profile.model_id} | chars={len(request.text)} | "
            f"{request.source_language} -> {request.target_language}"
        )

        if mode == TranslationMode.STREAM:
            return self._stream(prompt, profile, request_id)

        reply = await self.model.call(prompt, profile)
        translated_text = adapt(reply)

        logger.info(
            f"[TRANSLATOR] END | request_id={request_id} | output_chars={len(translated_text)} | "
            f"finish_reason={reply.finish_reason}"
        )

        return TranslationResult(
            text=translated_text,
            model=reply.model or profile.model_id,
            profile=profile.name,
            finish_reason=reply.finish_reason
        )

    async def _stream(
        self,
        prompt: str,
        profile: GenerationProfile,
        request_id: str
    ) -> AsyncIterator[StreamFragment]:
        """
        Yield one fragment per content chunk until the model signals completion.

        A failure before the first fragment propagates as ModelInvocationError.
        Once fragments have been delivered, failures and premature ends raise
        StreamInterrupted. The model stream is closed on every exit path.
        """
        chunks = self.model.stream(prompt, profile)
        index = 0
        completed = False

        try:
            async for reply in chunks:
                if reply.results:
                    yield adapt_chunk(reply, index)
                    index += 1
                if reply.finish_reason is not None:
                    completed = True
                    break

        except ModelInvocationError as e:
            if index == 0:
                logger.error(
                    f"[TRANSLATOR] STREAM FAILED | request_id={request_id} | reason={e.reason}"
                )
                raise
            logger.error(
                f"[TRANSLATOR] STREAM INTERRUPTED | request_id={request_id} | "
                f"fragments={index} | reason={e.reason}"
            )
            raise StreamInterrupted(
                f"Stream interrupted after {index} fragment(s): {e}",
                fragments_delivered=index,
                cause=e
            ) from e

        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()

        if not completed:
            logger.error(
                f"[TRANSLATOR] STREAM INTERRUPTED | request_id={request_id} | "
                f"fragments={index} | reason=no_completion_signal"
            )
            raise StreamInterrupted(
                f"Stream ended after {index} fragment(s) without a completion signal",
                fragments_delivered=index
            )

        logger.info(f"[TRANSLATOR] STREAM END | request_id={request_id} | fragments={index}")
