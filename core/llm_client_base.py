"""
Base LLM Client

Provides the chat-model capability the translation pipeline depends on:
a blocking `call` and an incremental `stream`, both driven by an immutable
GenerationProfile.

Features:
- Supports OpenAI-compatible backends (DashScope compatible mode, VLLM) and Ollama
- Connection pooling per instance
- Comprehensive logging
- Errors mapped to ModelInvocationError with a retry-relevant reason

Usage:
    config = LLMConfig(
        backend="openai",
        base_url="https://dashscope.aliyuncs.com/compatible-mode/v1",
        api_key="sk-...",
        task_name="translate"
    )

    client = BaseLLMClient(config)
    reply = await client.call(prompt, GenerationProfile(name="default", model_id="qwen-plus"))
    async for chunk in client.stream(prompt, profile):
        ...
"""

import time
import json
import asyncio
import aiohttp
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional, Protocol, Tuple

from core.exceptions import ModelInvocationError, ProfileConfigurationError
from logs.logging_config import (
    get_llm_logger,
    log_llm_request,
    log_llm_response,
    log_metrics,
)

logger = get_llm_logger("client")


@dataclass(frozen=True)
class GenerationProfile:
    """
    Named, immutable set of generation parameters.

    Values are validated on construction; an out-of-range value raises
    ProfileConfigurationError, which is meant to abort startup.
    """
    name: str
    model_id: str
    temperature: float = 1.0
    top_p: Optional[float] = None
    top_k: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.model_id, str) or not self.model_id.strip():
            raise ProfileConfigurationError(f"Profile '{self.name}': model_id must be a non-empty string")
        if not _is_number(self.temperature) or not 0.0 <= self.temperature <= 2.0:
            raise ProfileConfigurationError(
                f"Profile '{self.name}': temperature must be in [0, 2], got {self.temperature!r}"
            )
        if self.top_p is not None and (not _is_number(self.top_p) or not 0.0 <= self.top_p <= 1.0):
            raise ProfileConfigurationError(
                f"Profile '{self.name}': top_p must be in [0, 1], got {self.top_p!r}"
            )
        if self.top_k is not None and (
            isinstance(self.top_k, bool) or not isinstance(self.top_k, int) or self.top_k < 0
        ):
            raise ProfileConfigurationError(
                f"Profile '{self.name}': top_k must be an integer >= 0, got {self.top_k!r}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "model_id": self.model_id,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class ModelReply:
    """
    Reply envelope from the model, for a full call or a single stream chunk.

    A non-None finish_reason is the model's completion signal.
    """
    results: Tuple[str, ...] = ()
    finish_reason: Optional[str] = None
    model: Optional[str] = None


class ChatModel(Protocol):
    """Model capability consumed by the translation pipeline."""

    async def call(self, prompt: str, profile: GenerationProfile) -> ModelReply:
        ...

    def stream(self, prompt: str, profile: GenerationProfile) -> AsyncIterator[ModelReply]:
        ...


@dataclass
class LLMConfig:
    """
    Configuration for an LLM client instance.

    Example:
        translation_config = LLMConfig(
            backend="openai",
            base_url="https://dashscope.aliyuncs.com/compatible-mode/v1",
            api_key=os.getenv("DASHSCOPE_API_KEY"),
            task_name="translate"
        )
    """
    # Backend selection: "openai" or "ollama"
    backend: str = "openai"

    # OpenAI-compatible settings (DashScope compatible mode, VLLM)
    base_url: str = "https://dashscope.aliyuncs.com/compatible-mode/v1"
    api_key: Optional[str] = None

    # Ollama settings
    ollama_url: str = "http://localhost:11434"

    # Connection settings
    timeout: int = 300
    connect_timeout: int = 10
    pool_limit: int = 50

    # Logging identifier
    task_name: str = "unknown"

    def get_backend_url(self) -> str:
        """Get the URL for the configured backend."""
        if self.backend == "ollama":
            return self.ollama_url
        return self.base_url


# =========================
# Wire Format Helpers
# =========================

def build_openai_payload(prompt: str, profile: GenerationProfile, stream: bool) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "model": profile.model_id,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": profile.temperature,
        "stream": stream,
    }
    if profile.top_p is not None:
        payload["top_p"] = profile.top_p
    if profile.top_k is not None:
        payload["top_k"] = profile.top_k
    return payload


def build_ollama_payload(prompt: str, profile: GenerationProfile, stream: bool) -> Dict[str, Any]:
    options: Dict[str, Any] = {"temperature": profile.temperature}
    if profile.top_p is not None:
        options["top_p"] = profile.top_p
    if profile.top_k is not None:
        options["top_k"] = profile.top_k
    return {
        "model": profile.model_id,
        "prompt": prompt,
        "stream": stream,
        "options": options,
    }


def _require_object(data: Any, source: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ModelInvocationError(
            f"Malformed {source}: expected a JSON object, got {type(data).__name__}",
            reason="bad_response"
        )
    return data


def parse_openai_completion(data: Any) -> ModelReply:
    """Parse a non-streaming /chat/completions body."""
    data = _require_object(data, "completion response")
    try:
        choices = data.get("choices") or []
        results = tuple((choice.get("message") or {}).get("content") or "" for choice in choices)
        finish_reason = choices[0].get("finish_reason") if choices else None
    except (AttributeError, TypeError) as e:
        raise ModelInvocationError(f"Malformed completion response: {e}", reason="bad_response")
    return ModelReply(results=results, finish_reason=finish_reason, model=data.get("model"))


def parse_ollama_completion(data: Any) -> ModelReply:
    """Parse a non-streaming /api/generate body."""
    data = _require_object(data, "completion response")
    if "error" in data:
        raise ModelInvocationError(f"Model returned an error: {data['error']}", reason="model_error")
    return ModelReply(
        results=(data["response"],) if "response" in data else (),
        finish_reason=data.get("done_reason"),
        model=data.get("model")
    )


def parse_openai_stream_line(line: str) -> Optional[ModelReply]:
    """
    Parse one SSE line of a streaming /chat/completions response.

    Returns None for lines that carry neither content nor a finish signal
    (comments, keep-alives, role-only deltas, usage-only chunks).
    """
    if not line.startswith("data:"):
        return None
    data_str = line[5:].strip()
    if data_str == "[DONE]":
        return ModelReply(finish_reason="stop")
    try:
        data = json.loads(data_str)
    except json.JSONDecodeError:
        logger.debug(f"[STREAM] Skipping malformed line | line={data_str[:80]}")
        return None
    data = _require_object(data, "stream chunk")
    try:
        choices = data.get("choices") or []
        if not choices:
            return None
        choice = choices[0]
        token = (choice.get("delta") or {}).get("content") or ""
        finish_reason = choice.get("finish_reason")
    except (AttributeError, TypeError) as e:
        raise ModelInvocationError(f"Malformed stream chunk: {e}", reason="bad_response")
    if not token and finish_reason is None:
        return None
    return ModelReply(
        results=(token,) if token else (),
        finish_reason=finish_reason,
        model=data.get("model"),
    )


def parse_ollama_line(line: str) -> Optional[ModelReply]:
    """Parse one NDJSON line of an Ollama /api/generate response."""
    if not line:
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.debug(f"[STREAM] Skipping malformed line | line={line[:80]}")
        return None
    data = _require_object(data, "stream chunk")
    if "error" in data:
        raise ModelInvocationError(f"Model returned an error: {data['error']}", reason="model_error")
    token = data.get("response", "")
    done = bool(data.get("done", False))
    if not token and not done:
        return None
    return ModelReply(
        results=(token,) if token else (),
        finish_reason=(data.get("done_reason") or "stop") if done else None,
        model=data.get("model"),
    )


def reason_for_status(status: int) -> str:
    if status in (401, 403):
        return "auth"
    if status == 429:
        return "rate_limited"
    if status >= 500:
        return "unavailable"
    return "bad_request"


def to_invocation_error(exc: BaseException, task_name: str = "llm") -> ModelInvocationError:
    """Map a transport exception to ModelInvocationError without leaking request details."""
    label = task_name.title()
    if isinstance(exc, ModelInvocationError):
        return exc
    if isinstance(exc, asyncio.TimeoutError):
        return ModelInvocationError(f"{label} LLM request timed out. Please try again.", reason="timeout")
    if isinstance(exc, (aiohttp.ContentTypeError, ValueError, KeyError, AttributeError, TypeError)):
        return ModelInvocationError(f"{label} LLM returned an unreadable response.", reason="bad_response")
    if isinstance(exc, aiohttp.ClientResponseError):
        reason = reason_for_status(exc.status)
        return ModelInvocationError(
            f"{label} LLM request failed with HTTP {exc.status} ({reason}).",
            reason=reason,
            status=exc.status,
        )
    return ModelInvocationError(
        f"{label} LLM service unavailable. Please try again later.", reason="unavailable"
    )


class BaseLLMClient:
    """
    Chat-model client shared by the whole process.

    Holds no per-request state: every call builds its own payload from the
    prompt and profile, so one instance serves concurrent requests.

    Example:
        client = BaseLLMClient(LLMConfig(backend="ollama"))
        reply = await client.call("Translate this to Spanish", profile)
    """

    def __init__(self, config: LLMConfig):
        """
        Initialize LLM client.

        Args:
            config: LLMConfig with backend, URL, credentials and connection settings
        """
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

        logger.debug(
            f"[{config.task_name.upper()}_LLM] Initialized | "
            f"backend={config.backend} | url={config.get_backend_url()}"
        )

    async def get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session for this instance."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                total=self.config.timeout,
                connect=self.config.connect_timeout
            )
            connector = aiohttp.TCPConnector(
                limit=self.config.pool_limit,
                limit_per_host=self.config.pool_limit
            )
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                connector=connector
            )
            logger.debug(
                f"[{self.config.task_name.upper()}_LLM] Session created | "
                f"backend={self.config.backend}"
            )
        return self._session

    async def close(self):
        """Close this instance's session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
            logger.debug(f"[{self.config.task_name.upper()}_LLM] Session closed")

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _build_request(self, prompt: str, profile: GenerationProfile, stream: bool) -> Tuple[str, Dict[str, Any]]:
        if self.config.backend == "ollama":
            return f"{self.config.ollama_url}/api/generate", build_ollama_payload(prompt, profile, stream)
        return f"{self.config.base_url}/chat/completions", build_openai_payload(prompt, profile, stream)

    def _parse_stream_line(self, line: str) -> Optional[ModelReply]:
        if self.config.backend == "ollama":
            return parse_ollama_line(line)
        return parse_openai_stream_line(line)

    async def call(self, prompt: str, profile: GenerationProfile) -> ModelReply:
        """
        Send one blocking completion request.

        Raises:
            ModelInvocationError: on any transport, auth or protocol failure
        """
        url, payload = self._build_request(prompt, profile, stream=False)
        request_id = log_llm_request(
            model=profile.model_id,
            backend=self.config.backend,
            task=self.config.task_name,
            prompt=prompt,
            temperature=profile.temperature,
            top_p=profile.top_p,
            top_k=profile.top_k
        )
        start_time = time.time()

        try:
            session = await self.get_session()
            async with session.post(url, json=payload, headers=self._headers()) as r:
                r.raise_for_status()
                data = await r.json()
            if self.config.backend == "ollama":
                reply = parse_ollama_completion(data)
            else:
                reply = parse_openai_completion(data)

        except (
            ModelInvocationError, asyncio.TimeoutError, aiohttp.ClientError,
            ValueError, KeyError, AttributeError, TypeError
        ) as e:
            error = to_invocation_error(e, self.config.task_name)
            latency_ms = (time.time() - start_time) * 1000
            log_llm_response(
                request_id=request_id,
                model=profile.model_id,
                backend=self.config.backend,
                response="",
                latency_ms=latency_ms,
                status="error",
                error_message=f"{error.reason}: {error}"
            )
            log_metrics(
                request_id=request_id,
                model=profile.model_id,
                backend=self.config.backend,
                task=self.config.task_name,
                latency_ms=latency_ms,
                prompt_chars=len(prompt),
                response_chars=0,
                status="error",
                error_reason=error.reason
            )
            if error is e:
                raise
            raise error from e

        latency_ms = (time.time() - start_time) * 1000
        text = reply.results[0] if reply.results else ""
        log_llm_response(
            request_id=request_id,
            model=profile.model_id,
            backend=self.config.backend,
            response=text,
            latency_ms=latency_ms,
            status="success"
        )
        log_metrics(
            request_id=request_id,
            model=profile.model_id,
            backend=self.config.backend,
            task=self.config.task_name,
            latency_ms=latency_ms,
            prompt_chars=len(prompt),
            response_chars=len(text),
            status="success"
        )
        return reply

    async def stream(self, prompt: str, profile: GenerationProfile) -> AsyncIterator[ModelReply]:
        """
        Stream the completion chunk by chunk.

        The HTTP response stays open only while this generator is alive;
        closing the generator early releases the connection.

        Yields:
            ModelReply per content chunk; the last one carries finish_reason.
            If the connection ends without a finish signal the generator just
            stops, and the caller decides how to report it.

        Raises:
            ModelInvocationError: on any transport, auth or protocol failure
        """
        url, payload = self._build_request(prompt, profile, stream=True)
        request_id = log_llm_request(
            model=profile.model_id,
            backend=self.config.backend,
            task=self.config.task_name,
            prompt=prompt,
            temperature=profile.temperature,
            top_p=profile.top_p,
            top_k=profile.top_k,
            stream=True
        )
        # Streams may legitimately run longer than the session's total timeout.
        timeout = aiohttp.ClientTimeout(
            total=None,
            connect=self.config.connect_timeout,
            sock_read=self.config.timeout
        )
        start_time = time.time()
        received = []
        chunks = 0
        status = "incomplete"
        error_reason = None

        try:
            session = await self.get_session()
            async with session.post(url, json=payload, headers=self._headers(), timeout=timeout) as response:
                response.raise_for_status()

                # Lines arrive whole, so multi-byte characters are never split here
                async for raw_line in response.content:
                    reply = self._parse_stream_line(raw_line.decode("utf-8").strip())
                    if reply is None:
                        continue
                    chunks += 1
                    received.extend(reply.results[:1])
                    if reply.finish_reason is not None:
                        status = "success"
                    yield reply
                    if reply.finish_reason is not None:
                        return

        except (
            ModelInvocationError, asyncio.TimeoutError, aiohttp.ClientError,
            ValueError, AttributeError, TypeError
        ) as e:
            error = to_invocation_error(e, self.config.task_name)
            status = "error"
            error_reason = error.reason
            if error is e:
                raise
            raise error from e

        finally:
            latency_ms = (time.time() - start_time) * 1000
            complete_response = "".join(received)
            log_llm_response(
                request_id=request_id,
                model=profile.model_id,
                backend=self.config.backend,
                response=complete_response,
                latency_ms=latency_ms,
                status=status,
                error_message=error_reason
            )
            log_metrics(
                request_id=request_id,
                model=profile.model_id,
                backend=self.config.backend,
                task=self.config.task_name,
                latency_ms=latency_ms,
                prompt_chars=len(prompt),
                response_chars=len(complete_response),
                status=status,
                chunks=chunks,
                error_reason=error_reason
            )

    def get_backend_info(self) -> Dict[str, Any]:
        """
        Get information about this client's backend configuration.

        Returns:
            Dictionary with backend configuration details (never the API key)
        """
        return {
            "backend": self.config.backend,
            "active_url": self.config.get_backend_url(),
            "has_api_key": bool(self.config.api_key),
            "timeout": self.config.timeout,
            "connect_timeout": self.config.connect_timeout,
            "pool_limit": self.config.pool_limit,
            "task_name": self.config.task_name,
        }
