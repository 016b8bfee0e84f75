"""
Core Exceptions

Error taxonomy shared by the transport and the translation pipeline.
Every error carries a short machine-readable `code` used in API responses.
"""

from typing import Optional, Sequence


class TranslationError(Exception):
    """Base class for all translation pipeline errors."""

    code = "translation_error"
    retryable = False


class InvalidRequest(TranslationError):
    """Bad or missing input. The caller's fault, never retried."""

    code = "invalid_request"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        if code:
            self.code = code
        self.details = details or {}


class UnknownProfile(TranslationError):
    """Requested generation profile does not exist."""

    code = "unknown_profile"

    def __init__(self, name: str, known: Sequence[str] = ()):
        self.name = name
        self.known = tuple(known)
        super().__init__(
            f"Unknown generation profile '{name}'. Known profiles: {', '.join(self.known) or 'none'}"
        )


class ProfileConfigurationError(ValueError):
    """Generation profile values out of range. Fatal at startup."""


class ModelInvocationError(TranslationError):
    """
    Remote model call failed.

    `reason` tells callers what went wrong so they can decide whether to retry:
    timeout | unavailable | rate_limited | auth | bad_request | bad_response | model_error
    """

    code = "model_invocation_failed"

    RETRYABLE_REASONS = frozenset({"timeout", "unavailable", "rate_limited"})

    def __init__(self, message: str, *, reason: str, status: Optional[int] = None):
        super().__init__(message)
        self.reason = reason
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.reason in self.RETRYABLE_REASONS

    @property
    def is_timeout(self) -> bool:
        return self.reason == "timeout"


class EmptyResponse(TranslationError):
    """Model reply contained no result."""

    code = "empty_response"


class StreamInterrupted(TranslationError):
    """Stream ended before the model signalled completion."""

    code = "stream_interrupted"

    def __init__(self, message: str, *, fragments_delivered: int, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.fragments_delivered = fragments_delivered
        self.cause = cause

    @property
    def retryable(self) -> bool:
        # A stream that simply stopped (no cause) is treated as a dropped connection.
        if self.cause is None:
            return True
        return bool(getattr(self.cause, "retryable", False))
