"""
Core Module

Shared infrastructure components:
- Chat-model client and generation profiles
- Error taxonomy
- Validators
"""

from .exceptions import (
    TranslationError,
    InvalidRequest,
    UnknownProfile,
    ProfileConfigurationError,
    ModelInvocationError,
    EmptyResponse,
    StreamInterrupted,
)
from .llm_client_base import (
    BaseLLMClient,
    ChatModel,
    GenerationProfile,
    LLMConfig,
    ModelReply,
)
from .validators import (
    validate_token_count,
    validate_required_field,
)

__all__ = [
    "TranslationError",
    "InvalidRequest",
    "UnknownProfile",
    "ProfileConfigurationError",
    "ModelInvocationError",
    "EmptyResponse",
    "StreamInterrupted",
    "BaseLLMClient",
    "ChatModel",
    "GenerationProfile",
    "LLMConfig",
    "ModelReply",
    "validate_token_count",
    "validate_required_field",
]
