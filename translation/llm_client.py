"""
Translation LLM Client

Builds the chat-model client for the translation service from
translation-specific configuration. The application creates one instance at
startup and injects it; nothing here is a module-level singleton.
"""

from core import BaseLLMClient, LLMConfig
from .config import (
    TRANSLATION_LLM_BACKEND,
    TRANSLATION_BASE_URL,
    TRANSLATION_OLLAMA_URL,
    TRANSLATION_API_KEY,
    TRANSLATION_CONNECTION_TIMEOUT,
    TRANSLATION_CONNECT_TIMEOUT,
    TRANSLATION_CONNECTION_POOL_LIMIT,
)


def build_llm_config() -> LLMConfig:
    """Translation-specific LLM configuration."""
    return LLMConfig(
        backend=TRANSLATION_LLM_BACKEND,
        base_url=TRANSLATION_BASE_URL,
        api_key=TRANSLATION_API_KEY,
        ollama_url=TRANSLATION_OLLAMA_URL,
        timeout=TRANSLATION_CONNECTION_TIMEOUT,
        connect_timeout=TRANSLATION_CONNECT_TIMEOUT,
        pool_limit=TRANSLATION_CONNECTION_POOL_LIMIT,
        task_name="translate"
    )


def build_llm_client() -> BaseLLMClient:
    """Create the translation chat-model client. Close it on application shutdown."""
    return BaseLLMClient(build_llm_config())
