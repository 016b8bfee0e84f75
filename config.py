"""
Global Configuration

Shared settings used across all modules.
Module-specific settings are in each module's config.py file.

All settings can be overridden via environment variables or a .env file.
"""
import os
import tiktoken
from dotenv import load_dotenv

# Load .env file before any os.getenv() calls
load_dotenv()
from functools import lru_cache

# =========================
# LLM Backend Configuration
# =========================

LLM_BACKEND = os.getenv("LLM_BACKEND", "openai")  # openai | ollama
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://dashscope.aliyuncs.com/compatible-mode/v1")
OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
DASHSCOPE_API_KEY = os.getenv("DASHSCOPE_API_KEY")
DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", "qwen-plus")

# =========================
# Model Context Lengths
# =========================

MODEL_CONTEXT_LENGTHS = {
    "qwen-plus": 131072,
    "qwen-max": 32768,
    "qwen-turbo": 1000000,
    "gemma3:4b": 8192,
}

DEFAULT_CONTEXT_LENGTH = 8192  # Fallback for unknown models

# =========================
# Token Estimation
# =========================

# tiktoken | chars. Use "chars" on airgapped hosts without a tiktoken cache.
TOKEN_ESTIMATOR = os.getenv("TOKEN_ESTIMATOR", "tiktoken")


# =========================
# Utility Functions
# =========================

@lru_cache(maxsize=32)
def get_model_context_length(model: str) -> int:
    """Get context length for a model (cached)."""
    return MODEL_CONTEXT_LENGTHS.get(model, DEFAULT_CONTEXT_LENGTH)


@lru_cache(maxsize=1)
def _get_encoder():
    """
    Load the tiktoken encoder on first use.

    For airgapped systems, set TIKTOKEN_CACHE_DIR to a directory containing
    pre-cached encoding files, or set TOKEN_ESTIMATOR=chars.
    """
    if TOKEN_ESTIMATOR != "tiktoken":
        return None
    try:
        return tiktoken.get_encoding("cl100k_base")
    except Exception:
        return None


def estimate_tokens(text: str) -> int:
    """
    Estimate token count using tiktoken if available, otherwise fallback to char-based estimation.

    Fallback uses ~4 chars per token approximation.
    """
    encoder = _get_encoder()
    if encoder is not None:
        return len(encoder.encode(text))
    return len(text) // 4
