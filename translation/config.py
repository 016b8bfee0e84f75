"""
Translation Configuration

Module-specific settings for text translation.
Each setting falls back to the global value in config.py.
"""
import os

from config import (
    LLM_BACKEND,
    LLM_BASE_URL,
    OLLAMA_URL,
    DASHSCOPE_API_KEY,
    DEFAULT_MODEL,
)

# =========================
# LLM Backend Configuration
# =========================

# Backend type: openai | ollama
TRANSLATION_LLM_BACKEND = os.getenv("TRANSLATION_LLM_BACKEND", LLM_BACKEND)

# OpenAI-compatible base URL (DashScope compatible mode, VLLM)
TRANSLATION_BASE_URL = os.getenv("TRANSLATION_BASE_URL", LLM_BASE_URL)

# Ollama URL for translation service
TRANSLATION_OLLAMA_URL = os.getenv("TRANSLATION_OLLAMA_URL", OLLAMA_URL)

TRANSLATION_API_KEY = os.getenv("TRANSLATION_API_KEY", DASHSCOPE_API_KEY)

# =========================
# Model Settings
# =========================

TRANSLATION_DEFAULT_MODEL = os.getenv("TRANSLATION_DEFAULT_MODEL", DEFAULT_MODEL)

# =========================
# Translation Settings
# =========================

TRANSLATION_DEFAULT_SOURCE_LANGUAGE = os.getenv("TRANSLATION_DEFAULT_SOURCE_LANGUAGE", "Chinese")
TRANSLATION_DEFAULT_TARGET_LANGUAGE = os.getenv("TRANSLATION_DEFAULT_TARGET_LANGUAGE", "English")

# =========================
# Generation Profiles
# =========================

TRANSLATION_DEFAULT_TEMPERATURE = float(os.getenv("TRANSLATION_DEFAULT_TEMPERATURE", "1.0"))

# Lower-variance settings for literal translation
TRANSLATION_PRECISE_TEMPERATURE = float(os.getenv("TRANSLATION_PRECISE_TEMPERATURE", "0.5"))
TRANSLATION_PRECISE_TOP_P = float(os.getenv("TRANSLATION_PRECISE_TOP_P", "0.7"))
TRANSLATION_PRECISE_TOP_K = int(os.getenv("TRANSLATION_PRECISE_TOP_K", "50"))

# JSON object of extra profiles, e.g. {"creative": {"temperature": 1.3, "top_p": 0.95}}
TRANSLATION_EXTRA_PROFILES = os.getenv("TRANSLATION_EXTRA_PROFILES", "")

# =========================
# Connection Settings
# =========================

TRANSLATION_CONNECTION_TIMEOUT = int(os.getenv("TRANSLATION_CONNECTION_TIMEOUT", "300"))
TRANSLATION_CONNECT_TIMEOUT = int(os.getenv("TRANSLATION_CONNECT_TIMEOUT", "10"))
TRANSLATION_CONNECTION_POOL_LIMIT = int(os.getenv("TRANSLATION_CONNECTION_POOL_LIMIT", "50"))

# =========================
# Token Limits
# =========================

# Maximum tokens allowed for the prompt (percentage of model context)
TRANSLATION_MAX_TOKEN_PERCENT = int(os.getenv("TRANSLATION_MAX_TOKEN_PERCENT", "80"))

# =========================
# Response Settings
# =========================

# Declared on every response and used to encode the body. Not configurable.
TRANSLATION_RESPONSE_CHARSET = "utf-8"
