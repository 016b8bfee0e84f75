"""
Translation Service Module

Provides text translation capabilities using LLM, synchronous and streamed.
"""

from .service import router, get_translator
from .translator import Translator

__all__ = ["router", "get_translator", "Translator"]
