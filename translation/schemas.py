"""
Pydantic schemas for translation API.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import (
    TRANSLATION_DEFAULT_SOURCE_LANGUAGE,
    TRANSLATION_DEFAULT_TARGET_LANGUAGE,
)


class TranslationMode(str, Enum):
    SYNC = "sync"
    STREAM = "stream"


class TranslationRequest(BaseModel):
    """Request for text translation. Immutable once constructed."""
    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Text to translate")
    source_language: str = Field(TRANSLATION_DEFAULT_SOURCE_LANGUAGE, description="Source language")
    target_language: str = Field(TRANSLATION_DEFAULT_TARGET_LANGUAGE, description="Target language")

    @classmethod
    def from_params(
        cls,
        text: Optional[str],
        source_language: Optional[str] = None,
        target_language: Optional[str] = None
    ) -> "TranslationRequest":
        """Build a request from raw query values; blank languages fall back to the defaults."""
        return cls(
            text=text or "",
            source_language=(source_language or "").strip() or TRANSLATION_DEFAULT_SOURCE_LANGUAGE,
            target_language=(target_language or "").strip() or TRANSLATION_DEFAULT_TARGET_LANGUAGE,
        )


class TranslationResult(BaseModel):
    """Result of a synchronous translation."""
    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Translated text")
    model: str = Field(..., description="Model used for translation")
    profile: str = Field(..., description="Generation profile used")
    finish_reason: Optional[str] = Field(None, description="Why the model stopped generating")


class StreamFragment(BaseModel):
    """One streamed piece of the translation, in arrival order."""
    model_config = ConfigDict(frozen=True)

    sequence_index: int = Field(..., ge=0, description="Position in the stream, starting at 0")
    text: str = Field(..., description="Fragment text")


class GenerationProfileInfo(BaseModel):
    name: str
    model_id: str
    temperature: float
    top_p: Optional[float] = None
    top_k: Optional[int] = None


class TranslationConfigResponse(BaseModel):
    """Translation service configuration."""
    default_model: str
    backend: str
    default_source_language: str
    default_target_language: str
    response_charset: str
    profiles: List[GenerationProfileInfo]
