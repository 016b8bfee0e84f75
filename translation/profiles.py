"""
Generation profiles for translation.

Profiles are built once at startup and never mutated. Invalid values raise
ProfileConfigurationError during construction, so a bad configuration stops
the process before it serves requests.
"""
import json
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, Iterable, List, Optional

from core.exceptions import ProfileConfigurationError, UnknownProfile
from core.llm_client_base import GenerationProfile
from logs.logging_config import get_llm_logger
from .config import (
    TRANSLATION_DEFAULT_MODEL,
    TRANSLATION_DEFAULT_TEMPERATURE,
    TRANSLATION_PRECISE_TEMPERATURE,
    TRANSLATION_PRECISE_TOP_P,
    TRANSLATION_PRECISE_TOP_K,
    TRANSLATION_EXTRA_PROFILES,
)

logger = get_llm_logger("profiles")

DEFAULT_PROFILE = "default"
PRECISE_PROFILE = "precise"


def _normalize(name: str) -> str:
    return (name or "").strip().lower()


class ProfileRegistry:
    """Read-only lookup of generation profiles by name."""

    def __init__(self, profiles: Iterable[GenerationProfile]):
        table: Dict[str, GenerationProfile] = {}
        for profile in profiles:
            key = _normalize(profile.name)
            if not key:
                raise ProfileConfigurationError("Profile name cannot be empty")
            if key in table:
                raise ProfileConfigurationError(f"Duplicate profile name '{profile.name}'")
            table[key] = profile
        self._profiles = MappingProxyType(table)

    def resolve(self, profile_name: str) -> GenerationProfile:
        """
        Look up a profile by name (case-insensitive).

        Raises:
            UnknownProfile: If no profile has that name
        """
        profile = self._profiles.get(_normalize(profile_name))
        if profile is None:
            raise UnknownProfile(profile_name, self.names())
        return profile

    def names(self) -> List[str]:
        return sorted(self._profiles)

    def describe(self) -> List[dict]:
        return [self._profiles[name].to_dict() for name in self.names()]


def parse_extra_profiles(raw: str, default_model: str) -> List[GenerationProfile]:
    """
    Parse TRANSLATION_EXTRA_PROFILES.

    Format: {"name": {"model_id": "...", "temperature": 0.3, "top_p": 0.9, "top_k": 20}}
    model_id defaults to the translation default model.
    """
    if not raw or not raw.strip():
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProfileConfigurationError(f"TRANSLATION_EXTRA_PROFILES is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProfileConfigurationError("TRANSLATION_EXTRA_PROFILES must be a JSON object")

    profiles = []
    for name, params in data.items():
        if not isinstance(params, dict):
            raise ProfileConfigurationError(f"Profile '{name}' must be a JSON object")
        unknown = set(params) - {"model_id", "temperature", "top_p", "top_k"}
        if unknown:
            raise ProfileConfigurationError(f"Profile '{name}' has unknown keys: {', '.join(sorted(unknown))}")
        profiles.append(GenerationProfile(
            name=name,
            model_id=params.get("model_id", default_model),
            temperature=params.get("temperature", 1.0),
            top_p=params.get("top_p"),
            top_k=params.get("top_k"),
        ))
    return profiles


def build_profile_registry(
    model_id: Optional[str] = None,
    extra_profiles: Optional[str] = None
) -> ProfileRegistry:
    """Build the registry from configuration: built-in profiles plus any extras."""
    model = model_id or TRANSLATION_DEFAULT_MODEL
    profiles = [
        GenerationProfile(
            name=DEFAULT_PROFILE,
            model_id=model,
            temperature=TRANSLATION_DEFAULT_TEMPERATURE,
        ),
        GenerationProfile(
            name=PRECISE_PROFILE,
            model_id=model,
            temperature=TRANSLATION_PRECISE_TEMPERATURE,
            top_p=TRANSLATION_PRECISE_TOP_P,
            top_k=TRANSLATION_PRECISE_TOP_K,
        ),
    ]
    raw = TRANSLATION_EXTRA_PROFILES if extra_profiles is None else extra_profiles
    profiles.extend(parse_extra_profiles(raw, model))

    registry = ProfileRegistry(profiles)
    logger.info(f"[PROFILES] Loaded | names={','.join(registry.names())} | model={model}")
    return registry


@lru_cache(maxsize=1)
def get_profile_registry() -> ProfileRegistry:
    """Process-wide registry, built from configuration on first use."""
    return build_profile_registry()


def resolve(profile_name: str) -> GenerationProfile:
    """Resolve a profile from the process-wide registry."""
    return get_profile_registry().resolve(profile_name)
