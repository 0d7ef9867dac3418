"""Voice settings normalizer: defaulting and clamping before provider calls.

Turns caller-supplied, possibly partial or out-of-range settings into a
fully-populated VoiceSettings record:
  - Missing / None fields take the baseline
  - Numeric fields are clamped to [0, 1] (never rejected here; strict
    range validation happens in the API schemas)
  - speaker_boost is coerced to bool; "true"/"false" style strings are parsed

This is idempotent: normalizing normalized settings is a no-op.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from voice_gateway.gateway.types import VoiceSettings

logger = logging.getLogger(__name__)

DEFAULT_VOICE_SETTINGS = VoiceSettings(stability=0.5, similarity_boost=0.5, style=0.0, speaker_boost=True)

VOICE_PRESETS: dict[str, VoiceSettings] = {
    "natural": VoiceSettings(stability=0.7, similarity_boost=0.8, style=0.2, speaker_boost=True),
    "expressive": VoiceSettings(stability=0.3, similarity_boost=0.9, style=0.8, speaker_boost=True),
    "stable": VoiceSettings(stability=0.9, similarity_boost=0.6, style=0.1, speaker_boost=False),
    "creative": VoiceSettings(stability=0.4, similarity_boost=0.7, style=0.9, speaker_boost=True),
}

_NUMERIC_FIELDS = ("stability", "similarity_boost", "style")
_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", ""})


def clamp_unit(value: Any, default: float) -> float:
    """Coerce to float and clamp into [0, 1]; unusable values fall back to default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug("Non-numeric voice setting %r replaced by default %s", value, default)
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(1.0, number))


def coerce_flag(value: Any, default: bool) -> bool:
    """Booleans and numbers by truthiness, strings by their spelling; anything else is default."""
    if value is None:
        return default
    if isinstance(value, (bool, int, float)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    logger.debug("Unrecognized speaker_boost %r replaced by default %s", value, default)
    return default


def normalize_voice_settings(
    settings: Mapping[str, Any] | VoiceSettings | None = None,
    defaults: VoiceSettings = DEFAULT_VOICE_SETTINGS,
) -> VoiceSettings:
    """Apply defaults and clamp every field into its declared range."""
    if settings is None:
        data: Mapping[str, Any] = {}
    elif isinstance(settings, VoiceSettings):
        data = settings.to_dict()
    else:
        data = settings

    values = {name: clamp_unit(data.get(name), getattr(defaults, name)) for name in _NUMERIC_FIELDS}

    values["speaker_boost"] = coerce_flag(data.get("speaker_boost"), defaults.speaker_boost)

    return VoiceSettings(**values)


def merge_voice_settings(
    base: Mapping[str, Any] | None,
    overrides: Mapping[str, Any] | None,
) -> VoiceSettings:
    """Layer request overrides (None values ignored) over stored agent settings."""
    merged = dict(base or {})
    merged.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return normalize_voice_settings(merged)


def get_voice_preset(name: str | None) -> VoiceSettings:
    """Named preset, or the baseline when the name is unknown."""
    if not name:
        return DEFAULT_VOICE_SETTINGS
    return VOICE_PRESETS.get(name.lower(), DEFAULT_VOICE_SETTINGS)
