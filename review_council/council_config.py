"""Parse and validate per-review council configs; group voices across levels."""

import logging
from typing import Any

from review_council.errors import CouncilConfigError
from review_council.models import CouncilConfig, LevelConfig, Voice, VoiceAssignment
from review_council.tiers import resolve_tier

logger = logging.getLogger(__name__)

VALID_LEVELS = (1, 2, 3)


def _parse_voice(raw: Any, path: str, default_tier: str | None) -> Voice:
    if not isinstance(raw, dict):
        raise CouncilConfigError(f"{path} must be an object")
    if not raw.get("provider"):
        raise CouncilConfigError(f"{path}.provider is required")
    if not raw.get("model"):
        raise CouncilConfigError(f"{path}.model is required")

    timeout = raw.get("timeout", raw.get("timeout_sec"))
    return Voice(
        provider=str(raw["provider"]),
        model=str(raw["model"]),
        tier=resolve_tier(raw.get("tier") or default_tier),
        timeout_sec=float(timeout) if timeout is not None else None,
        custom_instructions=raw.get("customInstructions") or raw.get("custom_instructions"),
    )


def _parse_consolidation(raw: dict[str, Any], default_tier: str | None) -> Voice | None:
    cons = raw.get("consolidation") or raw.get("orchestration")
    if not cons:
        return None
    if not isinstance(cons, dict):
        raise CouncilConfigError("consolidation must be an object")
    if not cons.get("provider"):
        raise CouncilConfigError("consolidation.provider is required")
    if not cons.get("model"):
        raise CouncilConfigError("consolidation.model is required")
    return _parse_voice(cons, "consolidation", default_tier)


def _level_number(key: Any) -> int:
    try:
        level = int(str(key))
    except ValueError:
        level = 0
    if level not in VALID_LEVELS:
        raise CouncilConfigError(f"Invalid level key: {key}")
    return level


def _parse_level_centric(raw: dict[str, Any], default_tier: str | None) -> CouncilConfig:
    levels: dict[int, LevelConfig] = {}
    for key, level_raw in raw["levels"].items():
        level = _level_number(key)
        if not isinstance(level_raw, dict) or not isinstance(level_raw.get("enabled"), bool):
            raise CouncilConfigError(f"levels.{key}.enabled must be a boolean")
        voices: list[Voice] = []
        if level_raw["enabled"]:
            voices_raw = level_raw.get("voices")
            if not isinstance(voices_raw, list) or not voices_raw:
                raise CouncilConfigError(f"levels.{key}.voices must be a non-empty array when enabled")
            voices = [
                _parse_voice(v, f"levels.{key}.voices[{i}]", default_tier)
                for i, v in enumerate(voices_raw)
            ]
        levels[level] = LevelConfig(enabled=level_raw["enabled"], voices=voices)
    return CouncilConfig(levels=levels, consolidation=_parse_consolidation(raw, default_tier))


def _parse_voice_centric(raw: dict[str, Any], default_tier: str | None) -> CouncilConfig:
    voices_raw = raw.get("voices")
    if not isinstance(voices_raw, list) or not voices_raw:
        raise CouncilConfigError("config.voices must be a non-empty array")
    voices = [_parse_voice(v, f"voices[{i}]", default_tier) for i, v in enumerate(voices_raw)]

    levels: dict[int, LevelConfig] = {}
    for key, enabled in raw["levels"].items():
        level = _level_number(key)
        if not isinstance(enabled, bool):
            raise CouncilConfigError(f"levels.{key}.enabled must be a boolean")
        levels[level] = LevelConfig(enabled=enabled, voices=list(voices) if enabled else [])
    return CouncilConfig(levels=levels, consolidation=_parse_consolidation(raw, default_tier))


def parse_council_config(raw: Any, default_tier: str | None = None) -> CouncilConfig:
    """Normalise a level-centric or voice-centric config document.

    Level-centric::

        levels: {"1": {enabled: true, voices: [{provider, model, tier}]}, ...}

    Voice-centric::

        voices: [{provider, model, tier}, ...]
        levels: {"1": true, "2": false, "3": true}

    Either shape may carry ``consolidation`` (or ``orchestration``).

    Raises:
        CouncilConfigError: On any structural problem, or when no level is enabled.
    """
    if not isinstance(raw, dict):
        raise CouncilConfigError("config must be an object")
    if not isinstance(raw.get("levels"), dict):
        raise CouncilConfigError("config.levels is required and must be an object")

    if "voices" in raw:
        config = _parse_voice_centric(raw, default_tier)
    else:
        config = _parse_level_centric(raw, default_tier)
    validate_council_config(config)
    return config


def validate_council_config(config: CouncilConfig) -> None:
    """Reject a config that would make no AI call. Raises CouncilConfigError."""
    for level, level_cfg in config.levels.items():
        if level not in VALID_LEVELS:
            raise CouncilConfigError(f"Invalid level key: {level}")
        if level_cfg.enabled and not level_cfg.voices:
            raise CouncilConfigError(f"levels.{level}.voices must be a non-empty array when enabled")
    if not any(lvl.enabled for lvl in config.levels.values()):
        raise CouncilConfigError("At least one level must be enabled")


def build_voice_assignments(config: CouncilConfig) -> list[VoiceAssignment]:
    """Group identical voices across enabled levels, in order of first appearance.

    Voice ids are ``provider-model``; distinct voices sharing a provider and
    model (different tier or instructions) get ``-2``, ``-3``... suffixes.
    """
    levels_by_voice: dict[Voice, list[int]] = {}
    for level in sorted(config.levels):
        level_cfg = config.levels[level]
        if not level_cfg.enabled:
            continue
        for voice in level_cfg.voices:
            assigned = levels_by_voice.setdefault(voice, [])
            if level not in assigned:
                assigned.append(level)

    seen: dict[str, int] = {}
    assignments: list[VoiceAssignment] = []
    for voice, levels in levels_by_voice.items():
        base_id = f"{voice.provider}-{voice.model}"
        seen[base_id] = seen.get(base_id, 0) + 1
        voice_id = base_id if seen[base_id] == 1 else f"{base_id}-{seen[base_id]}"
        assignments.append(VoiceAssignment(voice_id=voice_id, voice=voice, levels=tuple(levels)))

    logger.debug("Council voices: %s", [(a.voice_id, a.levels) for a in assignments])
    return assignments
