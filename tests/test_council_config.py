"""Tests for review_council/council_config.py."""

import pytest

from review_council.council_config import build_voice_assignments, parse_council_config, validate_council_config
from review_council.errors import CouncilConfigError, ValidationError
from review_council.models import CouncilConfig, LevelConfig, Voice

CLAUDE = {"provider": "claude", "model": "claude-sonnet-4-5"}
GEMINI = {"provider": "gemini", "model": "gemini-2.5-pro", "tier": "premium"}


def test_level_centric_config():
    config = parse_council_config({
        "levels": {
            "1": {"enabled": True, "voices": [CLAUDE, GEMINI]},
            "2": {"enabled": False},
            3: {"enabled": True, "voices": [CLAUDE]},
        },
        "consolidation": {"provider": "claude", "model": "claude-opus-4-1"},
    })
    assert config.levels[1].enabled and len(config.levels[1].voices) == 2
    assert config.levels[2].voices == []
    assert config.levels[1].voices[1].tier == "thorough"
    assert config.consolidation == Voice("claude", "claude-opus-4-1", "balanced")


def test_voice_centric_config():
    config = parse_council_config({
        "voices": [CLAUDE, {**GEMINI, "timeout": 90, "customInstructions": "Focus on security."}],
        "levels": {"1": True, "2": True, "3": False},
        "orchestration": {"provider": "gemini", "model": "gemini-2.5-pro"},
    }, default_tier="fast")
    assert len(config.levels[2].voices) == 2
    assert config.levels[3].voices == []
    gemini = config.levels[1].voices[1]
    assert gemini.timeout_sec == 90.0
    assert gemini.custom_instructions == "Focus on security."
    assert config.levels[1].voices[0].tier == "fast"
    assert config.consolidation.provider == "gemini"


@pytest.mark.parametrize("raw, message", [
    ([], "config must be an object"),
    ({}, "config.levels is required"),
    ({"levels": {"4": {"enabled": True, "voices": [CLAUDE]}}}, "Invalid level key: 4"),
    ({"levels": {"1": {"enabled": "yes"}}}, "levels.1.enabled must be a boolean"),
    ({"levels": {"1": {"enabled": True, "voices": []}}}, "levels.1.voices must be a non-empty array"),
    ({"levels": {"1": {"enabled": True, "voices": [{"model": "m"}]}}}, r"levels.1.voices\[0\].provider is required"),
    ({"levels": {"1": {"enabled": True, "voices": [{"provider": "claude"}]}}}, "model is required"),
    ({"levels": {"1": {"enabled": False}}}, "At least one level must be enabled"),
    ({"levels": {"1": {"enabled": True, "voices": [CLAUDE]}}, "consolidation": {"model": "m"}},
     "consolidation.provider is required"),
])
def test_invalid_configs(raw, message):
    with pytest.raises(CouncilConfigError, match=message):
        parse_council_config(raw)


def test_config_error_is_validation_error():
    with pytest.raises(ValidationError):
        parse_council_config("not a dict")


def test_validate_rejects_all_disabled():
    config = CouncilConfig(levels={1: LevelConfig(False), 2: LevelConfig(False), 3: LevelConfig(False)})
    with pytest.raises(CouncilConfigError, match="At least one level must be enabled"):
        validate_council_config(config)


def test_assignments_group_voices_across_levels():
    claude = Voice("claude", "claude-sonnet-4-5")
    gemini = Voice("gemini", "gemini-2.5-pro")
    config = CouncilConfig(levels={
        1: LevelConfig(True, [claude, gemini]),
        2: LevelConfig(False, []),
        3: LevelConfig(True, [claude]),
    })
    assignments = build_voice_assignments(config)
    assert [(a.voice_id, a.levels) for a in assignments] == [
        ("claude-claude-sonnet-4-5", (1, 3)),
        ("gemini-gemini-2.5-pro", (1,)),
    ]


def test_assignments_suffix_same_model_with_different_tier():
    fast = Voice("claude", "claude-sonnet-4-5", tier="fast")
    thorough = Voice("claude", "claude-sonnet-4-5", tier="thorough")
    config = CouncilConfig(levels={1: LevelConfig(True, [fast, thorough])})
    ids = [a.voice_id for a in build_voice_assignments(config)]
    assert ids == ["claude-claude-sonnet-4-5", "claude-claude-sonnet-4-5-2"]
