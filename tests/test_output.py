"""Tests for review_council/output.py."""

from pathlib import Path

import pytest

from review_council.models import CouncilResult, LevelResult, Suggestion, Voice, VoiceResult
from review_council.output import _slug, format_location, print_suggestions, print_voice_summary, save_report


def test_slug_basic():
    assert _slug("Load config before running") == "load-config-before-running"


def test_slug_max_len():
    assert len(_slug("a" * 100)) <= 40


def test_slug_special_chars():
    result = _slug("Fix [bug] in parser (v2)")
    assert "[" not in result
    assert "(" not in result


def test_format_location_single_line():
    s = Suggestion("a.py", "bug", "t", "d", 0.9, 1, line_start=12, line_end=12)
    assert format_location(s) == "a.py:12"


def test_format_location_range_old_side():
    s = Suggestion("a.py", "bug", "t", "d", 0.9, 1, line_start=12, line_end=14, old_or_new="OLD")
    assert format_location(s) == "a.py:12-14 OLD"


def test_format_location_file_level():
    s = Suggestion("a.py", "design", "t", "d", 0.9, 2, old_or_new=None, is_file_level=True)
    assert format_location(s) == "a.py (file)"


@pytest.fixture
def sample_result() -> CouncilResult:
    voice = Voice(provider="claude", model="claude-sonnet-4-5")
    suggestions = [
        Suggestion("src/app.py", "bug", "Check [load] result", "May return None.", 0.8, 1,
                   line_start=11, line_end=11, suggestion="Guard it."),
        Suggestion("README.md", "praise", "Clear usage notes", "Nice.", 0.6, 2,
                   old_or_new=None, is_file_level=True),
    ]
    vr = VoiceResult(
        voice_id="claude-claude-sonnet-4-5",
        voice=voice,
        run_id="run-1",
        levels=[LevelResult(level=1, suggestions=suggestions)],
    )
    return CouncilResult(
        run_id="run-1",
        suggestions=suggestions,
        summary="Two findings.",
        voice_results=[vr],
        failed_voices={"gemini-gemini-2.5-pro": "[gemini] Request timed out after 30s"},
        total_duration_sec=12.5,
    )


def test_save_report_creates_file(tmp_path: Path, sample_result, review_context):
    saved = save_report(sample_result, review_context, tmp_path / "nested" / "out")
    assert saved.exists()
    assert saved.suffix == ".md"
    assert "load-config-before-running" in saved.name


def test_save_report_content(tmp_path: Path, sample_result, review_context):
    content = save_report(sample_result, review_context, tmp_path).read_text(encoding="utf-8")
    assert "# Code Review: Load config before running" in content
    assert "**Reviewers:** claude-claude-sonnet-4-5" in content
    assert "**Failed reviewers:** gemini-gemini-2.5-pro" in content
    assert "**Consolidated:** no" in content
    assert "## Suggestions (2)" in content
    assert "### src/app.py" in content
    assert "- **[bug] Check [load] result** (src/app.py:11, confidence 0.80)" in content
    assert "README.md (file)" in content
    assert "*Suggestion:* Guard it." in content


def test_save_report_slug_override(tmp_path: Path, sample_result, review_context):
    saved = save_report(sample_result, review_context, tmp_path, slug_override="custom")
    assert saved.name.endswith("_custom.md")


def test_save_report_no_suggestions(tmp_path: Path, review_context):
    result = CouncilResult(run_id="r", suggestions=[], summary="Nothing found.")
    content = save_report(result, review_context, tmp_path).read_text(encoding="utf-8")
    assert "No suggestions." in content
    assert "**Reviewers:** none" in content


def test_print_functions_handle_brackets(sample_result, capsys):
    print_voice_summary(sample_result)
    print_suggestions(sample_result)
    out = capsys.readouterr().out
    assert "Check [load] result" in out
    assert "claude-claude-sonnet-4-5" in out
