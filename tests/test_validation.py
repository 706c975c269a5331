"""Tests for review_council/validation.py."""

import logging
from pathlib import Path

from review_council.models import ChangedFile, Suggestion
from review_council.validation import (
    build_diff_indexes,
    build_file_line_count_map,
    normalize_path,
    validate_and_finalize_suggestions,
    validate_suggestion_file_paths,
    validate_suggestion_line_numbers,
    validate_suggestion_sides,
)
from tests.conftest import SAMPLE_PATCH


def _s(file="src/app.py", line=11, line_end=None, side="NEW", title="t", level=1) -> Suggestion:
    return Suggestion(
        file=file, type="bug", title=title, description="d", confidence=0.8, level=level,
        line_start=line, line_end=line if line_end is None else line_end, old_or_new=side,
    )


def test_normalize_path():
    assert normalize_path("./src//app.py") == "src/app.py"
    assert normalize_path("/src/app.py") == "src/app.py"
    assert normalize_path("src\\app.py") == "src/app.py"
    assert normalize_path(None) == ""


def test_file_paths_rewritten_to_canonical():
    kept = validate_suggestion_file_paths([_s(file="./src/app.py"), _s(file="other.py")], ["src/app.py"])
    assert [s.file for s in kept] == ["src/app.py"]


def test_file_paths_empty_changeset_drops_all():
    assert validate_suggestion_file_paths([_s()], []) == []


def test_sides_old_on_deleted_line_kept():
    result = validate_suggestion_sides([_s(line=11, side="OLD")], build_diff_indexes([ChangedFile("src/app.py", SAMPLE_PATCH)]))
    assert len(result.valid) == 1
    assert result.valid[0].old_or_new == "OLD"


def test_sides_old_on_context_line_converted_to_new():
    indexes = build_diff_indexes([ChangedFile("src/app.py", SAMPLE_PATCH)])
    result = validate_suggestion_sides([_s(line=12, side="OLD")], indexes)
    assert result.valid == []
    assert len(result.converted) == 1
    converted = result.converted[0]
    assert converted.old_or_new == "NEW"
    assert (converted.line_start, converted.line_end) == (13, 13)


def test_sides_old_range_ending_on_context_collapses():
    indexes = build_diff_indexes([ChangedFile("src/app.py", SAMPLE_PATCH)])
    result = validate_suggestion_sides([_s(line=11, line_end=12, side="OLD")], indexes)
    assert len(result.converted) == 1
    assert result.converted[0].old_or_new == "OLD"
    assert result.converted[0].line_end == 11


def test_sides_new_suggestions_untouched():
    indexes = build_diff_indexes([ChangedFile("src/app.py", SAMPLE_PATCH)])
    s = _s(line=11)
    assert validate_suggestion_sides([s], indexes).valid == [s]


def test_line_numbers_beyond_file_length_dropped(caplog):
    with caplog.at_level(logging.WARNING):
        result = validate_suggestion_line_numbers([_s(line=25, title="far")], {"src/app.py": 20})
    assert result.dropped and not result.valid
    assert "line_start 25 exceeds file length 20" in caplog.text


def test_line_numbers_convert_to_file_level():
    result = validate_suggestion_line_numbers(
        [_s(line=18, line_end=30)], {"src/app.py": 20}, convert_to_file_level=True
    )
    converted = result.converted[0]
    assert converted.is_file_level
    assert converted.line_start is None and converted.line_end is None
    assert converted.old_or_new is None


def test_line_numbers_skip_unknown_and_binary_files():
    result = validate_suggestion_line_numbers([_s(line=999), _s(file="logo.png", line=5)], {"logo.png": -1})
    assert len(result.valid) == 2


def test_line_numbers_reject_zero():
    result = validate_suggestion_line_numbers([_s(line=0)], {"src/app.py": 20})
    assert len(result.dropped) == 1


async def test_line_count_map(tmp_path: Path):
    (tmp_path / "a.txt").write_text("one\ntwo\n", encoding="utf-8")
    (tmp_path / "b.txt").write_text("one\ntwo", encoding="utf-8")
    (tmp_path / "empty.txt").write_text("", encoding="utf-8")
    (tmp_path / "bin.dat").write_bytes(b"\x00\x01\x02")
    counts = await build_file_line_count_map(
        tmp_path, ["a.txt", "b.txt", "empty.txt", "bin.dat", "missing.txt"]
    )
    assert counts == {"a.txt": 2, "b.txt": 2, "empty.txt": 0, "bin.dat": -1, "missing.txt": -1}


async def test_line_count_map_without_worktree():
    assert await build_file_line_count_map(None, ["a.txt"]) == {}


def test_finalize_full_pipeline(caplog, changed_files):
    suggestions = [
        _s(line=11, title="good"),
        _s(line=12, side="OLD", title="old context"),
        _s(line=40, title="past the end"),
        _s(file="unrelated.py", title="not changed"),
    ]
    with caplog.at_level(logging.INFO):
        result = validate_and_finalize_suggestions(suggestions, changed_files, {"src/app.py": 20})
    assert [s.title for s in result.valid] == ["good"]
    assert sorted(s.title for s in result.converted) == ["old context", "past the end"]
    assert [s.title for s in result.dropped] == ["not changed"]
    assert "[Validation] Starting validation with 4 input suggestions" in caplog.text
    assert "[Validation] After file path validation: 3 suggestions (1 filtered)" in caplog.text
    assert "[Validation] Final: 1 valid, 2 converted, 1 dropped" in caplog.text


def test_finalize_warns_when_everything_filtered(caplog, changed_files):
    with caplog.at_level(logging.WARNING):
        result = validate_and_finalize_suggestions([_s(file="nope.py")], changed_files, {})
    assert result.dropped
    assert "[Validation] WARNING: All 1 suggestions were filtered out!" in caplog.text


def test_finalize_is_idempotent(changed_files):
    first = validate_and_finalize_suggestions([_s(line=12, side="OLD")], changed_files, {"src/app.py": 20})
    kept = first.valid + first.converted
    second = validate_and_finalize_suggestions(kept, changed_files, {"src/app.py": 20})
    assert second.valid == kept
    assert second.converted == [] and second.dropped == []
