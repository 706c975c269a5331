"""Runtime prompt assembly from tagged baseline templates.

Usage::

    builder = get_prompt_builder("level2", "balanced")
    prompt = builder.build(context)
"""

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from review_council.prompts.sections import (
    Section,
    parse_sections,
    render_sections,
    select_for_tier,
)
from review_council.tiers import resolve_tier

logger = logging.getLogger(__name__)

PROMPT_TYPES = ("level1", "level2", "level3", "orchestration")

_TEMPLATES_DIR = Path(__file__).parent / "templates"
_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")
_BLANK_RUN_RE = re.compile(r"\n{3,}")


@lru_cache(maxsize=None)
def load_template(prompt_type: str) -> tuple[Section, ...]:
    """Load and parse the tagged template for a prompt type (all tiers)."""
    path = _TEMPLATES_DIR / f"{prompt_type}.yaml"
    with path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    sections = tuple(parse_sections(raw["template"]))
    logger.debug("Loaded %s template: %d sections", prompt_type, len(sections))
    return sections


def interpolate(template: str, context: dict[str, Any]) -> str:
    """Replace ``{{name}}`` placeholders with context values.

    Placeholders missing from the context are left as-is. None values
    become the empty string.
    """
    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in context:
            return match.group(0)
        value = context[key]
        return "" if value is None else str(value)

    return _PLACEHOLDER_RE.sub(_replace, template)


class PromptBuilder:
    """Builds the prompt text for one (prompt type, tier) pair."""

    def __init__(self, prompt_type: str, tier: str, sections: list[Section]) -> None:
        self.prompt_type = prompt_type
        self.tier = tier
        self.sections = sections

    @property
    def tagged_template(self) -> str:
        return render_sections(self.sections)

    @property
    def section_names(self) -> list[str]:
        return [s.name for s in self.sections]

    def build(self, context: dict[str, Any]) -> str:
        """Interpolate each section body and join them as plain text.

        Section markup only ever comes from the template records, so context
        values that contain `<section>` elements reach the model untouched.
        """
        plain = "\n\n".join(interpolate(s.content, context) for s in self.sections)
        return _BLANK_RUN_RE.sub("\n\n", plain).strip()

    def build_tagged(self, context: dict[str, Any]) -> str:
        """Interpolate but keep section tags, for inspection."""
        return interpolate(self.tagged_template, context)


def get_prompt_builder(prompt_type: str, tier: str | None) -> PromptBuilder:
    """Return a builder for ``prompt_type`` at the resolved ``tier``.

    Raises ValueError for an unknown prompt type. Unknown tiers fall back to
    the default tier (see resolve_tier).
    """
    if prompt_type not in PROMPT_TYPES:
        raise ValueError(
            f"Invalid prompt type: {prompt_type}. Valid types: {', '.join(PROMPT_TYPES)}"
        )
    resolved = resolve_tier(tier)
    sections = select_for_tier(list(load_template(prompt_type)), resolved)
    return PromptBuilder(prompt_type, resolved, sections)
