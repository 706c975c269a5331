"""Parser for section-tagged prompt templates.

Section tag format::

    <section name="section-name" locked="true" tier="fast,balanced">
    Content here
    </section>

``locked`` sections (output schema, structural anchors) must never be altered,
``required`` sections must be present but may be reworded, ``optional``
sections may be dropped entirely. A section without a ``tier`` attribute
applies to every tier.
"""

import re
from dataclasses import dataclass, field
from enum import Enum

from review_council.errors import TemplateSyntaxError

_OPEN_TAG_RE = re.compile(r"<section\b([^>]*)>")
_CLOSE_TAG = "</section>"
_ATTR_RE = re.compile(r'([\w-]+)="([^"]*)"')


class SectionFlag(str, Enum):
    LOCKED = "locked"
    REQUIRED = "required"
    OPTIONAL = "optional"


@dataclass(frozen=True)
class Section:
    name: str
    content: str
    flags: frozenset[SectionFlag] = frozenset()
    tiers: tuple[str, ...] | None = None

    @property
    def locked(self) -> bool:
        return SectionFlag.LOCKED in self.flags

    @property
    def required(self) -> bool:
        return SectionFlag.REQUIRED in self.flags

    @property
    def optional(self) -> bool:
        return SectionFlag.OPTIONAL in self.flags

    def applies_to(self, tier: str) -> bool:
        return self.tiers is None or tier in self.tiers


@dataclass
class TemplateDelta:
    section_order: list[str]
    overrides: dict[str, str] = field(default_factory=dict)
    removed_sections: list[str] = field(default_factory=list)
    added_sections: list[Section] = field(default_factory=list)


def _parse_attributes(raw_attrs: str) -> dict[str, str]:
    return dict(_ATTR_RE.findall(raw_attrs))


def parse_sections(tagged: str) -> list[Section]:
    """Parse a tagged template into Section records, in order of appearance.

    Text outside sections is ignored. Raises TemplateSyntaxError for a
    section without a name or without a closing tag.
    """
    sections: list[Section] = []
    pos = 0
    while True:
        match = _OPEN_TAG_RE.search(tagged, pos)
        if match is None:
            break

        attrs = _parse_attributes(match.group(1))
        name = attrs.get("name")
        if not name:
            raise TemplateSyntaxError(f"Section tag without a name at offset {match.start()}")

        close = tagged.find(_CLOSE_TAG, match.end())
        if close == -1:
            raise TemplateSyntaxError(f"Section {name!r} is missing its closing tag")

        flags = frozenset(flag for flag in SectionFlag if attrs.get(flag.value) == "true")
        tiers = None
        if "tier" in attrs:
            tiers = tuple(t.strip() for t in attrs["tier"].split(",") if t.strip())

        sections.append(
            Section(
                name=name,
                content=tagged[match.end():close].strip(),
                flags=flags,
                tiers=tiers,
            )
        )
        pos = close + len(_CLOSE_TAG)
    return sections


def select_for_tier(sections: list[Section], tier: str) -> list[Section]:
    return [s for s in sections if s.applies_to(tier)]


def render_sections(sections: list[Section]) -> str:
    """Rebuild a tagged template from Section records."""
    parts: list[str] = []
    for section in sections:
        attrs = [f'name="{section.name}"']
        for flag in SectionFlag:
            if flag in section.flags:
                attrs.append(f'{flag.value}="true"')
        if section.tiers:
            attrs.append(f'tier="{",".join(section.tiers)}"')
        parts.append(f"<section {' '.join(attrs)}>\n{section.content}\n{_CLOSE_TAG}")
    return "\n\n".join(parts)


def compute_delta(baseline: str, optimized: str) -> TemplateDelta:
    """Describe how ``optimized`` differs from ``baseline``, section by section.

    Overrides are recorded only for sections that are not locked in the
    baseline.
    """
    baseline_sections = parse_sections(baseline)
    optimized_sections = parse_sections(optimized)
    baseline_map = {s.name: s for s in baseline_sections}
    optimized_names = {s.name for s in optimized_sections}

    delta = TemplateDelta(section_order=[s.name for s in optimized_sections])
    for section in optimized_sections:
        original = baseline_map.get(section.name)
        if original is None:
            delta.added_sections.append(section)
        elif not original.locked and section.content != original.content:
            delta.overrides[section.name] = section.content

    delta.removed_sections = [s.name for s in baseline_sections if s.name not in optimized_names]
    return delta


def apply_delta(baseline: str, delta: TemplateDelta) -> str:
    """Assemble plain prompt text from a baseline template and a delta."""
    baseline_map = {s.name: s for s in parse_sections(baseline)}
    added_map = {s.name: s for s in delta.added_sections}
    removed = set(delta.removed_sections)

    parts: list[str] = []
    for name in delta.section_order:
        if name in removed:
            continue
        if name in added_map:
            parts.append(added_map[name].content)
            continue
        original = baseline_map.get(name)
        if original is None:
            continue
        if name in delta.overrides and not original.locked:
            parts.append(delta.overrides[name])
        else:
            parts.append(original.content)

    return re.sub(r"\n{3,}", "\n\n", "\n\n".join(parts)).strip()
