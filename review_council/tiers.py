"""Capability tiers and the user-facing aliases that map onto them."""

import logging

logger = logging.getLogger(__name__)

TIERS = ("fast", "balanced", "thorough")

TIER_ALIASES = {
    "free": "fast",
    "standard": "balanced",
    "premium": "thorough",
}

DEFAULT_TIER = "balanced"


def resolve_tier(tier_or_alias: str | None) -> str:
    """Map a tier name or alias to one of TIERS.

    Empty input resolves to the default silently. Unknown input also resolves
    to the default but logs a warning; this is never fatal.
    """
    if not tier_or_alias:
        return DEFAULT_TIER

    key = tier_or_alias.strip().lower()
    if key in TIERS:
        return key
    if key in TIER_ALIASES:
        return TIER_ALIASES[key]

    logger.warning(
        "Unknown tier %r, falling back to %r. Valid tiers: %s (aliases: %s)",
        tier_or_alias,
        DEFAULT_TIER,
        ", ".join(TIERS),
        ", ".join(TIER_ALIASES),
    )
    return DEFAULT_TIER
