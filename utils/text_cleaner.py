"""
Text helpers for model queries: cache keys, filename slugs, query cleanup.
"""

from __future__ import annotations

import re

from utils.log_config import get_logger

log = get_logger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_WHITESPACE = re.compile(r"\s+")
_SLUG_JUNK = re.compile(r"[^a-z0-9-]")
_DASHES = re.compile(r"-{2,}")


def normalize_key(model: str) -> str:
    """
    Cache key for a free-text model name.

    Examples:
        "Vivobarefoot Primus Lite III"   → "vivobarefoot_primus_lite_iii"
        "VIVOBAREFOOT primus-lite (III)" → "vivobarefoot_primus_lite_iii"
    """
    # Edge separators are dropped too, so "Primus Lite III!" shares a key with
    # "Primus Lite III" and a symbols-only query gets the empty key.
    return _NON_ALNUM.sub("_", str(model).lower()).strip("_")


def slugify(text: str) -> str:
    """
    URL-safe, human-readable filename stem.

    Examples:
        "Xero Shoes HFS II side view" → "xero-shoes-hfs-ii-side-view"
        "Be Lenka Trailwalker 2.0"    → "be-lenka-trailwalker-20"
    """
    slug = _WHITESPACE.sub("-", str(text).strip().lower())
    slug = _SLUG_JUNK.sub("", slug)
    return _DASHES.sub("-", slug).strip("-")


def clean_query(text: str) -> str:
    """Collapse whitespace in a user-supplied model name."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", str(text)).strip()


def is_valid_query(text: object) -> bool:
    """A model query must be a non-blank string."""
    return isinstance(text, str) and bool(text.strip())
