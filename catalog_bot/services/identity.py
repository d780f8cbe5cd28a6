# catalog_bot/services/identity.py

from __future__ import annotations

import hashlib
import re

CATEGORY_PREFIXES = {"movie": "mo", "webseries": "ws", "anime": "an"}
SLUG_MAX_LEN = 15
DIGEST_LEN = 6

_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9_]")


def slugify_title(title: str) -> str:
    """Lower-cases a title and keeps only `[a-z0-9_]`, capped at 15 characters."""
    slug = _WHITESPACE.sub("_", title.strip().lower())
    slug = _NON_SLUG.sub("", slug)
    return slug[:SLUG_MAX_LEN].strip("_") or "untitled"


def _digest(category: str, title: str, year: int) -> str:
    normalized = f"{category}|{_WHITESPACE.sub(' ', title.strip().casefold())}|{year}"
    return hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:DIGEST_LEN]


def generate_content_id(category: str, title: str, year: int) -> str:
    """
    Derives the storage key and deep-link payload for a movie or series.

    The result is a pure function of its inputs, e.g.
    ``generate_content_id("movie", "Inception", 2010)`` always returns
    ``"mo_inception_2010_<digest>"``. Two titles that share the same 15-character
    slug still get different ids through the digest.
    """
    try:
        prefix = CATEGORY_PREFIXES[category]
    except KeyError:
        raise ValueError(f"Unknown content category '{category}'.")
    return f"{prefix}_{slugify_title(title)}_{int(year)}_{_digest(category, title, int(year))}"


def generate_episode_id(series_id: str, season_number: int, episode_number: int) -> str:
    return f"{series_id}_s{season_number:02d}e{episode_number:02d}"


def season_choice_token(series_id: str, season_number: int) -> str:
    """Composite callback token for the season chooser."""
    return f"season_{series_id}_{season_number}"


def parse_season_choice_token(token: str) -> tuple[str, int] | None:
    """Splits a season chooser token back into (series id, season number)."""
    if not token.startswith("season_"):
        return None
    series_id, _, number = token[len("season_") :].rpartition("_")
    if not series_id or not number.isdigit():
        return None
    return series_id, int(number)
