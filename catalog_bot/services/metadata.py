# catalog_bot/services/metadata.py

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Protocol, Sequence

DEFAULT_SEASON = 1

SEASON_EPISODE_PATTERN = re.compile(
    r"(?i)(?<![a-z])(?:S|Season)[\s._-]*(\d{1,3})[\s._-]*(?:E|Ep|Episode)[\s._-]*(\d{1,4})(?!\d)"
)
COMPACT_PATTERN = re.compile(r"(?<!\d)(\d{1,2})[xX](\d{1,3})(?!\d)")
EPISODE_MARKER_PATTERN = re.compile(r"(?i)(?<![a-z])(?:Episode|Ep)[\s._-]*(\d{1,4})(?!\d)")
FIRST_DIGITS_PATTERN = re.compile(r"\d+")
SEPARATORS_PATTERN = re.compile(r"[\s._-]+")


@dataclass(frozen=True)
class EpisodeMetadata:
    """Numbering hints inferred from a filename."""

    season_number: int = DEFAULT_SEASON
    episode_number: int | None = None
    episode_title: str | None = None


class MetadataRule(Protocol):
    name: str

    def try_match(self, name: str) -> EpisodeMetadata | None: ...


def _clean_title(text: str) -> str | None:
    title = SEPARATORS_PATTERN.sub(" ", text).strip()
    return title or None


@dataclass(frozen=True)
class SeasonEpisodeRule:
    """`S01E02`, `s1 e2` or `Season 1 Episode 2`."""

    name: str = "season_episode"

    def try_match(self, name: str) -> EpisodeMetadata | None:
        match = SEASON_EPISODE_PATTERN.search(name)
        if not match:
            return None
        return EpisodeMetadata(
            season_number=int(match.group(1)),
            episode_number=int(match.group(2)),
            episode_title=_clean_title(name[match.end() :]),
        )


@dataclass(frozen=True)
class CompactRule:
    """`1x02`. Resolutions such as `1920x1080` are not matched."""

    name: str = "compact"

    def try_match(self, name: str) -> EpisodeMetadata | None:
        match = COMPACT_PATTERN.search(name)
        if not match:
            return None
        return EpisodeMetadata(
            season_number=int(match.group(1)),
            episode_number=int(match.group(2)),
            episode_title=_clean_title(name[match.end() :]),
        )


@dataclass(frozen=True)
class EpisodeMarkerRule:
    """`Episode 7` or `Ep07` without a season."""

    name: str = "episode_marker"

    def try_match(self, name: str) -> EpisodeMetadata | None:
        match = EPISODE_MARKER_PATTERN.search(name)
        if not match:
            return None
        return EpisodeMetadata(
            episode_number=int(match.group(1)),
            episode_title=_clean_title(name[match.end() :]),
        )


@dataclass(frozen=True)
class FirstDigitsRule:
    """Last resort: the first run of digits anywhere in the name."""

    name: str = "first_digits"

    def try_match(self, name: str) -> EpisodeMetadata | None:
        match = FIRST_DIGITS_PATTERN.search(name)
        if not match:
            return None
        return EpisodeMetadata(episode_number=int(match.group(0)))


DEFAULT_RULES: tuple[MetadataRule, ...] = (
    SeasonEpisodeRule(),
    CompactRule(),
    EpisodeMarkerRule(),
    FirstDigitsRule(),
)


def extract_episode_metadata(
    filename: str, rules: Sequence[MetadataRule] = DEFAULT_RULES
) -> EpisodeMetadata:
    """
    Applies the rules in order to the filename (extension removed) and returns the
    first match. When nothing matches, the episode number stays `None` and the
    caller has to ask the operator for it.
    """
    stem = os.path.splitext(filename or "")[0]
    for rule in rules:
        metadata = rule.try_match(stem)
        if metadata is not None:
            return metadata
    return EpisodeMetadata()
