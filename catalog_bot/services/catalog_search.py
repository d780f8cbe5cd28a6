# catalog_bot/services/catalog_search.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from thefuzz import fuzz

from ..config import SEARCH_RESULT_LIMIT, logger
from ..models import Movie, Series
from .repository import CatalogRepository

FUZZ_THRESHOLD = 70
CANDIDATE_POOL = 200


@dataclass(frozen=True)
class SearchHit:
    kind: Literal["movie", "series"]
    id: str
    title: str
    year: int
    score: int


def score_record(query: str, record: Movie | Series) -> int:
    """Best of a token-set match on the title and a partial match on the id."""
    q = query.casefold().strip()
    title_score = fuzz.token_set_ratio(q, record.title.casefold())
    id_score = fuzz.partial_ratio(q, record.id.casefold())
    return max(title_score, id_score)


async def search_catalog(
    repository: CatalogRepository,
    query: str,
    limit: int = SEARCH_RESULT_LIMIT,
    *,
    threshold: int = FUZZ_THRESHOLD,
) -> list[SearchHit]:
    """
    Searches movies and series by title or id. Substring hits from the
    repository always qualify; recent records are added when they pass the
    fuzzy threshold, so small typos still find their target.
    """
    query = query.strip()
    if not query:
        return []

    exact_movies = await repository.search_movies(query, limit)
    exact_series = await repository.search_series(query, limit)
    exact_ids = {record.id for record in [*exact_movies, *exact_series]}

    candidates: dict[str, Movie | Series] = {}
    for record in [
        *exact_movies,
        *exact_series,
        *await repository.recent_movies(CANDIDATE_POOL),
        *await repository.recent_series(CANDIDATE_POOL),
    ]:
        candidates.setdefault(record.id, record)

    hits: list[SearchHit] = []
    for record in candidates.values():
        score = 100 if record.id in exact_ids else score_record(query, record)
        if score < threshold:
            continue
        hits.append(
            SearchHit(
                kind="movie" if isinstance(record, Movie) else "series",
                id=record.id,
                title=record.title,
                year=record.year,
                score=score,
            )
        )

    hits.sort(key=lambda hit: (-hit.score, hit.title.casefold()))
    logger.info(f"[SEARCH] '{query}' matched {len(hits)} record(s).")
    return hits[:limit]
