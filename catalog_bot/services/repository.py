# catalog_bot/services/repository.py

from __future__ import annotations

import asyncio
import copy
import re
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..config import DatabaseSettings, logger
from ..errors import NotFoundError, PersistenceConflict
from ..models import (
    Episode,
    Movie,
    Operator,
    Season,
    Series,
    from_document,
    to_document,
)

EDITABLE_FIELDS = frozenset({"title", "year", "description", "genres"})


class CatalogRepository(ABC):
    """
    Persistence contract for the catalog.

    Implementations enforce the unique indexes (movie id, series id, episode id,
    season per series, episode number per season) by raising
    `PersistenceConflict`, and keep `Series.seasons` / `Season.episodes` in step
    with the child records.
    """

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    # --- Movies ---
    @abstractmethod
    async def create_movie(self, movie: Movie) -> Movie: ...

    @abstractmethod
    async def get_movie(self, movie_id: str) -> Movie | None: ...

    @abstractmethod
    async def update_movie(self, movie_id: str, changes: dict[str, Any]) -> Movie: ...

    @abstractmethod
    async def delete_movie(self, movie_id: str) -> bool: ...

    @abstractmethod
    async def search_movies(self, query: str, limit: int) -> list[Movie]: ...

    @abstractmethod
    async def recent_movies(self, limit: int) -> list[Movie]: ...

    # --- Series ---
    @abstractmethod
    async def create_series(self, series: Series) -> Series: ...

    @abstractmethod
    async def get_series(self, series_id: str, *, ignore_case: bool = False) -> Series | None: ...

    @abstractmethod
    async def update_series(self, series_id: str, changes: dict[str, Any]) -> Series: ...

    @abstractmethod
    async def delete_series(self, series_id: str) -> bool: ...

    @abstractmethod
    async def search_series(self, query: str, limit: int) -> list[Series]: ...

    @abstractmethod
    async def recent_series(self, limit: int) -> list[Series]: ...

    # --- Seasons ---
    @abstractmethod
    async def create_season(self, season: Season) -> Season: ...

    @abstractmethod
    async def get_season(self, series_id: str, number: int) -> Season | None: ...

    @abstractmethod
    async def list_seasons(self, series_id: str) -> list[Season]: ...

    @abstractmethod
    async def rename_season(self, series_id: str, number: int, title: str) -> Season: ...

    @abstractmethod
    async def delete_season(self, series_id: str, number: int) -> bool: ...

    # --- Episodes ---
    @abstractmethod
    async def create_episode(self, episode: Episode) -> Episode: ...

    @abstractmethod
    async def get_episode(self, episode_id: str) -> Episode | None: ...

    @abstractmethod
    async def list_episodes(self, series_id: str, season_number: int) -> list[Episode]: ...

    # --- Operators ---
    @abstractmethod
    async def get_operator(self, user_id: int) -> Operator | None: ...

    @abstractmethod
    async def save_operator(self, operator: Operator) -> Operator: ...

    @abstractmethod
    async def record_upload(self, user_id: int) -> None: ...


def _check_editable(changes: dict[str, Any]) -> None:
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields {sorted(unknown)} cannot be edited.")


def _matches(query: str, *values: str) -> bool:
    needle = query.casefold()
    return any(needle in value.casefold() for value in values)


class InMemoryCatalogRepository(CatalogRepository):
    """Dict-backed catalog used by tests and by the `memory` backend."""

    def __init__(self) -> None:
        self.movies: dict[str, Movie] = {}
        self.series: dict[str, Series] = {}
        self.seasons: dict[tuple[str, int], Season] = {}
        self.episodes: dict[str, Episode] = {}
        self.operators: dict[int, Operator] = {}

    # Returned records are copies so callers cannot mutate the store by accident.
    @staticmethod
    def _copy(record: Any) -> Any:
        return copy.deepcopy(record)

    async def create_movie(self, movie: Movie) -> Movie:
        if movie.id in self.movies:
            raise PersistenceConflict("movies", movie.id)
        self.movies[movie.id] = self._copy(movie)
        return self._copy(movie)

    async def get_movie(self, movie_id: str) -> Movie | None:
        movie = self.movies.get(movie_id)
        return self._copy(movie) if movie else None

    async def update_movie(self, movie_id: str, changes: dict[str, Any]) -> Movie:
        _check_editable(changes)
        movie = self.movies.get(movie_id)
        if movie is None:
            raise NotFoundError(f"❌ Movie {movie_id} not found.")
        self.movies[movie_id] = replace(movie, **changes)
        return self._copy(self.movies[movie_id])

    async def delete_movie(self, movie_id: str) -> bool:
        return self.movies.pop(movie_id, None) is not None

    async def search_movies(self, query: str, limit: int) -> list[Movie]:
        hits = [m for m in self.movies.values() if _matches(query, m.title, m.id)]
        return [self._copy(m) for m in hits[:limit]]

    async def recent_movies(self, limit: int) -> list[Movie]:
        ordered = sorted(self.movies.values(), key=lambda m: m.created_at, reverse=True)
        return [self._copy(m) for m in ordered[:limit]]

    async def create_series(self, series: Series) -> Series:
        if series.id in self.series:
            raise PersistenceConflict("series", series.id)
        self.series[series.id] = self._copy(series)
        return self._copy(series)

    async def get_series(self, series_id: str, *, ignore_case: bool = False) -> Series | None:
        series = self.series.get(series_id)
        if series is None and ignore_case:
            wanted = series_id.casefold()
            series = next(
                (s for key, s in self.series.items() if key.casefold() == wanted), None
            )
        return self._copy(series) if series else None

    async def update_series(self, series_id: str, changes: dict[str, Any]) -> Series:
        _check_editable(changes)
        series = self.series.get(series_id)
        if series is None:
            raise NotFoundError(f"❌ Series {series_id} not found.")
        self.series[series_id] = replace(series, **changes)
        return self._copy(self.series[series_id])

    async def delete_series(self, series_id: str) -> bool:
        if self.series.pop(series_id, None) is None:
            return False
        for key in [k for k in self.seasons if k[0] == series_id]:
            del self.seasons[key]
        for episode_id in [e.id for e in self.episodes.values() if e.series_id == series_id]:
            del self.episodes[episode_id]
        return True

    async def search_series(self, query: str, limit: int) -> list[Series]:
        hits = [s for s in self.series.values() if _matches(query, s.title, s.id)]
        return [self._copy(s) for s in hits[:limit]]

    async def recent_series(self, limit: int) -> list[Series]:
        ordered = sorted(self.series.values(), key=lambda s: s.created_at, reverse=True)
        return [self._copy(s) for s in ordered[:limit]]

    async def create_season(self, season: Season) -> Season:
        series = self.series.get(season.series_id)
        if series is None:
            raise NotFoundError(f"❌ Series {season.series_id} not found.")
        key = (season.series_id, season.number)
        if key in self.seasons:
            raise PersistenceConflict("seasons", key)
        self.seasons[key] = self._copy(season)
        series.seasons.append(season.number)
        return self._copy(season)

    async def get_season(self, series_id: str, number: int) -> Season | None:
        season = self.seasons.get((series_id, number))
        return self._copy(season) if season else None

    async def list_seasons(self, series_id: str) -> list[Season]:
        seasons = [s for key, s in self.seasons.items() if key[0] == series_id]
        return [self._copy(s) for s in sorted(seasons, key=lambda s: s.number)]

    async def rename_season(self, series_id: str, number: int, title: str) -> Season:
        season = self.seasons.get((series_id, number))
        if season is None:
            raise NotFoundError(f"❌ Season {number} of {series_id} not found.")
        season.title = title or f"Season {number}"
        return self._copy(season)

    async def delete_season(self, series_id: str, number: int) -> bool:
        if self.seasons.pop((series_id, number), None) is None:
            return False
        series = self.series.get(series_id)
        if series is not None and number in series.seasons:
            series.seasons.remove(number)
        for episode_id in [
            e.id
            for e in self.episodes.values()
            if e.series_id == series_id and e.season_number == number
        ]:
            del self.episodes[episode_id]
        return True

    async def create_episode(self, episode: Episode) -> Episode:
        season = self.seasons.get((episode.series_id, episode.season_number))
        if season is None:
            raise NotFoundError(
                f"❌ Season {episode.season_number} of {episode.series_id} not found."
            )
        if episode.id in self.episodes:
            raise PersistenceConflict("episodes", episode.id)
        if any(
            e.series_id == episode.series_id
            and e.season_number == episode.season_number
            and e.number == episode.number
            for e in self.episodes.values()
        ):
            raise PersistenceConflict(
                "episodes", (episode.series_id, episode.season_number, episode.number)
            )
        self.episodes[episode.id] = self._copy(episode)
        season.episodes.append(episode.id)
        return self._copy(episode)

    async def get_episode(self, episode_id: str) -> Episode | None:
        episode = self.episodes.get(episode_id)
        return self._copy(episode) if episode else None

    async def list_episodes(self, series_id: str, season_number: int) -> list[Episode]:
        episodes = [
            e
            for e in self.episodes.values()
            if e.series_id == series_id and e.season_number == season_number
        ]
        return [self._copy(e) for e in sorted(episodes, key=lambda e: e.number)]

    async def get_operator(self, user_id: int) -> Operator | None:
        operator = self.operators.get(user_id)
        return self._copy(operator) if operator else None

    async def save_operator(self, operator: Operator) -> Operator:
        self.operators[operator.user_id] = self._copy(operator)
        return self._copy(operator)

    async def record_upload(self, user_id: int) -> None:
        operator = self.operators.setdefault(user_id, Operator(user_id=user_id))
        operator.upload_count += 1
        operator.last_upload = datetime.now(timezone.utc)


class MongoCatalogRepository(CatalogRepository):
    """MongoDB-backed catalog using the motor asyncio driver."""

    def __init__(self, uri: str, database_name: str, client: Any = None):
        self._uri = uri
        self._database_name = database_name
        self._client = client
        self._db: Any = client[database_name] if client is not None else None

    @property
    def db(self) -> Any:
        if self._db is None:
            raise RuntimeError("MongoDB repository used before connect().")
        return self._db

    async def connect(self) -> None:
        if self._client is None:
            logger.info("Connecting to MongoDB...")
            self._client = AsyncIOMotorClient(
                self._uri, serverSelectionTimeoutMS=10000, tz_aware=True
            )
            self._db = self._client[self._database_name]
        await self._client.admin.command("ping")
        logger.info(f"Connected to MongoDB database '{self._database_name}'.")
        await self._ensure_indexes()

    async def _ensure_indexes(self) -> None:
        results = await asyncio.gather(
            self.db.movies.create_index([("id", ASCENDING)], unique=True),
            self.db.movies.create_index([("created_at", DESCENDING)]),
            self.db.series.create_index([("id", ASCENDING)], unique=True),
            self.db.series.create_index([("created_at", DESCENDING)]),
            self.db.seasons.create_index(
                [("series_id", ASCENDING), ("number", ASCENDING)], unique=True
            ),
            self.db.episodes.create_index([("id", ASCENDING)], unique=True),
            self.db.episodes.create_index(
                [("series_id", ASCENDING), ("season_number", ASCENDING), ("number", ASCENDING)],
                unique=True,
            ),
            self.db.operators.create_index([("user_id", ASCENDING)], unique=True),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, Exception)]
        for failure in failures:
            logger.error(f"Failed to create MongoDB index: {failure}")
        if failures:
            raise RuntimeError("Unique indexes could not be created; refusing to start.")
        logger.info("MongoDB indexes ensured.")

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("MongoDB connection closed.")
        self._client = None
        self._db = None

    async def _insert(self, collection: str, record: Any, key: object) -> None:
        try:
            await self.db[collection].insert_one(to_document(record))
        except DuplicateKeyError:
            raise PersistenceConflict(collection, key)

    @staticmethod
    def _regex(query: str) -> dict[str, Any]:
        return {"$regex": re.escape(query), "$options": "i"}

    async def _find_many(
        self, collection: str, cls: type, filter_: dict, sort: list, limit: int = 0
    ) -> list[Any]:
        cursor = self.db[collection].find(filter_).sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        documents = await cursor.to_list(length=None)
        return [from_document(cls, doc) for doc in documents]

    async def _update(self, collection: str, cls: type, record_id: str, changes: dict) -> Any:
        _check_editable(changes)
        document = await self.db[collection].find_one_and_update(
            {"id": record_id}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
        if document is None:
            raise NotFoundError(f"❌ {record_id} not found.")
        return from_document(cls, document)

    async def create_movie(self, movie: Movie) -> Movie:
        await self._insert("movies", movie, movie.id)
        return movie

    async def get_movie(self, movie_id: str) -> Movie | None:
        document = await self.db.movies.find_one({"id": movie_id})
        return from_document(Movie, document) if document else None

    async def update_movie(self, movie_id: str, changes: dict[str, Any]) -> Movie:
        return await self._update("movies", Movie, movie_id, changes)

    async def delete_movie(self, movie_id: str) -> bool:
        result = await self.db.movies.delete_one({"id": movie_id})
        return result.deleted_count > 0

    async def search_movies(self, query: str, limit: int) -> list[Movie]:
        filter_ = {"$or": [{"title": self._regex(query)}, {"id": self._regex(query)}]}
        return await self._find_many("movies", Movie, filter_, [("created_at", DESCENDING)], limit)

    async def recent_movies(self, limit: int) -> list[Movie]:
        return await self._find_many("movies", Movie, {}, [("created_at", DESCENDING)], limit)

    async def create_series(self, series: Series) -> Series:
        await self._insert("series", series, series.id)
        return series

    async def get_series(self, series_id: str, *, ignore_case: bool = False) -> Series | None:
        document = await self.db.series.find_one({"id": series_id})
        if document is None and ignore_case:
            document = await self.db.series.find_one(
                {"id": {"$regex": f"^{re.escape(series_id)}$", "$options": "i"}}
            )
        return from_document(Series, document) if document else None

    async def update_series(self, series_id: str, changes: dict[str, Any]) -> Series:
        return await self._update("series", Series, series_id, changes)

    async def delete_series(self, series_id: str) -> bool:
        await self.db.episodes.delete_many({"series_id": series_id})
        await self.db.seasons.delete_many({"series_id": series_id})
        result = await self.db.series.delete_one({"id": series_id})
        return result.deleted_count > 0

    async def search_series(self, query: str, limit: int) -> list[Series]:
        filter_ = {"$or": [{"title": self._regex(query)}, {"id": self._regex(query)}]}
        return await self._find_many("series", Series, filter_, [("created_at", DESCENDING)], limit)

    async def recent_series(self, limit: int) -> list[Series]:
        return await self._find_many("series", Series, {}, [("created_at", DESCENDING)], limit)

    async def create_season(self, season: Season) -> Season:
        if await self.db.series.find_one({"id": season.series_id}) is None:
            raise NotFoundError(f"❌ Series {season.series_id} not found.")
        await self._insert("seasons", season, (season.series_id, season.number))
        await self.db.series.update_one(
            {"id": season.series_id}, {"$push": {"seasons": season.number}}
        )
        return season

    async def get_season(self, series_id: str, number: int) -> Season | None:
        document = await self.db.seasons.find_one({"series_id": series_id, "number": number})
        return from_document(Season, document) if document else None

    async def list_seasons(self, series_id: str) -> list[Season]:
        return await self._find_many(
            "seasons", Season, {"series_id": series_id}, [("number", ASCENDING)]
        )

    async def rename_season(self, series_id: str, number: int, title: str) -> Season:
        document = await self.db.seasons.find_one_and_update(
            {"series_id": series_id, "number": number},
            {"$set": {"title": title or f"Season {number}"}},
            return_document=ReturnDocument.AFTER,
        )
        if document is None:
            raise NotFoundError(f"❌ Season {number} of {series_id} not found.")
        return from_document(Season, document)

    async def delete_season(self, series_id: str, number: int) -> bool:
        result = await self.db.seasons.delete_one({"series_id": series_id, "number": number})
        if result.deleted_count == 0:
            return False
        await self.db.episodes.delete_many({"series_id": series_id, "season_number": number})
        await self.db.series.update_one({"id": series_id}, {"$pull": {"seasons": number}})
        return True

    async def create_episode(self, episode: Episode) -> Episode:
        season_filter = {"series_id": episode.series_id, "number": episode.season_number}
        if await self.db.seasons.find_one(season_filter) is None:
            raise NotFoundError(
                f"❌ Season {episode.season_number} of {episode.series_id} not found."
            )
        await self._insert("episodes", episode, episode.id)
        await self.db.seasons.update_one(season_filter, {"$push": {"episodes": episode.id}})
        return episode

    async def get_episode(self, episode_id: str) -> Episode | None:
        document = await self.db.episodes.find_one({"id": episode_id})
        return from_document(Episode, document) if document else None

    async def list_episodes(self, series_id: str, season_number: int) -> list[Episode]:
        return await self._find_many(
            "episodes",
            Episode,
            {"series_id": series_id, "season_number": season_number},
            [("number", ASCENDING)],
        )

    async def get_operator(self, user_id: int) -> Operator | None:
        document = await self.db.operators.find_one({"user_id": user_id})
        return from_document(Operator, document) if document else None

    async def save_operator(self, operator: Operator) -> Operator:
        await self.db.operators.replace_one(
            {"user_id": operator.user_id}, to_document(operator), upsert=True
        )
        return operator

    async def record_upload(self, user_id: int) -> None:
        await self.db.operators.update_one(
            {"user_id": user_id},
            {"$inc": {"upload_count": 1}, "$set": {"last_upload": datetime.now(timezone.utc)}},
            upsert=True,
        )


def build_repository(settings: DatabaseSettings) -> CatalogRepository:
    if settings.backend == "mongo":
        return MongoCatalogRepository(settings.mongo_uri or "", settings.database_name)
    return InMemoryCatalogRepository()
