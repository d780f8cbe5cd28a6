# catalog_bot/services/ingestion.py

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from html import escape
from typing import Any, Awaitable, Callable, Sequence

from ..config import LimitSettings, logger
from ..errors import CatalogBotError, PersistenceConflict, ValidationError
from ..models import Episode, FileRef, Movie, Series
from ..ui import messages
from ..utils import format_bytes
from .identity import generate_content_id, generate_episode_id
from .metadata import extract_episode_metadata
from .repository import CatalogRepository
from .retry import PermanentFailure, RetryPolicy, Sleep, run_with_backoff
from .transport import TelegramTransport

Notify = Callable[[str], Awaitable[object]]

_NUMBER_SEPARATORS = re.compile(r"[\s,]+")


@dataclass
class PendingFile:
    """A collected file waiting for upload, with the numbering inferred so far."""

    file: FileRef
    season_number: int
    episode_number: int | None = None
    episode_title: str | None = None

    @property
    def label(self) -> str:
        return self.file.file_name or self.file.file_id


@dataclass
class MovieDraft:
    title: str
    year: int
    channel_id: int
    file: FileRef
    genres: list[str] = field(default_factory=list)
    description: str = ""


@dataclass
class BatchReport:
    total: int
    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    cancelled: bool = False


def check_file_size(file: FileRef, limits: LimitSettings) -> None:
    if file.file_size and file.file_size > limits.max_file_size_bytes:
        raise ValidationError(
            f"❌ File too large ({format_bytes(file.file_size)}). "
            f"Maximum size is {limits.max_file_size_mb} MB."
        )


def collect_file(pending: list[PendingFile], file: FileRef) -> PendingFile:
    """Runs the filename rules over a new file and appends it to the batch."""
    metadata = extract_episode_metadata(file.file_name)
    item = PendingFile(
        file=file,
        season_number=metadata.season_number,
        episode_number=metadata.episode_number,
        episode_title=metadata.episode_title,
    )
    pending.append(item)
    return item


def unresolved(pending: Sequence[PendingFile]) -> list[PendingFile]:
    return [item for item in pending if item.episode_number is None]


def parse_episode_numbers(reply: str, expected: int) -> list[int]:
    """
    Parses the manual numbering reply: exactly `expected` integers, each at least
    1, separated by commas or whitespace.
    """
    parts = [part for part in _NUMBER_SEPARATORS.split(reply.strip()) if part]
    if len(parts) != expected:
        raise ValidationError(
            f"❌ Please send exactly {expected} episode number(s), "
            f"separated by commas or spaces. You sent {len(parts)}."
        )
    numbers: list[int] = []
    for part in parts:
        if not part.isdigit() or int(part) < 1:
            raise ValidationError(f"❌ '{escape(part)}' is not a valid episode number.")
        numbers.append(int(part))
    return numbers


def resolve_numbers(pending: Sequence[PendingFile], numbers: Sequence[int]) -> None:
    """Writes manual numbers back onto the unresolved items in submission order."""
    targets = unresolved(pending)
    if len(targets) != len(numbers):
        raise ValidationError(
            f"❌ Expected {len(targets)} episode number(s), got {len(numbers)}."
        )
    for item, number in zip(targets, numbers):
        item.episode_number = number


def order_for_upload(pending: Sequence[PendingFile]) -> list[PendingFile]:
    """Stable ascending sort by episode number; missing titles become `Episode N`."""
    if unresolved(pending):
        raise ValidationError("❌ Some files still have no episode number.")
    ordered = sorted(pending, key=lambda item: item.episode_number or 0)
    for item in ordered:
        if not item.episode_title:
            item.episode_title = f"Episode {item.episode_number}"
    return ordered


class IngestionPipeline:
    """Uploads collected batches to storage channels one item at a time."""

    def __init__(
        self,
        repository: CatalogRepository,
        transport: TelegramTransport,
        limits: LimitSettings,
        *,
        sleep: Sleep = asyncio.sleep,
    ):
        self.repository = repository
        self.transport = transport
        self.limits = limits
        self.policy = RetryPolicy.from_limits(limits)
        self._sleep = sleep

    async def _notify(self, notify: Notify | None, text: str) -> None:
        if notify is None:
            return
        try:
            await notify(text)
        except CatalogBotError as e:
            logger.warning(f"[INGEST] Could not deliver progress message: {e.user_message}")

    async def _run_batch(
        self,
        items: Sequence[Any],
        label_of: Callable[[Any], str],
        store: Callable[[Any], Awaitable[str]],
        *,
        notify: Notify | None,
        should_continue: Callable[[], bool],
        progress_unit: str,
    ) -> BatchReport:
        report = BatchReport(total=len(items))

        async def _on_rate_limit(wait: float, _attempt: int) -> None:
            await self._notify(notify, messages.rate_limit_notice(wait))

        for index, item in enumerate(items):
            if not should_continue():
                logger.info(f"[INGEST] Batch stopped before item {index + 1}/{len(items)}.")
                report.cancelled = True
                break
            if index > 0:
                await self._sleep(self.limits.upload_pacing_seconds)

            outcome = await run_with_backoff(
                lambda: store(item),
                self.policy,
                sleep=self._sleep,
                on_rate_limit=_on_rate_limit,
            )
            if isinstance(outcome, PermanentFailure):
                logger.error(f"[INGEST] {label_of(item)} failed: {outcome.user_message}")
                report.failed.append((label_of(item), outcome.user_message))
                continue

            report.succeeded.append(outcome.value)
            every = self.limits.progress_every
            if every > 0 and len(report.succeeded) % every == 0:
                await self._notify(
                    notify, messages.upload_progress(index + 1, len(items), progress_unit)
                )

        logger.info(
            f"[INGEST] Batch done: {len(report.succeeded)} succeeded, "
            f"{len(report.failed)} failed, cancelled={report.cancelled}."
        )
        return report

    async def upload_episodes(
        self,
        *,
        series: Series,
        season_number: int,
        pending: Sequence[PendingFile],
        owner_id: int,
        notify: Notify | None = None,
        should_continue: Callable[[], bool] = lambda: True,
    ) -> BatchReport:
        """
        Uploads a season's batch in ascending episode order. Every success posts
        the file to the series' channel, creates the Episode (which the
        repository appends to its Season) and bumps the operator's counters.
        """
        ordered = order_for_upload(pending)

        async def _store(item: PendingFile) -> str:
            number = item.episode_number or 0
            episode_id = generate_episode_id(series.id, season_number, number)
            if await self.repository.get_episode(episode_id) is not None:
                raise PersistenceConflict("episodes", episode_id)
            caption = messages.episode_caption(
                series.title, season_number, number, item.episode_title or f"Episode {number}"
            )
            artifact = await self.transport.send_file(series.channel_id, item.file, caption)
            episode = Episode(
                id=episode_id,
                series_id=series.id,
                season_number=season_number,
                number=number,
                title=item.episode_title or f"Episode {number}",
                artifact=artifact,
            )
            await self.repository.create_episode(episode)
            await self.repository.record_upload(owner_id)
            logger.info(f"[INGEST] Stored episode {episode_id}.")
            return episode_id

        return await self._run_batch(
            ordered,
            lambda item: item.label,
            _store,
            notify=notify,
            should_continue=should_continue,
            progress_unit="episodes",
        )

    async def upload_movies(
        self,
        drafts: Sequence[MovieDraft],
        *,
        owner_id: int,
        notify: Notify | None = None,
        should_continue: Callable[[], bool] = lambda: True,
    ) -> BatchReport:
        """Uploads collected movies in submission order."""

        async def _store(draft: MovieDraft) -> str:
            movie_id = generate_content_id("movie", draft.title, draft.year)
            if await self.repository.get_movie(movie_id) is not None:
                raise PersistenceConflict("movies", movie_id)
            caption = messages.movie_caption(
                draft.title, draft.year, draft.description, draft.genres
            )
            artifact = await self.transport.send_file(draft.channel_id, draft.file, caption)
            movie = Movie(
                id=movie_id,
                title=draft.title,
                year=draft.year,
                artifact=artifact,
                owner_id=owner_id,
                genres=list(draft.genres),
                description=draft.description,
            )
            await self.repository.create_movie(movie)
            await self.repository.record_upload(owner_id)
            logger.info(f"[INGEST] Stored movie {movie_id}.")
            return movie_id

        return await self._run_batch(
            list(drafts),
            lambda draft: f"{draft.title} ({draft.year})",
            _store,
            notify=notify,
            should_continue=should_continue,
            progress_unit="movies",
        )
