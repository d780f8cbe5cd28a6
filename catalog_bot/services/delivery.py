# catalog_bot/services/delivery.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from html import escape
from typing import Literal
from urllib.parse import unquote

from telegram.constants import ParseMode

from ..config import LimitSettings, logger
from ..models import ArtifactRef, Episode, Movie, Series
from ..ui import messages
from .identity import parse_season_choice_token, season_choice_token
from .repository import CatalogRepository
from .retry import PermanentFailure, RetryPolicy, Sleep, run_with_backoff
from .transport import TelegramTransport

ResolutionKind = Literal["movie", "episode", "series", "not_found"]


@dataclass(frozen=True)
class Resolution:
    kind: ResolutionKind
    movie: Movie | None = None
    episode: Episode | None = None
    series: Series | None = None


@dataclass
class DeliveryReport:
    total: int
    delivered: int = 0
    failed: list[int] = field(default_factory=list)


class DeliveryResolver:
    """
    Maps deep-link identifiers to stored artifacts and relays them to whoever
    opened the link. It reads the repository directly and never touches
    conversation state.
    """

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

    async def resolve(self, identifier: str) -> Resolution:
        """Exact movie id, exact episode id, exact series id, then series id ignoring case."""
        identifier = unquote(identifier or "").strip()
        if not identifier:
            return Resolution("not_found")

        movie = await self.repository.get_movie(identifier)
        if movie is not None:
            return Resolution("movie", movie=movie)

        episode = await self.repository.get_episode(identifier)
        if episode is not None:
            return Resolution("episode", episode=episode)

        series = await self.repository.get_series(identifier)
        if series is None:
            series = await self.repository.get_series(identifier, ignore_case=True)
        if series is not None:
            return Resolution("series", series=series)

        return Resolution("not_found")

    async def handle_deep_link(self, chat_id: int, payload: str) -> Resolution:
        resolution = await self.resolve(payload)
        logger.info(f"[DELIVERY] Payload '{payload}' for chat {chat_id} -> {resolution.kind}")

        if resolution.kind == "movie" and resolution.movie is not None:
            movie = resolution.movie
            if await self._relay(chat_id, movie.artifact, movie.id):
                await self.transport.send_text(
                    chat_id, f"🎬 Enjoy <b>{escape(movie.title)}</b> ({movie.year})!",
                    parse_mode=ParseMode.HTML,
                )
            else:
                await self.transport.send_text(chat_id, "❌ Failed to send this movie. Please try again later.")
        elif resolution.kind == "episode" and resolution.episode is not None:
            episode = resolution.episode
            if not await self._relay(chat_id, episode.artifact, episode.id):
                await self.transport.send_text(chat_id, "❌ Failed to send this episode. Please try again later.")
        elif resolution.kind == "series" and resolution.series is not None:
            await self._present_seasons(chat_id, resolution.series)
        else:
            await self.transport.send_text(chat_id, messages.CONTENT_NOT_FOUND)
        return resolution

    async def _present_seasons(self, chat_id: int, series: Series) -> None:
        seasons = await self.repository.list_seasons(series.id)
        if not seasons:
            await self.transport.send_text(chat_id, messages.NO_SEASONS)
            return
        options = [
            (season.title, season_choice_token(series.id, season.number)) for season in seasons
        ]
        text = f"📺 <b>{escape(series.title)}</b> ({series.year})\n\nSelect a season:"
        await self.transport.present_choice(chat_id, text, options, parse_mode=ParseMode.HTML)

    async def handle_season_choice(self, chat_id: int, token: str) -> DeliveryReport | None:
        """Relays every episode of the chosen season in ascending order."""
        parsed = parse_season_choice_token(token)
        series = season = None
        if parsed is not None:
            series_id, number = parsed
            series = await self.repository.get_series(series_id)
            season = await self.repository.get_season(series_id, number)
        if series is None or season is None:
            await self.transport.send_text(chat_id, messages.CONTENT_NOT_FOUND)
            return None

        episodes = await self.repository.list_episodes(series.id, season.number)
        if not episodes:
            await self.transport.send_text(chat_id, messages.NO_EPISODES)
            return None

        await self.transport.send_text(
            chat_id,
            messages.season_header(series, season.title, len(episodes)),
            parse_mode=ParseMode.HTML,
        )

        report = DeliveryReport(total=len(episodes))
        for index, episode in enumerate(episodes):
            if index > 0:
                await self._sleep(self.limits.delivery_pacing_seconds)
            if await self._relay(chat_id, episode.artifact, episode.id):
                report.delivered += 1
            else:
                report.failed.append(episode.number)
                await self.transport.send_text(
                    chat_id, f"❌ Failed to send Episode {episode.number}."
                )

        await self.transport.send_text(
            chat_id, messages.delivery_summary(report.delivered, report.total)
        )
        logger.info(
            f"[DELIVERY] {series.id} season {season.number} to chat {chat_id}: "
            f"{report.delivered}/{report.total} relayed."
        )
        return report

    async def _relay(self, chat_id: int, artifact: ArtifactRef, label: str) -> bool:
        outcome = await run_with_backoff(
            lambda: self.transport.relay(chat_id, artifact), self.policy, sleep=self._sleep
        )
        if isinstance(outcome, PermanentFailure):
            logger.error(f"[DELIVERY] Relay of {label} to {chat_id} failed: {outcome.user_message}")
            return False
        return True
