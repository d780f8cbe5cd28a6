# catalog_bot/workflows/flows/season_upload.py

from __future__ import annotations

from html import escape

from ...errors import NotFoundError, ValidationError
from ...models import Season, Series
from ..engine import COMMIT, FlowContext, FlowTable, InboundEvent, Step
from ..session import ConversationState
from .common import SKIP_OPTION, find_series, is_skip, parse_positive_int, require_text
from .episodes import FILES_STEP, commit_episode_batch, episode_steps
from .series_upload import validate_new_season

SERIES_ID_PROMPT = "🆔 Send the series id:"


async def _lookup_series(ctx: FlowContext, state: ConversationState, event: InboundEvent) -> Series:
    return await find_series(ctx, require_text(event, "❌ Please send the series id."))


async def _remember_series(ctx: FlowContext, state: ConversationState, series: Series) -> str:
    state.data["series_id"] = series.id
    existing = ", ".join(str(n) for n in sorted(series.seasons)) or "none"
    await ctx.reply(f"📺 <b>{escape(series.title)}</b>\nExisting seasons: {existing}")
    return "season_number"


async def _create_season(ctx: FlowContext, state: ConversationState, title: str) -> str:
    season = Season(
        series_id=state.data["series_id"], number=state.data["season_number"], title=title
    )
    await ctx.repository.create_season(season)
    state.track_season(season.series_id, season.number)
    await ctx.reply(f"✅ {escape(season.title)} created.")
    return FILES_STEP


def _store_season_number(ctx: FlowContext, state: ConversationState, number: int) -> str:
    state.data["season_number"] = number
    return "season_title"


_season_files, _season_numbers = episode_steps(after_upload=COMMIT)

ADD_SEASON_FLOW = FlowTable(
    name="add_season",
    command="addseason",
    label="Add season",
    steps=(
        Step(
            name="series_id",
            prompt=SERIES_ID_PROMPT,
            validate=_lookup_series,
            transition=_remember_series,
        ),
        Step(
            name="season_number",
            prompt="🔢 Send the new season number:",
            validate=validate_new_season,
            transition=_store_season_number,
        ),
        Step(
            name="season_title",
            prompt=lambda ctx, state: (
                f"🏷 Send a title for Season {state.data['season_number']}, or type skip:"
            ),
            validate=lambda ctx, state, event: "" if is_skip(event.text) else require_text(event),
            transition=_create_season,
            options=SKIP_OPTION,
        ),
        _season_files,
        _season_numbers,
    ),
    commit=commit_episode_batch,
)


async def _lookup_series_with_seasons(
    ctx: FlowContext, state: ConversationState, event: InboundEvent
) -> Series:
    series = await _lookup_series(ctx, state, event)
    if not series.seasons:
        raise NotFoundError(
            f"❌ Series '{series.id}' has no seasons yet. Use /addseason first."
        )
    return series


def _remember_seasons(ctx: FlowContext, state: ConversationState, series: Series) -> str:
    state.data["series_id"] = series.id
    state.data["seasons"] = sorted(series.seasons)
    return "season_number"


def _existing_season(ctx: FlowContext, state: ConversationState, event: InboundEvent) -> int:
    number = parse_positive_int(event.text, "season number")
    if number not in state.data["seasons"]:
        raise ValidationError(f"❌ Season {number} does not exist for this series.")
    return number


def _choose_season(ctx: FlowContext, state: ConversationState, number: int) -> str:
    state.data["season_number"] = number
    return FILES_STEP


_episode_files, _episode_numbers = episode_steps(after_upload=COMMIT)

ADD_EPISODE_FLOW = FlowTable(
    name="add_episode",
    command="addepisode",
    label="Add episodes",
    steps=(
        Step(
            name="series_id",
            prompt=SERIES_ID_PROMPT,
            validate=_lookup_series_with_seasons,
            transition=_remember_seasons,
        ),
        Step(
            name="season_number",
            prompt="🔢 Choose the season to add episodes to:",
            validate=_existing_season,
            transition=_choose_season,
            options=lambda state: [(f"Season {n}", str(n)) for n in state.data["seasons"]],
        ),
        _episode_files,
        _episode_numbers,
    ),
    commit=commit_episode_batch,
)
