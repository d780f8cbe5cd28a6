# catalog_bot/workflows/flows/series_upload.py

from __future__ import annotations

from html import escape

from ...config import SERIES_CATEGORIES, SERIES_CHANNELS
from ...errors import ValidationError
from ...models import Season, Series
from ...services.identity import generate_content_id
from ..engine import COMMIT, FlowContext, FlowTable, InboundEvent, Step
from ..session import ConversationState
from .common import (
    SKIP_OPTION,
    YES_NO_OPTIONS,
    channel_options,
    code,
    is_skip,
    optional_text,
    parse_channel,
    parse_genres,
    parse_positive_int,
    parse_year,
    parse_yes_no,
    require_text,
    store_value,
)
from .episodes import FILES_STEP, episode_steps


def _parse_category(ctx: FlowContext, state: ConversationState, event: InboundEvent) -> str:
    category = require_text(event).lower()
    if category not in SERIES_CATEGORIES:
        raise ValidationError(
            f"❌ Invalid category. Choose one of: {', '.join(SERIES_CATEGORIES)}."
        )
    return category


async def _create_series(
    ctx: FlowContext, state: ConversationState, value: tuple[str, int]
) -> str:
    _name, channel_id = value
    data = state.data
    series = Series(
        id=generate_content_id(data["category"], data["title"], data["year"]),
        title=data["title"],
        category=data["category"],
        year=data["year"],
        channel_id=channel_id,
        owner_id=ctx.user_id,
        genres=data["genres"],
        description=data["description"],
    )
    await ctx.repository.create_series(series)
    state.track_series(series.id)
    data["series_id"] = series.id
    await ctx.reply(f"✅ Series <b>{escape(series.title)}</b> created with id {code(series.id)}.")
    return "season_number"


async def validate_new_season(
    ctx: FlowContext, state: ConversationState, event: InboundEvent
) -> int:
    number = parse_positive_int(event.text, "season number")
    if await ctx.repository.get_season(state.data["series_id"], number) is not None:
        raise ValidationError(f"❌ Season {number} already exists. Send another number.")
    return number


async def _create_season(ctx: FlowContext, state: ConversationState, number: int) -> str:
    await ctx.repository.create_season(Season(series_id=state.data["series_id"], number=number))
    state.track_season(state.data["series_id"], number)
    state.data["season_number"] = number
    return "season_title"


async def _rename_season(ctx: FlowContext, state: ConversationState, title: str) -> str:
    if title:
        await ctx.repository.rename_season(
            state.data["series_id"], state.data["season_number"], title
        )
    return FILES_STEP


def _another_season(ctx: FlowContext, state: ConversationState, wants_more: bool) -> str:
    return "season_number" if wants_more else COMMIT


async def commit_series(ctx: FlowContext, state: ConversationState) -> None:
    series_id = state.data["series_id"]
    await ctx.reply(
        f"🎉 Series upload complete! {state.data.get('uploaded', 0)} episode(s) stored.\n"
        f"🔗 {escape(ctx.settings.deep_link(series_id))}"
    )


_files, _numbers = episode_steps(after_upload="another_season")

SERIES_UPLOAD_FLOW = FlowTable(
    name="series_upload",
    command="uploadseries",
    label="Series upload",
    steps=(
        Step(
            name="category",
            prompt="📺 Series upload started.\n\nChoose the category:",
            validate=_parse_category,
            transition=store_value("category", "title"),
            options=tuple((name.capitalize(), name) for name in SERIES_CATEGORIES),
        ),
        Step(
            name="title",
            prompt="🏷 Send the series title:",
            validate=lambda ctx, state, event: require_text(event, "❌ Please send the series title."),
            transition=store_value("title", "year"),
        ),
        Step(
            name="year",
            prompt="📅 Send the release year:",
            validate=lambda ctx, state, event: parse_year(event.text),
            transition=store_value("year", "description"),
        ),
        Step(
            name="description",
            prompt="📝 Send a short description, or type skip:",
            validate=lambda ctx, state, event: optional_text(require_text(event)),
            transition=store_value("description", "genres"),
            options=SKIP_OPTION,
        ),
        Step(
            name="genres",
            prompt="🎭 Send the genres separated by commas, or type skip:",
            validate=lambda ctx, state, event: parse_genres(event.text, allow_skip=True),
            transition=store_value("genres", "channel"),
            options=SKIP_OPTION,
        ),
        Step(
            name="channel",
            prompt="📡 Choose the storage channel:",
            validate=lambda ctx, state, event: parse_channel(ctx, event.text, SERIES_CHANNELS),
            transition=_create_series,
            options=channel_options(SERIES_CHANNELS),
        ),
        Step(
            name="season_number",
            prompt="🔢 Send the season number:",
            validate=validate_new_season,
            transition=_create_season,
        ),
        Step(
            name="season_title",
            prompt=lambda ctx, state: (
                f"🏷 Send a title for Season {state.data['season_number']}, or type skip:"
            ),
            validate=lambda ctx, state, event: "" if is_skip(event.text) else require_text(event),
            transition=_rename_season,
            options=SKIP_OPTION,
        ),
        _files,
        _numbers,
        Step(
            name="another_season",
            prompt="➕ Do you want to add another season?",
            validate=lambda ctx, state, event: parse_yes_no(event.text),
            transition=_another_season,
            options=YES_NO_OPTIONS,
            commit_point=True,
        ),
    ),
    commit=commit_series,
)
