# catalog_bot/workflows/flows/movie_upload.py

from __future__ import annotations

from html import escape

from ...config import MOVIE_CHANNELS
from ...models import FileRef
from ...services.ingestion import MovieDraft
from ...ui import messages
from ..engine import COMMIT, FILE_INPUT, FlowContext, FlowTable, InboundEvent, Step
from ..session import ConversationState
from .common import (
    SKIP_OPTION,
    YES_NO_OPTIONS,
    channel_options,
    optional_text,
    parse_channel,
    parse_genres,
    parse_year,
    parse_yes_no,
    require_text,
    store_value,
    validate_upload_file,
)

DRAFT_KEYS = ("title", "year", "genres", "description", "channel", "channel_id")


def _drafts(state: ConversationState) -> list[MovieDraft]:
    return state.data.setdefault("drafts", [])


def _title_prompt(ctx: FlowContext, state: ConversationState) -> str:
    count = len(_drafts(state))
    if count:
        return f"🎬 Movie #{count + 1}. Send the movie title:"
    return "🎬 Movie upload started.\n\nSend the movie title:"


def _store_channel(ctx: FlowContext, state: ConversationState, value: tuple[str, int]) -> str:
    state.data["channel"], state.data["channel_id"] = value
    return "file"


async def _store_file(ctx: FlowContext, state: ConversationState, file: FileRef) -> str:
    draft = MovieDraft(
        title=state.data["title"],
        year=state.data["year"],
        channel_id=state.data["channel_id"],
        file=file,
        genres=state.data["genres"],
        description=state.data["description"],
    )
    _drafts(state).append(draft)
    await ctx.reply(
        f"✅ File received for <b>{escape(draft.title)}</b> ({draft.year}). "
        f"{len(_drafts(state))} movie(s) ready to upload."
    )
    return "another"


def _another(ctx: FlowContext, state: ConversationState, wants_more: bool) -> str:
    if not wants_more:
        return COMMIT
    for key in DRAFT_KEYS:
        state.data.pop(key, None)
    return "title"


async def commit_movies(ctx: FlowContext, state: ConversationState) -> None:
    drafts = _drafts(state)
    await ctx.reply(f"⏳ Uploading {len(drafts)} movie(s)...")
    report = await ctx.pipeline.upload_movies(
        drafts,
        owner_id=ctx.user_id,
        notify=ctx.reply,
        should_continue=ctx.should_continue,
    )
    lines = [
        messages.batch_summary(
            label="Movie upload",
            succeeded=len(report.succeeded),
            failed=report.failed,
            cancelled=report.cancelled,
        )
    ]
    for movie_id in report.succeeded:
        lines.append(f"🔗 {escape(ctx.settings.deep_link(movie_id))}")
    await ctx.reply("\n".join(lines))


MOVIE_UPLOAD_FLOW = FlowTable(
    name="movie_upload",
    command="uploadmovie",
    label="Movie upload",
    steps=(
        Step(
            name="title",
            prompt=_title_prompt,
            validate=lambda ctx, state, event: require_text(event, "❌ Please send the movie title."),
            transition=store_value("title", "year"),
        ),
        Step(
            name="year",
            prompt="📅 Send the release year:",
            validate=lambda ctx, state, event: parse_year(event.text),
            transition=store_value("year", "genres"),
        ),
        Step(
            name="genres",
            prompt="🎭 Send the genres, separated by commas (e.g. Action, Sci-Fi):",
            validate=lambda ctx, state, event: parse_genres(event.text),
            transition=store_value("genres", "description"),
        ),
        Step(
            name="description",
            prompt="📝 Send a short description, or type skip:",
            validate=lambda ctx, state, event: optional_text(require_text(event)),
            transition=store_value("description", "channel"),
            options=SKIP_OPTION,
        ),
        Step(
            name="channel",
            prompt="📺 Choose the storage channel:",
            validate=lambda ctx, state, event: parse_channel(ctx, event.text, MOVIE_CHANNELS),
            transition=_store_channel,
            options=channel_options(MOVIE_CHANNELS),
        ),
        Step(
            name="file",
            prompt="📤 Now send the movie file (video or document):",
            validate=lambda ctx, state, event: validate_upload_file(ctx, event),
            transition=_store_file,
            accepts=FILE_INPUT,
            wrong_kind_message="❌ Please send the movie as a video or document file.",
        ),
        Step(
            name="another",
            prompt="➕ Do you want to add another movie?",
            validate=lambda ctx, state, event: parse_yes_no(event.text),
            transition=_another,
            options=YES_NO_OPTIONS,
        ),
    ),
    commit=commit_movies,
)
