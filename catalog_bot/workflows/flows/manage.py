# catalog_bot/workflows/flows/manage.py

from __future__ import annotations

from html import escape
from typing import Any

from telegram import LinkPreviewOptions

from ...errors import ValidationError
from ...models import Movie, Series
from ...services.catalog_search import search_catalog
from ...ui import messages
from ..engine import ABORT, COMMIT, FlowContext, FlowTable, InboundEvent, Step
from ..session import ConversationState
from .common import (
    YES_NO_OPTIONS,
    code,
    find_content,
    parse_genres,
    parse_year,
    require_text,
)

EDIT_FIELDS = {
    "title": "title",
    "year": "year",
    "description": "description",
    "genre": "genres",
    "genres": "genres",
}
EDIT_FIELD_OPTIONS = (
    ("Title", "title"),
    ("Year", "year"),
    ("Description", "description"),
    ("Genre", "genre"),
)


async def _lookup_content(
    ctx: FlowContext, state: ConversationState, event: InboundEvent
) -> tuple[str, Movie | Series]:
    return await find_content(ctx, require_text(event, "❌ Please send a content id."))


def _remember_content(state: ConversationState, value: tuple[str, Movie | Series]) -> Movie | Series:
    kind, record = value
    state.data["kind"] = kind
    state.data["content_id"] = record.id
    state.data["title"] = record.title
    return record


# --- Edit ---


async def _edit_target(ctx: FlowContext, state: ConversationState, value: Any) -> str:
    record = _remember_content(state, value)
    await ctx.reply(f"✏️ Editing <b>{escape(record.title)}</b> ({code(record.id)}).")
    return "field"


def _parse_field(ctx: FlowContext, state: ConversationState, event: InboundEvent) -> str:
    field_name = require_text(event).lower()
    if field_name not in EDIT_FIELDS:
        raise ValidationError("❌ Choose one of: title, year, description, genre.")
    return EDIT_FIELDS[field_name]


def _store_field(ctx: FlowContext, state: ConversationState, field_name: str) -> str:
    state.data["field"] = field_name
    return "value"


def _parse_value(ctx: FlowContext, state: ConversationState, event: InboundEvent) -> Any:
    field_name = state.data["field"]
    if field_name == "year":
        return parse_year(event.text)
    if field_name == "genres":
        return parse_genres(event.text)
    return require_text(event, f"❌ Please send the new {field_name}.")


def _store_changes(ctx: FlowContext, state: ConversationState, value: Any) -> str:
    state.data["changes"] = {state.data["field"]: value}
    return COMMIT


async def commit_edit(ctx: FlowContext, state: ConversationState) -> None:
    content_id = state.data["content_id"]
    changes = state.data["changes"]
    if state.data["kind"] == "movie":
        record: Movie | Series = await ctx.repository.update_movie(content_id, changes)
    else:
        record = await ctx.repository.update_series(content_id, changes)
    await ctx.reply(
        f"✅ <b>{escape(record.title)}</b> updated. Its link is unchanged:\n"
        f"🔗 {escape(ctx.settings.deep_link(record.id))}"
    )


EDIT_FLOW = FlowTable(
    name="edit",
    command="editcontent",
    label="Edit",
    steps=(
        Step(
            name="content_id",
            prompt="🆔 Send the id of the movie or series to edit:",
            validate=_lookup_content,
            transition=_edit_target,
        ),
        Step(
            name="field",
            prompt="Which field do you want to change?",
            validate=_parse_field,
            transition=_store_field,
            options=EDIT_FIELD_OPTIONS,
        ),
        Step(
            name="value",
            prompt=lambda ctx, state: f"✏️ Send the new {state.data['field']}:",
            validate=_parse_value,
            transition=_store_changes,
        ),
    ),
    commit=commit_edit,
)


# --- Delete ---


def _delete_target(ctx: FlowContext, state: ConversationState, value: Any) -> str:
    _remember_content(state, value)
    return "confirm"


def _confirm_prompt(ctx: FlowContext, state: ConversationState) -> str:
    warning = (
        "\nAll of its seasons and episodes will be removed too."
        if state.data["kind"] == "series"
        else ""
    )
    return (
        f"⚠️ Delete <b>{escape(state.data['title'])}</b> "
        f"({code(state.data['content_id'])})?{warning}\n\nType <b>yes</b> to confirm."
    )


async def _confirm(ctx: FlowContext, state: ConversationState, answer: str) -> str:
    if answer == "yes":
        return COMMIT
    await ctx.reply("❎ Deletion cancelled.")
    return ABORT


async def commit_delete(ctx: FlowContext, state: ConversationState) -> None:
    content_id = state.data["content_id"]
    if state.data["kind"] == "movie":
        deleted = await ctx.repository.delete_movie(content_id)
    else:
        deleted = await ctx.repository.delete_series(content_id)
    if deleted:
        await ctx.reply(f"🗑 <b>{escape(state.data['title'])}</b> deleted.")
    else:
        await ctx.reply(messages.CONTENT_NOT_FOUND)


DELETE_FLOW = FlowTable(
    name="delete",
    command="deletecontent",
    label="Delete",
    steps=(
        Step(
            name="content_id",
            prompt="🆔 Send the id of the movie or series to delete:",
            validate=_lookup_content,
            transition=_delete_target,
        ),
        Step(
            name="confirm",
            prompt=_confirm_prompt,
            validate=lambda ctx, state, event: require_text(event).lower(),
            transition=_confirm,
            options=YES_NO_OPTIONS,
        ),
    ),
    commit=commit_delete,
)


# --- Find ---


def _store_query(ctx: FlowContext, state: ConversationState, query: str) -> str:
    state.data["query"] = query
    return COMMIT


async def commit_find(ctx: FlowContext, state: ConversationState) -> None:
    query = state.data["query"]
    hits = await search_catalog(ctx.repository, query)
    if not hits:
        await ctx.reply(f"🔍 No content found for <b>{escape(query)}</b>.")
        return
    lines = [f"🔍 Results for <b>{escape(query)}</b>:", ""]
    for hit in hits:
        icon = "🎬" if hit.kind == "movie" else "📺"
        lines.append(
            messages.content_line(icon, hit.title, hit.year, ctx.settings.deep_link(hit.id))
        )
    await ctx.reply(
        "\n".join(lines), link_preview_options=LinkPreviewOptions(is_disabled=True)
    )


FIND_FLOW = FlowTable(
    name="find",
    command="findcontent",
    label="Search",
    steps=(
        Step(
            name="query",
            prompt="🔍 Send a title or id to search for:",
            validate=lambda ctx, state, event: require_text(event, "❌ Please send a search term."),
            transition=_store_query,
        ),
    ),
    commit=commit_find,
)
