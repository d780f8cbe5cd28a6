# catalog_bot/workflows/flows/episodes.py

from __future__ import annotations

from html import escape
from typing import Any

from ...errors import NotFoundError, ValidationError
from ...models import FileRef
from ...services.ingestion import (
    BatchReport,
    PendingFile,
    collect_file,
    parse_episode_numbers,
    resolve_numbers,
    unresolved,
)
from ...ui import messages
from ..engine import ANY_INPUT, COMMIT, FlowContext, InboundEvent, Step
from ..session import ConversationState
from .common import validate_upload_file

FILES_STEP = "episode_files"
NUMBERS_STEP = "episode_numbers"
DONE = "done"


def _pending(state: ConversationState) -> list[PendingFile]:
    return state.data.setdefault("pending", [])


def _files_prompt(ctx: FlowContext, state: ConversationState) -> str:
    return (
        f"📤 Send the episode files for Season {state.data['season_number']}.\n"
        "Episode numbers are read from the file names. "
        "Type <b>done</b> when you have sent them all."
    )


def _validate_file_or_done(ctx: FlowContext, state: ConversationState, event: InboundEvent) -> Any:
    if event.kind == "file":
        return validate_upload_file(ctx, event)
    if (event.text or "").strip().lower() != DONE:
        raise ValidationError("❌ Send episode files, or type done when finished.")
    if not _pending(state):
        raise ValidationError("❌ Send at least one episode file before typing done.")
    return DONE


async def upload_pending_batch(ctx: FlowContext, state: ConversationState) -> BatchReport:
    """Uploads the collected files into the current season and clears the batch."""
    series = await ctx.repository.get_series(state.data["series_id"])
    if series is None:
        raise NotFoundError(f"❌ Series '{state.data['series_id']}' no longer exists.")
    season_number = state.data["season_number"]
    pending = _pending(state)

    await ctx.reply(f"⏳ Uploading {len(pending)} episode(s) to Season {season_number}...")
    report = await ctx.pipeline.upload_episodes(
        series=series,
        season_number=season_number,
        pending=pending,
        owner_id=ctx.user_id,
        notify=ctx.reply,
        should_continue=ctx.should_continue,
    )
    state.data["pending"] = []
    state.data["uploaded"] = state.data.get("uploaded", 0) + len(report.succeeded)
    await ctx.reply(
        messages.batch_summary(
            label=f"Season {season_number} upload",
            succeeded=len(report.succeeded),
            failed=report.failed,
            cancelled=report.cancelled,
        )
    )
    return report


async def commit_episode_batch(ctx: FlowContext, state: ConversationState) -> None:
    await upload_pending_batch(ctx, state)


def episode_steps(after_upload: str) -> tuple[Step, Step]:
    """
    File collection and manual numbering. With `after_upload == COMMIT` the
    batch is left to the flow's commit; otherwise it is uploaded here and the
    flow continues at `after_upload`.
    """

    async def _finish(ctx: FlowContext, state: ConversationState) -> str:
        if unresolved(_pending(state)):
            return NUMBERS_STEP
        if after_upload == COMMIT:
            return COMMIT
        await upload_pending_batch(ctx, state)
        return after_upload

    async def _collect(ctx: FlowContext, state: ConversationState, value: Any) -> str:
        if not isinstance(value, FileRef):
            return await _finish(ctx, state)
        item = collect_file(_pending(state), value)
        detected = (
            f"Episode {item.episode_number}"
            if item.episode_number is not None
            else "no episode number, you will be asked for it"
        )
        await ctx.reply(
            f"✅ Received <b>{escape(item.label)}</b> ({detected}). "
            f"{len(_pending(state))} file(s) collected."
        )
        return FILES_STEP

    def _numbers_prompt(ctx: FlowContext, state: ConversationState) -> str:
        names = "\n".join(
            f"{index}. {escape(item.label)}"
            for index, item in enumerate(unresolved(_pending(state)), start=1)
        )
        return (
            "🔢 I couldn't find episode numbers for these files:\n"
            f"{names}\n\n"
            "Reply with one number per file, in this order, separated by commas or spaces."
        )

    def _validate_numbers(ctx: FlowContext, state: ConversationState, event: InboundEvent) -> list[int]:
        return parse_episode_numbers(event.text, len(unresolved(_pending(state))))

    async def _apply_numbers(ctx: FlowContext, state: ConversationState, value: list[int]) -> str:
        resolve_numbers(_pending(state), value)
        if after_upload == COMMIT:
            return COMMIT
        await upload_pending_batch(ctx, state)
        return after_upload

    files = Step(
        name=FILES_STEP,
        prompt=_files_prompt,
        validate=_validate_file_or_done,
        transition=_collect,
        accepts=ANY_INPUT,
        options=(("✅ Done", DONE),),
    )
    numbers = Step(
        name=NUMBERS_STEP,
        prompt=_numbers_prompt,
        validate=_validate_numbers,
        transition=_apply_numbers,
    )
    return files, numbers
