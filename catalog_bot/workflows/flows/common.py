# catalog_bot/workflows/flows/common.py

from __future__ import annotations

from datetime import datetime
from html import escape
from typing import Any, Callable, Iterable, Literal

from ...errors import NotFoundError, ValidationError
from ...models import FileRef, Movie, Series
from ...services.ingestion import check_file_size
from ...utils import split_csv
from ..engine import FlowContext, InboundEvent
from ..session import ConversationState

MIN_YEAR = 1900
YEAR_LOOKAHEAD = 5
SKIP = "skip"

SKIP_OPTION = (("⏭ Skip", SKIP),)
YES_NO_OPTIONS = (("✅ Yes", "yes"), ("❌ No", "no"))

ContentKind = Literal["movie", "series"]


def require_text(event: InboundEvent, message: str = "❌ Please send some text.") -> str:
    text = (event.text or "").strip()
    if not text:
        raise ValidationError(message)
    return text


def is_skip(text: str) -> bool:
    return text.strip().lower() == SKIP


def parse_year(text: str) -> int:
    """Accepts 1900 up to five years past the current one."""
    max_year = datetime.now().year + YEAR_LOOKAHEAD
    value = text.strip()
    if not value.isdigit() or not MIN_YEAR <= int(value) <= max_year:
        raise ValidationError(
            f"❌ Please enter a valid year between {MIN_YEAR} and {max_year}."
        )
    return int(value)


def parse_positive_int(text: str, what: str) -> int:
    value = text.strip()
    if not value.isdigit() or int(value) < 1:
        raise ValidationError(f"❌ Please enter a valid {what} (1 or higher).")
    return int(value)


def parse_genres(text: str, *, allow_skip: bool = False) -> list[str]:
    if allow_skip and is_skip(text):
        return []
    genres = split_csv(text)
    if not genres:
        raise ValidationError("❌ Please send at least one genre, separated by commas.")
    return genres


def optional_text(text: str) -> str:
    return "" if is_skip(text) else text.strip()


def parse_yes_no(text: str) -> bool:
    answer = text.strip().lower()
    if answer in ("yes", "y"):
        return True
    if answer in ("no", "n"):
        return False
    raise ValidationError("❌ Please answer yes or no.")


def parse_channel(ctx: FlowContext, text: str, allowed: Iterable[str]) -> tuple[str, int]:
    """Looks a channel name up in the routing table, ignoring case."""
    allowed_names = tuple(allowed)
    name = text.strip().upper()
    channel_id = ctx.settings.channel_for(name) if name in allowed_names else None
    if channel_id is None:
        raise ValidationError(
            f"❌ Invalid channel. Choose one of: {', '.join(allowed_names)}."
        )
    return name, channel_id


def channel_options(allowed: Iterable[str]) -> tuple[tuple[str, str], ...]:
    return tuple((name, name) for name in allowed)


def validate_upload_file(ctx: FlowContext, event: InboundEvent) -> FileRef:
    if event.file is None:
        raise ValidationError("❌ Please send a video or document file.")
    check_file_size(event.file, ctx.settings.limits)
    return event.file


async def find_content(ctx: FlowContext, content_id: str) -> tuple[ContentKind, Movie | Series]:
    """Finds a movie or series by id, falling back to a case-insensitive series match."""
    movie = await ctx.repository.get_movie(content_id)
    if movie is not None:
        return "movie", movie
    series = await ctx.repository.get_series(content_id, ignore_case=True)
    if series is not None:
        return "series", series
    raise NotFoundError(f"❌ No movie or series with id '{content_id}' was found.")


async def find_series(ctx: FlowContext, series_id: str) -> Series:
    series = await ctx.repository.get_series(series_id, ignore_case=True)
    if series is None:
        raise NotFoundError(f"❌ Series '{series_id}' not found.")
    return series


def code(text: str) -> str:
    return f"<code>{escape(text)}</code>"


def store_value(key: str, next_step: str) -> Callable[[FlowContext, ConversationState, Any], str]:
    """Transition that saves the validated value under `key` and moves on."""

    def _transition(ctx: FlowContext, state: ConversationState, value: Any) -> str:
        state.data[key] = value
        return next_step

    return _transition
