# catalog_bot/utils.py

import asyncio
import math
import re
import time
from datetime import timedelta
from typing import Any

from telegram import Bot, Message
from telegram.error import BadRequest, NetworkError, RetryAfter, TimedOut

# Per-message suppression window set when flood control asks for a long wait.
_edit_suppression_until: dict[tuple[int, int], float] = {}


def retry_after_seconds(error: RetryAfter, default: float | None = None) -> float | None:
    """Normalises `RetryAfter.retry_after` (timedelta or number) into seconds."""
    value = getattr(error, "retry_after", None)
    if isinstance(value, timedelta):
        return value.total_seconds()
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def format_bytes(size_bytes: int) -> str:
    """Converts bytes into a human-readable string (e.g., KB, MB, GB)."""
    if size_bytes <= 0:
        return "0B"
    size_name = ("B", "KB", "MB", "GB", "TB")
    i = min(int(math.floor(math.log(size_bytes, 1024))), len(size_name) - 1)
    s = round(size_bytes / math.pow(1024, i), 2)
    return f"{s} {size_name[i]}"


def extract_first_int(text: str) -> int | None:
    """Safely extracts the first integer from a string."""
    if not text:
        return None
    match = re.search(r"-?\d+", text.strip())
    return int(match.group(0)) if match else None


def split_csv(text: str) -> list[str]:
    """Splits a comma separated reply into trimmed, non-empty parts."""
    return [part.strip() for part in text.split(",") if part.strip()]


async def safe_send_message(
    bot_or_message: Bot | Message | Any,
    /,
    chat_id: int | None = None,
    text: str | None = None,
    *,
    max_attempts: int = 3,
    base_delay: float = 0.6,
    **kwargs: Any,
) -> Message:
    """
    Sends a message with retries on transient Telegram/network errors.

    Accepts a Bot instance, or a Message (from which a Bot can be obtained).
    Returns the sent Message on success, or raises the last exception.
    """
    if text is None:
        raise ValueError("safe_send_message requires 'text'.")

    if isinstance(bot_or_message, Message):
        bot: Bot = bot_or_message.get_bot()
        if chat_id is None:
            chat_id = bot_or_message.chat_id
    else:
        bot = bot_or_message  # type: ignore[assignment]

    if chat_id is None:
        raise ValueError("safe_send_message requires 'chat_id'.")

    delay = base_delay
    last_exc: Exception | None = None

    for _ in range(max_attempts):
        try:
            return await bot.send_message(chat_id=chat_id, text=text, **kwargs)
        except BadRequest:
            # BadRequest subclasses NetworkError but is never transient
            raise
        except RetryAfter as e:
            wait = retry_after_seconds(e, default=delay) or delay
            await asyncio.sleep(wait + 0.1)
            last_exc = e
        except (TimedOut, NetworkError) as e:
            await asyncio.sleep(delay)
            delay *= 2
            last_exc = e

    assert last_exc is not None
    raise last_exc


async def safe_edit_message(
    message: Message,
    text: str,
    *,
    max_attempts: int = 3,
    base_delay: float = 0.6,
    max_retry_after: float = 10.0,
    **kwargs: Any,
) -> None:
    """
    Edits a message, ignoring 'message is not modified' errors. Messages that can
    no longer be edited are replaced by a fresh message in the same chat.
    """
    key = (int(message.chat_id), int(message.message_id))
    if time.monotonic() < _edit_suppression_until.get(key, 0.0):
        return

    delay = base_delay
    last_exc: Exception | None = None

    for _ in range(max_attempts):
        try:
            await message.edit_text(text=text, **kwargs)
            _edit_suppression_until.pop(key, None)
            return
        except BadRequest as e:
            msg = str(e).lower()
            if "message is not modified" in msg:
                return
            if (
                "message to edit not found" in msg
                or "message can't be edited" in msg
                or "message not found" in msg
            ):
                await safe_send_message(message, text=text, **kwargs)
                return
            raise
        except RetryAfter as e:
            wait = retry_after_seconds(e, default=delay) or delay
            if wait > max_retry_after:
                _edit_suppression_until[key] = time.monotonic() + wait
                return
            await asyncio.sleep(wait + 0.1)
            last_exc = e
        except (TimedOut, NetworkError) as e:
            await asyncio.sleep(delay)
            delay *= 2
            last_exc = e

    if last_exc is not None:
        raise last_exc
