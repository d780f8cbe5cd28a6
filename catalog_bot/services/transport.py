# catalog_bot/services/transport.py

from __future__ import annotations

from typing import Any, Awaitable, Callable, Sequence, TypeVar

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup, Message
from telegram.constants import ParseMode
from telegram.error import RetryAfter, TelegramError

from ..config import logger
from ..errors import ExternalRateLimit, ExternalTransientError
from ..models import ArtifactRef, FileRef
from ..utils import retry_after_seconds, safe_send_message
from .retry import RelayLimiter

T = TypeVar("T")

CANCEL_CALLBACK = "cancel_operation"


def build_keyboard(
    options: Sequence[tuple[str, str]], *, columns: int = 2, with_cancel: bool = False
) -> InlineKeyboardMarkup:
    """Lays `(label, callback_data)` pairs out in rows of `columns` buttons."""
    buttons = [InlineKeyboardButton(label, callback_data=data) for label, data in options]
    rows = [buttons[i : i + columns] for i in range(0, len(buttons), columns)]
    if with_cancel:
        rows.append([InlineKeyboardButton("❌ Cancel", callback_data=CANCEL_CALLBACK)])
    return InlineKeyboardMarkup(rows)


class TelegramTransport:
    """
    The bot's outbound primitives. Telegram errors are translated into
    `ExternalRateLimit` / `ExternalTransientError` so callers never deal with
    python-telegram-bot exception types.
    """

    def __init__(self, bot: Bot, limiter: RelayLimiter | None = None):
        self.bot = bot
        self.limiter = limiter

    async def _call(self, call: Callable[[], Awaitable[T]], *, limited: bool) -> T:
        if limited and self.limiter is not None:
            await self.limiter.acquire()
        try:
            return await call()
        except RetryAfter as e:
            raise ExternalRateLimit(retry_after_seconds(e)) from e
        except TelegramError as e:
            logger.warning(f"Telegram call failed: {e}")
            raise ExternalTransientError(f"❌ Telegram error: {e}") from e

    async def relay(self, chat_id: int, artifact: ArtifactRef) -> None:
        """Copies a stored artifact into `chat_id` without re-uploading it."""
        await self._call(
            lambda: self.bot.copy_message(
                chat_id=chat_id,
                from_chat_id=artifact.channel_id,
                message_id=artifact.message_id,
            ),
            limited=True,
        )

    async def send_text(self, chat_id: int, text: str, **kwargs: Any) -> Message:
        return await self._call(
            lambda: safe_send_message(self.bot, chat_id=chat_id, text=text, **kwargs),
            limited=False,
        )

    async def send_file(self, chat_id: int, file: FileRef, caption: str) -> ArtifactRef:
        """Posts a file into a storage channel and returns where it landed."""
        if file.is_video:
            message = await self._call(
                lambda: self.bot.send_video(
                    chat_id=chat_id,
                    video=file.file_id,
                    caption=caption,
                    parse_mode=ParseMode.HTML,
                ),
                limited=True,
            )
        else:
            message = await self._call(
                lambda: self.bot.send_document(
                    chat_id=chat_id,
                    document=file.file_id,
                    caption=caption,
                    parse_mode=ParseMode.HTML,
                ),
                limited=True,
            )
        return ArtifactRef(channel_id=chat_id, message_id=message.message_id)

    async def present_choice(
        self,
        chat_id: int,
        text: str,
        options: Sequence[tuple[str, str]],
        *,
        columns: int = 2,
        with_cancel: bool = False,
        **kwargs: Any,
    ) -> Message:
        markup = build_keyboard(options, columns=columns, with_cancel=with_cancel)
        return await self.send_text(chat_id, text, reply_markup=markup, **kwargs)
