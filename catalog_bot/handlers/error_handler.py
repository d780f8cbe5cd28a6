# catalog_bot/handlers/error_handler.py

import html
import json
import time
import traceback

from telegram import Update
from telegram.error import NetworkError, TimedOut
from telegram.ext import ContextTypes

from ..config import logger

TRANSIENT_LOG_INTERVAL_SECONDS = 60.0

# Last time a warning was logged per transient error type.
_LAST_TRANSIENT_LOG: dict[str, float] = {}


def _should_log_transient(error: Exception) -> bool:
    key = type(error).__name__
    now = time.monotonic()
    last = _LAST_TRANSIENT_LOG.get(key)
    if last is not None and now - last < TRANSIENT_LOG_INTERVAL_SECONDS:
        return False
    _LAST_TRANSIENT_LOG[key] = now
    return True


async def global_error_handler(
    update: object, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """
    Catches all unhandled exceptions and logs them with the update that caused
    them. Transient network errors are logged as a single warning per minute.
    """
    if not context.error:
        logger.warning("Error handler was called but context.error is None.")
        return

    error = context.error
    if isinstance(error, (NetworkError, TimedOut)):
        if _should_log_transient(error):
            logger.warning(f"Transient Telegram network error: {error}")
        return

    logger.error("An unhandled exception occurred:", exc_info=error)

    tb_string = "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    )
    update_str = update.to_dict() if isinstance(update, Update) else str(update)
    context_message = (
        f"An exception was raised while handling an update\n"
        f"<pre>update = {html.escape(json.dumps(update_str, indent=2, ensure_ascii=False, default=str))}"
        "</pre>\n\n"
        f"<pre>context.chat_data = {html.escape(str(context.chat_data))}</pre>\n\n"
        f"<pre>context.user_data = {html.escape(str(context.user_data))}</pre>\n\n"
        f"<b>Traceback:</b>\n<pre>{html.escape(tb_string)}</pre>"
    )
    logger.error(f"DETAILED EXCEPTION REPORT:\n{context_message}")

    # Plain text so the apology itself can never fail to parse.
    if isinstance(update, Update) and update.effective_message:
        error_text = (
            "❌ An unexpected error occurred.\n\n"
            "I'm sorry, but I encountered a problem while processing your request. "
            "The issue has been logged for review. Please try again later."
        )
        try:
            await update.effective_message.reply_text(text=error_text)
        except Exception as e:
            logger.error(f"Failed to send the user-facing error message: {e}")
