# catalog_bot/handlers/message_handlers.py

from telegram import Message, Update
from telegram.ext import ContextTypes

from ..config import logger
from ..models import FileRef
from ..workflows.engine import InboundEvent
from ..workflows.router import ConversationRouter


def file_ref_from_message(message: Message) -> FileRef | None:
    """Builds a FileRef from a video or document attachment."""
    if message.video:
        video = message.video
        return FileRef(
            file_id=video.file_id,
            file_name=video.file_name or "",
            file_size=video.file_size or 0,
            is_video=True,
        )
    if message.document:
        document = message.document
        return FileRef(
            file_id=document.file_id,
            file_name=document.file_name or "",
            file_size=document.file_size or 0,
            is_video=False,
        )
    return None


async def handle_text_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Routes free text to the user's active flow, if there is one."""
    user = update.effective_user
    message = update.message
    if not user or not isinstance(message, Message) or not message.text:
        logger.warning("handle_text_message: Update received without a user or valid message text. Ignoring.")
        return

    router: ConversationRouter = context.bot_data["ROUTER"]
    handled = await router.dispatch(user.id, InboundEvent.from_text(message.text))
    if not handled:
        logger.info(f"Received a text message from user {user.id} with no active workflow.")


async def handle_file_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Routes video/document uploads to the user's active flow."""
    user = update.effective_user
    message = update.message
    if not user or not isinstance(message, Message):
        return

    file = file_ref_from_message(message)
    if file is None:
        return

    router: ConversationRouter = context.bot_data["ROUTER"]
    handled = await router.dispatch(user.id, InboundEvent.from_file(file))
    if not handled:
        logger.info(f"Received a file from user {user.id} with no active workflow.")
        await message.reply_text("ℹ️ Start an upload first, e.g. with /uploadmovie or /uploadseries.")
