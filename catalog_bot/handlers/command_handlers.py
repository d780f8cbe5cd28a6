# catalog_bot/handlers/command_handlers.py

from telegram import LinkPreviewOptions, Message, Update
from telegram.constants import ParseMode
from telegram.ext import ContextTypes

from ..config import RECENT_CONTENT_LIMIT, logger
from ..services.auth_service import is_user_authorized, register_operator
from ..services.delivery import DeliveryResolver
from ..services.repository import CatalogRepository
from ..ui import messages
from ..utils import extract_first_int
from ..workflows.router import ConversationRouter


def _command_name(message: Message) -> str:
    """'/uploadmovie@MyBot extra' -> 'uploadmovie'"""
    first = (message.text or "").split(maxsplit=1)[0] if message.text else ""
    return first.lstrip("/").split("@", 1)[0].lower()


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    `/start <payload>` delivers the content behind a deep link. A bare `/start`
    registers the caller and shows the help text.
    """
    user = update.effective_user
    chat = update.effective_chat
    if not user or not chat:
        logger.warning("start_command was triggered without an effective user or chat.")
        return

    if context.args:
        resolver: DeliveryResolver = context.bot_data["DELIVERY"]
        logger.info(f"User {user.id} opened deep link '{context.args[0]}'.")
        await resolver.handle_deep_link(chat.id, context.args[0])
        return

    repository: CatalogRepository = context.bot_data["REPOSITORY"]
    operator = await register_operator(repository, user)
    await context.bot.send_message(
        chat_id=chat.id,
        text=messages.get_help_message_text(operator.may_upload),
        parse_mode=ParseMode.HTML,
    )


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Sends the list of available commands."""
    user = update.effective_user
    chat = update.effective_chat
    if not user or not chat:
        logger.warning("help_command was triggered without an effective user or chat.")
        return

    repository: CatalogRepository = context.bot_data["REPOSITORY"]
    operator = await repository.get_operator(user.id)
    await context.bot.send_message(
        chat_id=chat.id,
        text=messages.get_help_message_text(bool(operator and operator.may_upload)),
        parse_mode=ParseMode.HTML,
    )


async def flow_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Starts the conversational flow bound to the command that was sent."""
    if not await is_user_authorized(update, context):
        return

    user = update.effective_user
    chat = update.effective_chat
    message = update.message
    if not user or not chat or not isinstance(message, Message):
        logger.warning("flow_command cannot proceed without user, chat, or message.")
        return

    command = _command_name(message)
    logger.info(f"User {user.id} initiated /{command} command.")
    router: ConversationRouter = context.bot_data["ROUTER"]
    await router.start(user.id, chat.id, command)


async def cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    chat = update.effective_chat
    if not user or not chat:
        return

    router: ConversationRouter = context.bot_data["ROUTER"]
    cancelled = await router.cancel(user.id)
    await context.bot.send_message(
        chat_id=chat.id,
        text=messages.OPERATION_CANCELLED if cancelled else messages.NOTHING_TO_CANCEL,
    )


async def view_content_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Lists the most recent movies and series with their deep links."""
    if not await is_user_authorized(update, context):
        return
    chat = update.effective_chat
    if not chat:
        return

    repository: CatalogRepository = context.bot_data["REPOSITORY"]
    settings = context.bot_data["SETTINGS"]
    movies = await repository.recent_movies(RECENT_CONTENT_LIMIT)
    series = await repository.recent_series(RECENT_CONTENT_LIMIT)

    if not movies and not series:
        await context.bot.send_message(chat_id=chat.id, text="📭 The catalog is empty.")
        return

    lines: list[str] = []
    if movies:
        lines.append(f"<b>🎬 Latest movies ({len(movies)})</b>")
        lines.extend(
            messages.content_line("•", m.title, m.year, settings.deep_link(m.id))
            for m in movies
        )
    if series:
        if lines:
            lines.append("")
        lines.append(f"<b>📺 Latest series ({len(series)})</b>")
        lines.extend(
            messages.content_line("•", s.title, s.year, settings.deep_link(s.id))
            for s in series
        )

    await context.bot.send_message(
        chat_id=chat.id,
        text="\n".join(lines),
        parse_mode=ParseMode.HTML,
        link_preview_options=LinkPreviewOptions(is_disabled=True),
    )


async def _set_upload_permission(
    update: Update, context: ContextTypes.DEFAULT_TYPE, allowed: bool
) -> None:
    if not await is_user_authorized(update, context, admin_only=True):
        return
    chat = update.effective_chat
    if not chat:
        return

    target_id = extract_first_int(context.args[0]) if context.args else None
    if target_id is None:
        await context.bot.send_message(
            chat_id=chat.id,
            text=f"Usage: /{'grant' if allowed else 'revoke'} <user_id>",
        )
        return

    repository: CatalogRepository = context.bot_data["REPOSITORY"]
    operator = await repository.get_operator(target_id)
    if operator is None:
        await context.bot.send_message(
            chat_id=chat.id,
            text=f"❌ User {target_id} is unknown. They need to send /start first.",
        )
        return

    operator.can_upload = allowed
    await repository.save_operator(operator)
    logger.info(f"[AUTH] Upload permission for {target_id} set to {allowed}.")
    await context.bot.send_message(
        chat_id=chat.id,
        text=(
            f"✅ User {target_id} can now upload content."
            if allowed
            else f"✅ Upload permission revoked for user {target_id}."
        ),
    )


async def grant_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _set_upload_permission(update, context, True)


async def revoke_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _set_upload_permission(update, context, False)
