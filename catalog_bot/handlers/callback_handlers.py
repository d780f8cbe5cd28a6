# catalog_bot/handlers/callback_handlers.py

from telegram import CallbackQuery, Message, Update
from telegram.ext import ContextTypes

from ..config import logger
from ..services.delivery import DeliveryResolver
from ..services.transport import CANCEL_CALLBACK
from ..ui import messages
from ..utils import safe_edit_message
from ..workflows.engine import CHOICE_PREFIX, InboundEvent
from ..workflows.router import ConversationRouter
from ..workflows.session import CONTEXT_LOST_MESSAGE


async def _replace_keyboard_message(query: CallbackQuery, text: str) -> None:
    """Swaps the pressed keyboard for a plain status line."""
    if isinstance(query.message, Message):
        await safe_edit_message(query.message, text=text)
    else:
        await query.edit_message_text(text=text)


async def button_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handles all callback queries from inline buttons. Acts as a central router.

    `season_…` buttons come from the delivery season chooser and are open to
    everyone; `flow:…` buttons answer the current step of an operator flow.
    """
    query = update.callback_query
    user = update.effective_user
    chat = update.effective_chat
    if not query or not query.data or not user or not chat:
        return

    await query.answer()
    action = query.data
    router: ConversationRouter = context.bot_data["ROUTER"]

    if action.startswith("season_"):
        resolver: DeliveryResolver = context.bot_data["DELIVERY"]
        await resolver.handle_season_choice(chat.id, action)

    elif action.startswith(CHOICE_PREFIX):
        value = action[len(CHOICE_PREFIX) :]
        if not await router.dispatch(user.id, InboundEvent.from_choice(value)):
            await _replace_keyboard_message(query, CONTEXT_LOST_MESSAGE)

    elif action == CANCEL_CALLBACK:
        cancelled = await router.cancel(user.id)
        await _replace_keyboard_message(
            query, messages.OPERATION_CANCELLED if cancelled else messages.NOTHING_TO_CANCEL
        )

    else:
        logger.warning(f"Received an unhandled callback query action: {action}")
