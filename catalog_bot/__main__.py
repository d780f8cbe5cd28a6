# catalog_bot/__main__.py

# Ensure PTB env flags are set before importing python-telegram-bot
from catalog_bot import _ptb_env  # noqa: F401
from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    MessageHandler,
    filters,
)

from catalog_bot.config import get_configuration, logger
from catalog_bot.handlers.callback_handlers import button_handler
from catalog_bot.handlers.command_handlers import (
    cancel_command,
    flow_command,
    grant_command,
    help_command,
    revoke_command,
    start_command,
    view_content_command,
)
from catalog_bot.handlers.error_handler import global_error_handler
from catalog_bot.handlers.message_handlers import (
    handle_file_message,
    handle_text_message,
)
from catalog_bot.state import post_init, post_shutdown
from catalog_bot.workflows.flows import ALL_FLOWS


def register_handlers(application: Application) -> None:
    """
    Registers all the command, message, and callback handlers for the bot.
    This keeps the main function clean and focused on initialization.
    """
    application.add_handler(CommandHandler("start", start_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("cancel", cancel_command))
    application.add_handler(CommandHandler("viewcontent", view_content_command))
    application.add_handler(CommandHandler("grant", grant_command))
    application.add_handler(CommandHandler("revoke", revoke_command))

    # Every flow table is started by its own command through one handler.
    application.add_handler(
        CommandHandler([flow.command for flow in ALL_FLOWS], flow_command)
    )

    # Callback Query Handler for all button presses
    application.add_handler(CallbackQueryHandler(button_handler))

    # Episode and movie files for the active upload flow
    application.add_handler(
        MessageHandler(filters.VIDEO | filters.Document.ALL, handle_file_message)
    )

    # General Text Handler for conversational replies
    application.add_handler(
        MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text_message)
    )

    application.add_error_handler(global_error_handler)

    logger.info("All handlers have been registered.")


def main() -> None:
    """
    Main function to initialize and run the Telegram bot.
    """
    logger.info("Starting bot...")

    settings = get_configuration()

    # Updates run concurrently; per-user locks in the router keep each
    # operator's flow consistent.
    application = (
        ApplicationBuilder()
        .token(settings.token)
        .concurrent_updates(True)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )

    application.bot_data["SETTINGS"] = settings
    application.bot_data.setdefault("is_shutting_down", False)

    register_handlers(application)

    logger.info("Bot startup complete. Starting polling...")
    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
