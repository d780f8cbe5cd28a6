# catalog_bot/state.py

from typing import Any

from telegram import Bot
from telegram.ext import Application

from .config import BotSettings, logger
from .services.auth_service import bootstrap_admins
from .services.delivery import DeliveryResolver
from .services.ingestion import IngestionPipeline
from .services.repository import CatalogRepository, build_repository
from .services.retry import RelayLimiter
from .services.transport import TelegramTransport
from .workflows.engine import FlowEngine
from .workflows.flows import ALL_FLOWS
from .workflows.router import ConversationRouter
from .workflows.session import ConversationStore


def build_services(
    bot: Bot, settings: BotSettings, repository: CatalogRepository
) -> dict[str, Any]:
    """Wires the long-lived services that handlers reach through `bot_data`."""
    limiter = RelayLimiter(settings.limits.relay_rate_per_second)
    transport = TelegramTransport(bot, limiter)
    pipeline = IngestionPipeline(repository, transport, settings.limits)
    router = ConversationRouter(
        FlowEngine(ALL_FLOWS),
        ConversationStore(),
        repository=repository,
        transport=transport,
        pipeline=pipeline,
        settings=settings,
    )
    delivery = DeliveryResolver(repository, transport, settings.limits)
    return {
        "REPOSITORY": repository,
        "TRANSPORT": transport,
        "PIPELINE": pipeline,
        "ROUTER": router,
        "DELIVERY": delivery,
    }


async def post_init(application: Application) -> None:
    """
    Connects the catalog store and builds the services once the bot is
    initialized. This function is called by the ApplicationBuilder.
    """
    logger.info("--- Connecting catalog store and building services ---")
    settings: BotSettings = application.bot_data["SETTINGS"]

    repository = build_repository(settings.database)
    await repository.connect()
    await bootstrap_admins(repository, settings.admin_user_ids)

    application.bot_data.update(build_services(application.bot, settings, repository))
    logger.info(
        f"--- Services ready ({settings.database.backend} backend, "
        f"{len(settings.channels)} channel(s)) ---"
    )


async def post_shutdown(application: Application) -> None:
    """
    Cancels in-flight operator flows and closes the database client before the
    bot shuts down. This function is called by the ApplicationBuilder.
    """
    logger.info("--- Shutting down: cancelling active flows ---")
    application.bot_data["is_shutting_down"] = True

    router: ConversationRouter | None = application.bot_data.get("ROUTER")
    if router is not None and len(router.store):
        logger.info(f"Cancelling {len(router.store)} active flow(s)...")
        await router.cancel_all()

    repository: CatalogRepository | None = application.bot_data.get("REPOSITORY")
    if repository is not None:
        await repository.close()

    logger.info("--- Shutdown complete. ---")
