import itertools
import os
import sys
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest

# Set PTB timedelta before importing telegram types; keep imports at top via noqa
os.environ.setdefault("PTB_TIMEDELTA", "1")
from telegram import Update, Message, Chat, User, CallbackQuery, Bot  # noqa: E402

# Ensure root path is available for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from catalog_bot.config import BotSettings, DatabaseSettings, LimitSettings  # noqa: E402
from catalog_bot.services.ingestion import IngestionPipeline  # noqa: E402
from catalog_bot.services.repository import InMemoryCatalogRepository  # noqa: E402
from catalog_bot.services.transport import TelegramTransport  # noqa: E402
from catalog_bot.workflows.engine import FlowEngine  # noqa: E402
from catalog_bot.workflows.flows import ALL_FLOWS  # noqa: E402
from catalog_bot.workflows.router import ConversationRouter  # noqa: E402
from catalog_bot.workflows.session import ConversationStore  # noqa: E402

OPERATOR_ID = 123
CHAT_ID = 456


@pytest.fixture
def user():
    return User(id=OPERATOR_ID, first_name="Test", is_bot=False, username="tester")


@pytest.fixture
def chat():
    return Chat(id=CHAT_ID, type="private")


@pytest.fixture
def make_message(user, chat):
    def _make(text: str = "", message_id: int = 1):
        msg = Message(
            message_id=message_id,
            date=datetime.now(),
            chat=chat,
            from_user=user,
            text=text,
        )
        bot = Mock(spec=Bot)
        bot.delete_message = AsyncMock()
        bot.edit_message_text = AsyncMock()
        msg.set_bot(bot)
        return msg

    return _make


@pytest.fixture
def make_callback_query(user, make_message):
    def _make(data: str, message: Message | None = None):
        if message is None:
            message = make_message()
        return CallbackQuery(
            id="1", from_user=user, chat_instance="1", data=data, message=message
        )

    return _make


@pytest.fixture
def make_update():
    def _make(
        message: Message | None = None,
        callback_query: CallbackQuery | None = None,
        update_id: int = 1,
    ):
        return Update(
            update_id=update_id, message=message, callback_query=callback_query
        )

    return _make


@pytest.fixture
def context(make_message):
    bot = SimpleNamespace(
        send_message=AsyncMock(return_value=make_message()),
        delete_message=AsyncMock(),
    )
    return SimpleNamespace(bot=bot, user_data={}, bot_data={}, args=[])


# --- Catalog services ---


@pytest.fixture
def settings():
    return BotSettings(
        token="TEST_TOKEN",
        bot_username="CatalogBot",
        admin_user_ids=(1,),
        channels={"MOVIES": -1001, "WEBSERIES": -1002, "ANIME": -1003},
        database=DatabaseSettings(backend="memory"),
        limits=LimitSettings(
            upload_pacing_seconds=0,
            delivery_pacing_seconds=0,
            relay_rate_per_second=0,
            progress_every=5,
        ),
    )


@pytest.fixture
def repository():
    return InMemoryCatalogRepository()


@pytest.fixture
def telegram_bot():
    """Stand-in Bot whose uploads land at increasing message ids."""
    ids = itertools.count(100)

    def _posted(**kwargs):
        return SimpleNamespace(message_id=next(ids), chat_id=kwargs["chat_id"])

    return SimpleNamespace(
        send_message=AsyncMock(return_value=SimpleNamespace(message_id=1)),
        send_video=AsyncMock(side_effect=_posted),
        send_document=AsyncMock(side_effect=_posted),
        copy_message=AsyncMock(return_value=SimpleNamespace(message_id=2)),
    )


@pytest.fixture
def transport(telegram_bot):
    return TelegramTransport(telegram_bot)


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def pipeline(repository, transport, settings, no_sleep):
    return IngestionPipeline(repository, transport, settings.limits, sleep=no_sleep)


@pytest.fixture
def router(repository, transport, pipeline, settings):
    return ConversationRouter(
        FlowEngine(ALL_FLOWS),
        ConversationStore(),
        repository=repository,
        transport=transport,
        pipeline=pipeline,
        settings=settings,
    )


@pytest.fixture
def sent_texts(telegram_bot):
    """Returns every text the bot sent so far, in order."""

    def _texts() -> list[str]:
        return [call.kwargs["text"] for call in telegram_bot.send_message.call_args_list]

    return _texts
