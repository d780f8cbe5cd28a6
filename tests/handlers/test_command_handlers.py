import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from telegram import Update

# Ensure root path for imports
sys.path.append(str(Path(__file__).resolve().parent.parent.parent))

from catalog_bot.handlers.command_handlers import (
    cancel_command,
    flow_command,
    grant_command,
    help_command,
    revoke_command,
    start_command,
    view_content_command,
)
from catalog_bot.models import ArtifactRef, Movie, Operator
from catalog_bot.ui import messages


@pytest.fixture
def bot_data(context, repository, router, settings):
    context.bot_data.update(
        {"REPOSITORY": repository, "ROUTER": router, "SETTINGS": settings}
    )
    return context.bot_data


def _sent_text(context) -> str:
    return context.bot.send_message.await_args.kwargs["text"]


@pytest.mark.asyncio
async def test_start_with_payload_delivers_content(make_message, context, bot_data):
    resolver = AsyncMock()
    bot_data["DELIVERY"] = resolver
    context.args = ["mo_inception_2010_123456"]

    await start_command(Update(update_id=1, message=make_message("/start x")), context)

    resolver.handle_deep_link.assert_awaited_once_with(456, "mo_inception_2010_123456")
    context.bot.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_bare_start_registers_and_shows_viewer_help(
    make_message, context, bot_data, repository
):
    await start_command(Update(update_id=1, message=make_message("/start")), context)

    operator = await repository.get_operator(123)
    assert operator is not None and operator.may_upload is False
    assert "/uploadmovie" not in _sent_text(context)


@pytest.mark.asyncio
async def test_help_shows_operator_commands(make_message, context, bot_data, repository):
    await repository.save_operator(Operator(user_id=123, can_upload=True))

    await help_command(Update(update_id=1, message=make_message("/help")), context)

    assert "/uploadmovie" in _sent_text(context)


@pytest.mark.asyncio
async def test_flow_command_starts_the_bound_flow(
    make_message, context, bot_data, repository, router
):
    await repository.save_operator(Operator(user_id=123, can_upload=True))
    update = Update(update_id=1, message=make_message("/uploadseries@CatalogBot"))

    await flow_command(update, context)

    assert router.store.get(123).flow == "series_upload"


@pytest.mark.asyncio
async def test_flow_command_requires_permission(make_message, context, bot_data, router):
    update = Update(update_id=1, message=make_message("/uploadmovie"))

    await flow_command(update, context)

    assert not router.has_active_flow(123)
    assert _sent_text(context) == messages.NOT_PERMITTED


@pytest.mark.asyncio
async def test_cancel_command(make_message, context, bot_data, router):
    update = Update(update_id=1, message=make_message("/cancel"))

    await cancel_command(update, context)
    assert _sent_text(context) == messages.NOTHING_TO_CANCEL

    await router.start(123, 456, "findcontent")
    await cancel_command(update, context)
    assert _sent_text(context) == messages.OPERATION_CANCELLED
    assert not router.has_active_flow(123)


@pytest.mark.asyncio
async def test_view_content_lists_recent_uploads(make_message, context, bot_data, repository):
    await repository.save_operator(Operator(user_id=123, can_upload=True))
    update = Update(update_id=1, message=make_message("/viewcontent"))

    await view_content_command(update, context)
    assert _sent_text(context) == "📭 The catalog is empty."

    await repository.create_movie(
        Movie(
            id="mo_inception_2010_123456",
            title="Inception",
            year=2010,
            artifact=ArtifactRef(channel_id=-1001, message_id=1),
            owner_id=123,
        )
    )
    await view_content_command(update, context)

    text = _sent_text(context)
    assert "Latest movies (1)" in text
    assert "https://t.me/CatalogBot?start=mo_inception_2010_123456" in text
    assert "Latest series" not in text


@pytest.mark.asyncio
async def test_grant_and_revoke_upload_permission(make_message, context, bot_data, repository):
    await repository.save_operator(Operator(user_id=123, is_admin=True, can_upload=True))
    await repository.save_operator(Operator(user_id=77))
    context.args = ["77"]

    await grant_command(Update(update_id=1, message=make_message("/grant 77")), context)
    assert (await repository.get_operator(77)).can_upload is True
    assert "can now upload" in _sent_text(context)

    await revoke_command(Update(update_id=2, message=make_message("/revoke 77")), context)
    assert (await repository.get_operator(77)).can_upload is False


@pytest.mark.asyncio
async def test_grant_usage_and_unknown_user(make_message, context, bot_data, repository):
    await repository.save_operator(Operator(user_id=123, is_admin=True))
    update = Update(update_id=1, message=make_message("/grant"))

    await grant_command(update, context)
    assert _sent_text(context) == "Usage: /grant <user_id>"

    context.args = ["999"]
    await grant_command(update, context)
    assert "unknown" in _sent_text(context)


@pytest.mark.asyncio
async def test_grant_is_admin_only(make_message, context, bot_data, repository):
    await repository.save_operator(Operator(user_id=123, can_upload=True))
    await repository.save_operator(Operator(user_id=77))
    context.args = ["77"]

    await grant_command(Update(update_id=1, message=make_message("/grant 77")), context)

    assert _sent_text(context) == messages.ADMIN_ONLY
    assert (await repository.get_operator(77)).can_upload is False
