import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from telegram import CallbackQuery, Update

sys.path.append(str(Path(__file__).resolve().parent.parent.parent))

from catalog_bot.handlers.callback_handlers import button_handler
from catalog_bot.ui import messages
from catalog_bot.workflows.engine import InboundEvent
from catalog_bot.workflows.session import CONTEXT_LOST_MESSAGE


@pytest.fixture
def answer_mock(mocker):
    return mocker.patch.object(CallbackQuery, "answer", AsyncMock())


@pytest.fixture
def edit_mock(mocker):
    return mocker.patch(
        "catalog_bot.handlers.callback_handlers.safe_edit_message", new=AsyncMock()
    )


@pytest.mark.asyncio
async def test_season_button_delivers_the_season(
    make_callback_query, context, router, answer_mock
):
    resolver = AsyncMock()
    context.bot_data.update({"ROUTER": router, "DELIVERY": resolver})
    query = make_callback_query("season_an_naruto_2002_abcdef_1")

    await button_handler(Update(update_id=1, callback_query=query), context)

    answer_mock.assert_awaited_once()
    resolver.handle_season_choice.assert_awaited_once_with(
        456, "season_an_naruto_2002_abcdef_1"
    )


@pytest.mark.asyncio
async def test_flow_button_answers_the_current_step(
    make_callback_query, context, router, answer_mock, edit_mock
):
    context.bot_data["ROUTER"] = router
    await router.start(123, 456, "uploadmovie")
    for text in ("Inception", "2010", "Action"):
        await router.dispatch(123, InboundEvent.from_text(text))

    await button_handler(
        Update(update_id=1, callback_query=make_callback_query("flow:skip")), context
    )

    state = router.store.get(123)
    assert state.data["description"] == ""
    assert state.step == "channel"
    edit_mock.assert_not_awaited()


@pytest.mark.asyncio
async def test_flow_button_without_flow_reports_expired(
    make_callback_query, context, router, answer_mock, edit_mock
):
    context.bot_data["ROUTER"] = router

    await button_handler(
        Update(update_id=1, callback_query=make_callback_query("flow:yes")), context
    )

    assert edit_mock.await_args.kwargs["text"] == CONTEXT_LOST_MESSAGE


@pytest.mark.asyncio
async def test_cancel_button_cancels_the_flow(
    make_callback_query, context, router, answer_mock, edit_mock
):
    context.bot_data["ROUTER"] = router
    await router.start(123, 456, "findcontent")

    await button_handler(
        Update(update_id=1, callback_query=make_callback_query("cancel_operation")), context
    )

    assert not router.has_active_flow(123)
    assert edit_mock.await_args.kwargs["text"] == messages.OPERATION_CANCELLED


@pytest.mark.asyncio
async def test_unknown_button_is_logged(
    mocker, make_callback_query, context, router, answer_mock, edit_mock
):
    context.bot_data["ROUTER"] = router
    warn_mock = mocker.patch("catalog_bot.handlers.callback_handlers.logger.warning")

    await button_handler(
        Update(update_id=1, callback_query=make_callback_query("mystery")), context
    )

    warn_mock.assert_called_once()
    edit_mock.assert_not_awaited()
