import asyncio
from types import SimpleNamespace

import pytest

from catalog_bot.errors import GENERIC_FAILURE_MESSAGE
from catalog_bot.services.identity import generate_content_id
from catalog_bot.ui import messages
from catalog_bot.workflows.engine import InboundEvent

USER = 123
CHAT = 456
NARUTO_ID = generate_content_id("anime", "Naruto", 2002)


async def _reply(router, *values: str) -> None:
    for value in values:
        assert await router.dispatch(USER, InboundEvent.from_text(value))


async def _create_series_through_flow(router) -> None:
    await router.start(USER, CHAT, "uploadseries")
    await _reply(router, "anime", "Naruto", "2002", "skip", "skip", "ANIME")


@pytest.mark.asyncio
async def test_start_sends_first_prompt_and_blocks_a_second_flow(router, sent_texts):
    assert await router.start(USER, CHAT, "uploadmovie") is True
    assert router.has_active_flow(USER)

    assert await router.start(USER, CHAT, "/uploadseries") is False

    texts = sent_texts()
    assert "Send the movie title" in texts[0]
    assert texts[-1] == messages.OPERATION_IN_PROGRESS
    assert router.store.get(USER).flow == "movie_upload"


@pytest.mark.asyncio
async def test_start_rejects_unbound_command(router):
    with pytest.raises(ValueError):
        await router.start(USER, CHAT, "status")


@pytest.mark.asyncio
async def test_dispatch_without_flow_is_unhandled(router, telegram_bot):
    assert await router.dispatch(USER, InboundEvent.from_text("hello")) is False
    telegram_bot.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancel_clears_state_and_next_message_has_no_flow(router, repository):
    await _create_series_through_flow(router)
    assert NARUTO_ID in repository.series

    assert await router.cancel(USER) is True

    assert not router.has_active_flow(USER)
    # Records created before completion are removed on cancel as well
    assert repository.series == {}
    assert await router.dispatch(USER, InboundEvent.from_text("1")) is False
    assert await router.cancel(USER) is False


@pytest.mark.asyncio
async def test_error_mid_flow_compensates_and_reports(router, repository, sent_texts, mocker):
    await _create_series_through_flow(router)
    await _reply(router, "1")
    assert (NARUTO_ID, 1) in repository.seasons
    mocker.patch.object(repository, "rename_season", side_effect=RuntimeError("db down"))

    await _reply(router, "Part One")

    assert not router.has_active_flow(USER)
    assert repository.series == {}
    assert repository.seasons == {}
    assert sent_texts()[-1] == (
        f"{GENERIC_FAILURE_MESSAGE}\n\n❌ Series upload failed. Use /uploadseries to start again."
    )


@pytest.mark.asyncio
async def test_cancel_during_dispatch_is_compensated_when_dispatch_unwinds(
    router, repository, sent_texts
):
    await _create_series_through_flow(router)
    create_season = repository.create_season

    async def _create_then_cancel(season):
        created = await create_season(season)
        # The dispatch holds the user's lock, so cancel only marks the state
        assert await router.cancel(USER) is True
        assert NARUTO_ID in repository.series
        return created

    repository.create_season = _create_then_cancel
    prompts_before = len(sent_texts())

    await _reply(router, "1")

    assert repository.series == {}
    assert repository.seasons == {}
    assert len(sent_texts()) == prompts_before
    assert not router.has_active_flow(USER)


@pytest.mark.asyncio
async def test_not_found_lookup_ends_the_flow(router, sent_texts):
    await router.start(USER, CHAT, "addseason")

    await _reply(router, "ws_missing_2020_000000")

    assert not router.has_active_flow(USER)
    assert sent_texts()[-1] == (
        "❌ Series 'ws_missing_2020_000000' not found.\n\n"
        "❌ Add season failed. Use /addseason to start again."
    )


@pytest.mark.asyncio
async def test_cancel_all_clears_every_flow(router):
    await router.start(1, 1, "uploadmovie")
    await router.start(2, 2, "findcontent")

    await router.cancel_all()

    assert len(router.store) == 0


def test_commands_lists_every_flow(router):
    assert set(router.commands) == {
        "uploadmovie",
        "uploadseries",
        "addseason",
        "addepisode",
        "editcontent",
        "deletecontent",
        "findcontent",
    }


@pytest.mark.asyncio
async def test_events_for_one_user_are_applied_one_at_a_time(router, telegram_bot):
    year_prompt_sent = asyncio.Event()
    release = asyncio.Event()

    async def _slow_year_prompt(**kwargs):
        if "release year" in kwargs["text"]:
            year_prompt_sent.set()
            await release.wait()
        return SimpleNamespace(message_id=1)

    await router.start(USER, CHAT, "uploadmovie")
    telegram_bot.send_message.side_effect = _slow_year_prompt

    title = asyncio.create_task(router.dispatch(USER, InboundEvent.from_text("A")))
    await year_prompt_sent.wait()
    year = asyncio.create_task(router.dispatch(USER, InboundEvent.from_text("2010")))
    await asyncio.sleep(0)

    state = router.store.get(USER)
    assert state.step == "year"
    assert "year" not in state.data

    release.set()
    assert await asyncio.gather(title, year) == [True, True]

    assert state.step == "genres"
    assert (state.data["title"], state.data["year"]) == ("A", 2010)


@pytest.mark.asyncio
async def test_messages_from_users_without_a_flow_leave_no_lock_behind(router):
    for user_id in range(10):
        assert await router.dispatch(user_id, InboundEvent.from_text("hi")) is False

    await router.start(USER, CHAT, "findcontent")
    await router.cancel(USER)

    assert router.store.lock_count() == 0
