import pytest

from catalog_bot.models import ArtifactRef, Episode, Movie, Season, Series
from catalog_bot.ui import messages
from catalog_bot.workflows.engine import InboundEvent

USER = 123
CHAT = 456
MOVIE_ID = "mo_inception_2010_123456"
SERIES_ID = "ws_dark_2017_abcdef"


async def _reply(router, *values: str) -> None:
    for value in values:
        assert await router.dispatch(USER, InboundEvent.from_text(value))


async def _seed(repository) -> None:
    await repository.create_movie(
        Movie(
            id=MOVIE_ID,
            title="Inception",
            year=2010,
            artifact=ArtifactRef(channel_id=-1001, message_id=10),
            owner_id=1,
            genres=["Action"],
        )
    )
    await repository.create_series(
        Series(
            id=SERIES_ID,
            title="Dark",
            category="webseries",
            year=2017,
            channel_id=-1002,
            owner_id=1,
        )
    )
    await repository.create_season(Season(series_id=SERIES_ID, number=1))
    await repository.create_episode(
        Episode(
            id=f"{SERIES_ID}_s01e01",
            series_id=SERIES_ID,
            season_number=1,
            number=1,
            title="Secrets",
            artifact=ArtifactRef(channel_id=-1002, message_id=20),
        )
    )


# --- Edit ---


@pytest.mark.asyncio
async def test_edit_title_keeps_the_id(router, repository, sent_texts):
    await _seed(repository)

    await router.start(USER, CHAT, "editcontent")
    await _reply(router, MOVIE_ID, "title", "Inception (Director's Cut)")

    movie = await repository.get_movie(MOVIE_ID)
    assert movie.title == "Inception (Director's Cut)"
    assert list(repository.movies) == [MOVIE_ID]
    assert "link is unchanged" in sent_texts()[-1]
    assert f"start={MOVIE_ID}" in sent_texts()[-1]


@pytest.mark.asyncio
async def test_edit_series_genres(router, repository):
    await _seed(repository)

    await router.start(USER, CHAT, "editcontent")
    await _reply(router, SERIES_ID.upper(), "genre", "Sci-Fi, Thriller")

    assert (await repository.get_series(SERIES_ID)).genres == ["Sci-Fi", "Thriller"]


@pytest.mark.asyncio
async def test_edit_validates_the_new_value(router, repository, sent_texts):
    await _seed(repository)

    await router.start(USER, CHAT, "editcontent")
    await _reply(router, MOVIE_ID, "year", "soon")

    assert "valid year" in sent_texts()[-1]
    assert router.store.get(USER).step == "value"

    await _reply(router, "2011")
    assert (await repository.get_movie(MOVIE_ID)).year == 2011


@pytest.mark.asyncio
async def test_edit_rejects_unknown_field(router, repository, sent_texts):
    await _seed(repository)

    await router.start(USER, CHAT, "editcontent")
    await _reply(router, MOVIE_ID, "owner")

    assert "Choose one of" in sent_texts()[-2]
    assert router.store.get(USER).step == "field"


# --- Delete ---


@pytest.mark.asyncio
async def test_delete_series_cascades(router, repository, sent_texts):
    await _seed(repository)

    await router.start(USER, CHAT, "deletecontent")
    await _reply(router, SERIES_ID)
    assert "seasons and episodes will be removed" in sent_texts()[-1]
    await _reply(router, "yes")

    assert await repository.get_series(SERIES_ID) is None
    assert repository.seasons == {}
    assert repository.episodes == {}
    assert await repository.get_movie(MOVIE_ID) is not None
    assert not router.has_active_flow(USER)


@pytest.mark.asyncio
async def test_delete_declined_keeps_content(router, repository, sent_texts):
    await _seed(repository)

    await router.start(USER, CHAT, "deletecontent")
    await _reply(router, MOVIE_ID, "no")

    assert await repository.get_movie(MOVIE_ID) is not None
    assert sent_texts()[-1] == "❎ Deletion cancelled."
    assert not router.has_active_flow(USER)


@pytest.mark.asyncio
async def test_delete_unknown_id_fails_the_flow(router, sent_texts):
    await router.start(USER, CHAT, "deletecontent")
    await _reply(router, "mo_nothing_1999_000000")

    assert not router.has_active_flow(USER)
    assert sent_texts()[-1].endswith("❌ Delete failed. Use /deletecontent to start again.")


@pytest.mark.asyncio
async def test_delete_reports_content_removed_meanwhile(router, repository, sent_texts):
    await _seed(repository)

    await router.start(USER, CHAT, "deletecontent")
    await _reply(router, MOVIE_ID)
    await repository.delete_movie(MOVIE_ID)
    await _reply(router, "yes")

    assert sent_texts()[-1] == messages.CONTENT_NOT_FOUND


# --- Find ---


@pytest.mark.asyncio
async def test_find_lists_links_without_previews(router, repository, telegram_bot):
    await _seed(repository)

    await router.start(USER, CHAT, "findcontent")
    await _reply(router, "incep")

    kwargs = telegram_bot.send_message.await_args.kwargs
    assert "Inception" in kwargs["text"]
    assert f"https://t.me/CatalogBot?start={MOVIE_ID}" in kwargs["text"]
    assert kwargs["link_preview_options"].is_disabled is True
    assert not router.has_active_flow(USER)


@pytest.mark.asyncio
async def test_find_with_no_results(router, repository, sent_texts):
    await _seed(repository)

    await router.start(USER, CHAT, "findcontent")
    await _reply(router, "zzzzzz")

    assert sent_texts()[-1] == "🔍 No content found for <b>zzzzzz</b>."
