import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parent.parent))

import pytest

from catalog_bot.config import BotSettings, LimitSettings, get_configuration


def _write(tmp_path, text: str) -> str:
    path = tmp_path / "config.ini"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_get_configuration_happy_path(tmp_path):
    config_path = _write(
        tmp_path,
        """
[telegram]
bot_token=TEST_TOKEN
bot_username=@CatalogBot
admin_user_ids=1, 2

[channels]
movies=-1001
anime=-1003

[database]
backend=mongo
mongo_uri=mongodb://localhost:27017
database_name=catalog_test

[limits]
upload_pacing_seconds=1.5
rate_limit_max_retries=3
max_file_size_mb=50
""",
    )

    settings = get_configuration(config_path)

    assert settings.token == "TEST_TOKEN"
    assert settings.bot_username == "CatalogBot"
    assert settings.admin_user_ids == (1, 2)
    assert settings.channels == {"MOVIES": -1001, "ANIME": -1003}
    assert settings.database.backend == "mongo"
    assert settings.database.mongo_uri == "mongodb://localhost:27017"
    assert settings.database.database_name == "catalog_test"
    assert settings.limits.upload_pacing_seconds == 1.5
    assert settings.limits.rate_limit_max_retries == 3
    assert settings.limits.max_file_size_bytes == 50 * 1024 * 1024
    # Unset limits keep their defaults
    assert settings.limits.delivery_pacing_seconds == LimitSettings().delivery_pacing_seconds


def test_get_configuration_missing_file(tmp_path):
    with pytest.raises(SystemExit):
        get_configuration(str(tmp_path / "missing.ini"))


def test_get_configuration_missing_token(tmp_path):
    config_path = _write(
        tmp_path,
        """
[telegram]
bot_token=PLACE_TOKEN_HERE
""",
    )
    with pytest.raises(SystemExit):
        get_configuration(config_path)


def test_get_configuration_defaults_to_memory_backend(tmp_path):
    config_path = _write(
        tmp_path,
        """
[telegram]
bot_token=TEST_TOKEN
""",
    )

    settings = get_configuration(config_path)

    assert settings.database.backend == "memory"
    assert settings.channels == {}
    assert settings.limits == LimitSettings()


def test_get_configuration_rejects_non_numeric_channel(tmp_path):
    config_path = _write(
        tmp_path,
        """
[telegram]
bot_token=TEST_TOKEN

[channels]
movies=not-a-number
""",
    )
    with pytest.raises(ValueError, match="numeric chat id"):
        get_configuration(config_path)


def test_get_configuration_mongo_requires_uri(tmp_path):
    config_path = _write(
        tmp_path,
        """
[telegram]
bot_token=TEST_TOKEN

[database]
backend=mongo
""",
    )
    with pytest.raises(ValueError, match="mongo_uri"):
        get_configuration(config_path)


def test_bot_settings_channel_lookup_and_deep_link():
    settings = BotSettings(token="t", bot_username="CatalogBot", channels={"MOVIES": -1})

    assert settings.channel_for(" movies ") == -1
    assert settings.channel_for("ANIME") is None
    assert settings.deep_link("mo_x_2010_abc") == "https://t.me/CatalogBot?start=mo_x_2010_abc"
