# catalog_bot/config.py

import configparser
import logging
import os
import sys
from dataclasses import dataclass, field

# --- Constants ---
CONFIG_PATH = "config.ini"
MOVIE_CHANNELS = ("MOVIES",)
SERIES_CHANNELS = ("WEBSERIES", "ANIME")
SERIES_CATEGORIES = ("webseries", "anime")
RECENT_CONTENT_LIMIT = 20
SEARCH_RESULT_LIMIT = 10

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("pymongo").setLevel(logging.WARNING)


@dataclass(frozen=True)
class LimitSettings:
    """Pacing and backoff knobs shared by ingestion and delivery."""

    upload_pacing_seconds: float = 2.0
    delivery_pacing_seconds: float = 0.5
    rate_limit_default_wait: float = 30.0
    rate_limit_max_retries: int = 5
    relay_rate_per_second: float = 20.0
    progress_every: int = 5
    max_file_size_mb: int = 2000

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@dataclass(frozen=True)
class DatabaseSettings:
    backend: str = "memory"
    mongo_uri: str | None = None
    database_name: str = "catalog"


@dataclass(frozen=True)
class BotSettings:
    token: str
    bot_username: str = ""
    admin_user_ids: tuple[int, ...] = ()
    channels: dict[str, int] = field(default_factory=dict)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    limits: LimitSettings = field(default_factory=LimitSettings)

    def channel_for(self, name: str) -> int | None:
        """Looks up a storage channel by its routing name, case-insensitively."""
        return self.channels.get(name.strip().upper())

    def deep_link(self, content_id: str) -> str:
        return f"https://t.me/{self.bot_username}?start={content_id}"


def get_configuration(config_path: str = CONFIG_PATH) -> BotSettings:
    """
    Reads the bot token, operator bootstrap list, channel routing table,
    database and limit settings from the config.ini file.
    """
    if not os.path.exists(config_path):
        logger.critical(
            f"Configuration file '{config_path}' not found. Please create it."
        )
        sys.exit(1)

    parser = configparser.ConfigParser()
    with open(config_path, encoding="utf-8") as f:
        parser.read_string(f.read())

    token = parser.get("telegram", "bot_token", fallback=None)
    if not token or token == "PLACE_TOKEN_HERE":
        logger.critical(f"Bot token not found or not set in '{config_path}'.")
        sys.exit(1)

    bot_username = parser.get("telegram", "bot_username", fallback="").strip()
    bot_username = bot_username.lstrip("@")

    admin_ids_str = parser.get("telegram", "admin_user_ids", fallback="")
    admin_ids = tuple(
        int(admin_id.strip()) for admin_id in admin_ids_str.split(",") if admin_id.strip()
    )

    channels = _load_channels(parser)
    database = _load_database_settings(parser)
    limits = _load_limits(parser)

    return BotSettings(
        token=token,
        bot_username=bot_username,
        admin_user_ids=admin_ids,
        channels=channels,
        database=database,
        limits=limits,
    )


def _load_channels(config: configparser.ConfigParser) -> dict[str, int]:
    """Loads the channel routing table; names are normalised to upper case."""
    channels: dict[str, int] = {}
    if not config.has_section("channels"):
        logger.warning("No [channels] section found. Uploads will have no destination.")
        return channels

    for name, raw_value in config.items("channels"):
        value = raw_value.strip()
        if not value:
            continue
        try:
            channels[name.upper()] = int(value)
        except ValueError:
            raise ValueError(f"Channel '{name}' must be a numeric chat id, got '{value}'.")
        logger.info(f"[CONFIG] Channel '{name.upper()}' -> {value}")
    return channels


def _load_database_settings(config: configparser.ConfigParser) -> DatabaseSettings:
    backend = config.get("database", "backend", fallback="memory").strip().lower()
    if backend not in ("memory", "mongo"):
        raise ValueError(f"Unsupported database backend '{backend}'.")

    mongo_uri = config.get("database", "mongo_uri", fallback=None)
    if backend == "mongo" and not mongo_uri:
        raise ValueError("'mongo_uri' is mandatory when the mongo backend is selected.")

    database_name = config.get("database", "database_name", fallback="catalog")
    if backend == "memory":
        logger.warning(
            "[CONFIG] Using the in-memory catalog. Nothing will survive a restart."
        )
    return DatabaseSettings(
        backend=backend, mongo_uri=mongo_uri, database_name=database_name.strip()
    )


def _load_limits(config: configparser.ConfigParser) -> LimitSettings:
    defaults = LimitSettings()
    if not config.has_section("limits"):
        return defaults

    return LimitSettings(
        upload_pacing_seconds=config.getfloat(
            "limits", "upload_pacing_seconds", fallback=defaults.upload_pacing_seconds
        ),
        delivery_pacing_seconds=config.getfloat(
            "limits",
            "delivery_pacing_seconds",
            fallback=defaults.delivery_pacing_seconds,
        ),
        rate_limit_default_wait=config.getfloat(
            "limits",
            "rate_limit_default_wait",
            fallback=defaults.rate_limit_default_wait,
        ),
        rate_limit_max_retries=config.getint(
            "limits", "rate_limit_max_retries", fallback=defaults.rate_limit_max_retries
        ),
        relay_rate_per_second=config.getfloat(
            "limits", "relay_rate_per_second", fallback=defaults.relay_rate_per_second
        ),
        progress_every=config.getint(
            "limits", "progress_every", fallback=defaults.progress_every
        ),
        max_file_size_mb=config.getint(
            "limits", "max_file_size_mb", fallback=defaults.max_file_size_mb
        ),
    )
