# catalog_bot/models.py

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Literal

SeriesCategory = Literal["webseries", "anime"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ArtifactRef:
    """Where a stored media file lives: a message inside a storage channel."""

    channel_id: int
    message_id: int


@dataclass(frozen=True)
class FileRef:
    """An inbound Telegram file that has not been stored yet."""

    file_id: str
    file_name: str = ""
    file_size: int = 0
    is_video: bool = False


@dataclass
class Movie:
    id: str
    title: str
    year: int
    artifact: ArtifactRef
    owner_id: int
    genres: list[str] = field(default_factory=list)
    description: str = ""
    category: str = "movie"
    status: str = "completed"
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class Series:
    id: str
    title: str
    category: SeriesCategory
    year: int
    channel_id: int
    owner_id: int
    genres: list[str] = field(default_factory=list)
    description: str = ""
    seasons: list[int] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class Season:
    series_id: str
    number: int
    title: str = ""
    episodes: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.title:
            self.title = f"Season {self.number}"


@dataclass
class Episode:
    id: str
    series_id: str
    season_number: int
    number: int
    title: str
    artifact: ArtifactRef


@dataclass
class Operator:
    user_id: int
    username: str | None = None
    can_upload: bool = False
    is_admin: bool = False
    upload_count: int = 0
    last_upload: datetime | None = None

    @property
    def may_upload(self) -> bool:
        return self.can_upload or self.is_admin


def to_document(record: Any) -> dict[str, Any]:
    """Flattens a record dataclass into a plain dict suitable for storage."""
    return asdict(record)


def from_document(cls: type, document: dict[str, Any]) -> Any:
    """Builds a record dataclass from a stored dict, ignoring unknown keys like `_id`."""
    names = {f.name for f in fields(cls)}
    payload = {key: value for key, value in document.items() if key in names}
    artifact = payload.get("artifact")
    if isinstance(artifact, dict):
        payload["artifact"] = ArtifactRef(**artifact)
    return cls(**payload)
