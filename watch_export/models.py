"""Pydantic models describing history events and snapshot payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import ensure_utc

UNKNOWN_PUBLISHER = "Unknown"
NO_IMAGE = "No image available"
POSTER_TALL_INDEX = 2


class WatchEvent(BaseModel):
    """A single entry of the user's watch history."""

    series_id: str = Field(min_length=1)
    watched_at: datetime
    episode_id: str | None = None
    title: str | None = None

    @field_validator("watched_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class SeriesMetadata(BaseModel):
    """Descriptive record for a series as written to the snapshot."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    slug: str = ""
    description: str = ""
    extended_description: str = Field(default="", alias="extendedDescription")
    episode_count: int = Field(default=0, alias="episodes")
    season_count: int = Field(default=0, alias="seasons")
    publisher: str = UNKNOWN_PUBLISHER
    keywords: list[str] = Field(default_factory=list)
    poster_tall: str = Field(default=NO_IMAGE, alias="posterTall")

    @classmethod
    def from_api_payload(cls, data: dict[str, Any]) -> "SeriesMetadata":
        """Build metadata from a catalog ``series`` object, applying fallbacks."""

        publisher = data.get("content_provider")
        keywords = data.get("keywords")
        if not isinstance(keywords, list):
            keywords = []
        return cls(
            title=str(data.get("title") or ""),
            slug=str(data.get("slug_title") or data.get("slug") or ""),
            description=str(data.get("description") or ""),
            extended_description=str(data.get("extended_description") or ""),
            episode_count=_as_int(data.get("episode_count")),
            season_count=_as_int(data.get("season_count")),
            publisher=str(publisher) if publisher else UNKNOWN_PUBLISHER,
            keywords=[str(keyword) for keyword in keywords if keyword],
            poster_tall=cls._select_poster_tall(data.get("images")),
        )

    @staticmethod
    def _select_poster_tall(images: Any) -> str:
        if not isinstance(images, dict):
            return NO_IMAGE
        variants = images.get("poster_tall") or []
        if not isinstance(variants, list):
            return NO_IMAGE
        # The catalog nests variants one level deep: [[{...}, {...}]].
        if variants and isinstance(variants[0], list):
            variants = variants[0]
        if len(variants) <= POSTER_TALL_INDEX:
            return NO_IMAGE
        chosen = variants[POSTER_TALL_INDEX]
        source = chosen.get("source") if isinstance(chosen, dict) else None
        if isinstance(source, str) and source:
            return source
        return NO_IMAGE


class AggregateRecord(BaseModel):
    """One snapshot entry: a series and how many of its episodes were watched."""

    model_config = ConfigDict(populate_by_name=True)

    series: SeriesMetadata
    episodes_watched: int = Field(default=0, ge=0, alias="episodesWatched")

    def to_snapshot_entry(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0
