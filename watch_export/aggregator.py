"""Grouping of watch history into per-series episode counts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterable, AsyncIterator, Literal, Protocol

from .errors import AuthenticationError, RemoteFetchError
from .models import AggregateRecord, SeriesMetadata, WatchEvent
from .utils import ensure_utc, format_utc_timestamp

logger = logging.getLogger(__name__)

StopReason = Literal["exhausted", "cutoff", "limit"]


class HistorySource(Protocol):
    """Lazily yields watch events, newest first, page by page."""

    def iter_history(self) -> AsyncIterator[WatchEvent]: ...


class MetadataSource(Protocol):
    """Resolves a series identifier into its catalog metadata."""

    async def fetch_series(self, series_id: str) -> SeriesMetadata: ...


@dataclass(slots=True)
class AggregationResult:
    """Outcome of consuming one history stream."""

    records: list[AggregateRecord]
    failed_series: dict[str, str] = field(default_factory=dict)
    events_consumed: int = 0
    stop_reason: StopReason = "exhausted"


class Aggregator:
    """Counts watched episodes per series, fetching metadata once per series.

    Events are consumed in stream order. With a ``cutoff`` every event at or
    before it is ignored; on a newest-first stream the first such event ends
    consumption. ``limit`` caps the number of distinct series that make it
    into the result.
    """

    def __init__(
        self,
        metadata_source: MetadataSource,
        *,
        cutoff: datetime | None = None,
        limit: int | None = None,
        newest_first: bool = True,
    ) -> None:
        if limit is not None and limit <= 0:
            raise ValueError("limit must be a positive integer or None")
        self._metadata = metadata_source
        self._cutoff = ensure_utc(cutoff) if cutoff is not None else None
        self._limit = limit
        self._newest_first = newest_first

    async def aggregate(self, events: AsyncIterable[WatchEvent]) -> AggregationResult:
        seen: dict[str, AggregateRecord] = {}
        failed: dict[str, str] = {}
        consumed = 0
        stop_reason: StopReason = "exhausted"

        iterator = aiter(events)
        try:
            async for event in iterator:
                consumed += 1
                if self._cutoff is not None and event.watched_at <= self._cutoff:
                    if self._newest_first:
                        logger.info(
                            "Stopping: entry watched at %s is not after cutoff %s",
                            format_utc_timestamp(event.watched_at),
                            format_utc_timestamp(self._cutoff),
                        )
                        stop_reason = "cutoff"
                        break
                    continue

                record = seen.get(event.series_id)
                if record is not None:
                    record.episodes_watched += 1
                    self._log_progress(record)
                    continue

                if event.series_id in failed:
                    continue

                if self._limit is not None and len(seen) >= self._limit:
                    logger.info("Stopping: reached limit of %s series", self._limit)
                    stop_reason = "limit"
                    break

                try:
                    metadata = await self._metadata.fetch_series(event.series_id)
                except AuthenticationError:
                    raise
                except RemoteFetchError as exc:
                    logger.warning(
                        "Skipping series %s for this run: %s", event.series_id, exc
                    )
                    failed[event.series_id] = str(exc)
                    continue

                record = AggregateRecord(series=metadata, episodes_watched=1)
                seen[event.series_id] = record
                self._log_progress(record)
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

        return AggregationResult(
            records=list(seen.values()),
            failed_series=failed,
            events_consumed=consumed,
            stop_reason=stop_reason,
        )

    @staticmethod
    def _log_progress(record: AggregateRecord) -> None:
        logger.info(
            "%s: %s episodes watched",
            record.series.title or "<untitled>",
            record.episodes_watched,
        )
