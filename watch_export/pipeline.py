"""Orchestration of a single incremental export run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import httpx

from .aggregator import Aggregator, HistorySource, MetadataSource, StopReason
from .config import Settings
from .models import AggregateRecord
from .services.crunchyroll import CrunchyrollClient
from .snapshot import SnapshotWriter
from .utils import format_utc_timestamp
from .watermark import WatermarkStore

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class RunSummary:
    """What a completed run produced."""

    output_path: Path
    records: list[AggregateRecord]
    previous_cutoff: datetime | None
    new_cutoff: datetime
    failed_series: dict[str, str] = field(default_factory=dict)
    stop_reason: StopReason = "exhausted"


class ExportPipeline:
    """Runs read cutoff, aggregate, write snapshot, advance cutoff, in that order.

    The cutoff is only advanced after the snapshot is on disk, so any failure
    earlier in the run leaves the next run to reprocess the same history.
    """

    def __init__(
        self,
        watermark_store: WatermarkStore,
        history_source: HistorySource,
        metadata_source: MetadataSource,
        snapshot_writer: SnapshotWriter,
        *,
        limit: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._watermarks = watermark_store
        self._history = history_source
        self._metadata = metadata_source
        self._writer = snapshot_writer
        self._limit = limit
        self._clock = clock

    async def run(self) -> RunSummary:
        started_at = self._clock()
        logger.info("Export started at: %s", format_utc_timestamp(started_at))

        cutoff = self._watermarks.read()
        aggregator = Aggregator(self._metadata, cutoff=cutoff, limit=self._limit)
        result = await aggregator.aggregate(self._history.iter_history())

        if result.failed_series:
            logger.warning(
                "%s series could not be resolved and were left out: %s",
                len(result.failed_series),
                ", ".join(result.failed_series),
            )

        output_path = self._writer.write(result.records)
        self._watermarks.write(started_at)
        logger.info(
            "Finished processing %s series. Check %s for results.",
            len(result.records),
            output_path,
        )

        return RunSummary(
            output_path=output_path,
            records=result.records,
            previous_cutoff=cutoff,
            new_cutoff=started_at,
            failed_series=result.failed_series,
            stop_reason=result.stop_reason,
        )


async def run_export(settings: Settings, http_client: httpx.AsyncClient) -> RunSummary:
    """Build the production pipeline from ``settings`` and run it once."""

    client = CrunchyrollClient(settings, http_client)
    pipeline = ExportPipeline(
        WatermarkStore(settings.cutoff_file, strict=settings.strict_cutoff),
        client,
        client,
        SnapshotWriter(settings.output_dir, settings.output_basename),
        limit=settings.resolved_history_limit,
    )
    return await pipeline.run()
