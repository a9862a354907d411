"""Writing aggregate results to never-overwritten JSON snapshot files."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterator, Sequence

from .models import AggregateRecord

logger = logging.getLogger(__name__)

DEFAULT_BASENAME = "show_data.json"
MAX_NAME_ATTEMPTS = 10_000


class SnapshotWriter:
    """Serialises one run's records to a freshly named file."""

    def __init__(
        self,
        directory: str | os.PathLike[str] = ".",
        base_name: str = DEFAULT_BASENAME,
    ) -> None:
        self._directory = Path(directory)
        stem = base_name[:-5] if base_name.lower().endswith(".json") else base_name
        if not stem:
            raise ValueError("Snapshot base name must not be empty")
        self._stem = stem

    def candidate_paths(self) -> Iterator[Path]:
        """Yield ``show_data.json``, ``show_data-1.json``, ``show_data-2.json``..."""

        yield self._directory / f"{self._stem}.json"
        for counter in range(1, MAX_NAME_ATTEMPTS):
            yield self._directory / f"{self._stem}-{counter}.json"

    def write(self, records: Sequence[AggregateRecord]) -> Path:
        """Write ``records`` to a new file and return its path."""

        payload = [record.to_snapshot_entry() for record in records]
        self._directory.mkdir(parents=True, exist_ok=True)

        for path in self.candidate_paths():
            try:
                handle = path.open("x", encoding="utf-8")
            except FileExistsError:
                continue
            try:
                with handle:
                    json.dump(payload, handle, indent=2, ensure_ascii=False)
                    handle.write("\n")
            except (OSError, TypeError, ValueError):
                # Only ever remove the file this call created.
                path.unlink(missing_ok=True)
                raise
            logger.info("Extracted data saved to: %s", path)
            return path

        raise FileExistsError(
            f"No free snapshot name left for {self._stem} in {self._directory}"
        )
