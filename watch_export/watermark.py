"""Persistence of the cutoff timestamp that bounds new history entries."""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path

from .errors import WatermarkParseError
from .utils import format_utc_timestamp, parse_utc_timestamp

logger = logging.getLogger(__name__)


class WatermarkStore:
    """Reads and atomically replaces the single-line cutoff file.

    In lenient mode (the default) a malformed file is reported and treated as
    absent so the run processes all history. With ``strict=True`` the parse
    error is raised instead and the run fails before anything is fetched.
    """

    def __init__(self, path: str | os.PathLike[str], *, strict: bool = False) -> None:
        self._path = Path(path)
        self._strict = strict

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> datetime | None:
        """Return the stored UTC cutoff, or ``None`` when there is none."""

        try:
            contents = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning(
                "No cutoff date found at %s, processing all available history",
                self._path,
            )
            return None
        except UnicodeDecodeError as exc:
            return self._malformed(f"Invalid date format in {self._path}: not UTF-8 text", exc)

        value = contents.strip()
        if not value:
            logger.warning(
                "Cutoff file %s is empty, processing all available history",
                self._path,
            )
            return None

        try:
            cutoff = parse_utc_timestamp(value)
        except ValueError as exc:
            return self._malformed(f"Invalid date format in {self._path}: {value!r}", exc)

        logger.info("Previous cutoff date: %s", format_utc_timestamp(cutoff))
        return cutoff

    def _malformed(self, message: str, cause: Exception) -> None:
        error = WatermarkParseError(message)
        if self._strict:
            raise error from cause
        logger.warning("%s. Proceeding without a cutoff date.", error)
        return None

    def write(self, cutoff: datetime) -> None:
        """Replace the stored cutoff with ``cutoff``."""

        rendered = format_utc_timestamp(cutoff)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            tmp_path.write_text(rendered + "\n", encoding="utf-8")
            # Atomic replace so an interrupted write never truncates the cutoff
            os.replace(tmp_path, self._path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
        logger.info("Updated cutoff date to: %s", rendered)
