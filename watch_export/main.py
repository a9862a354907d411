"""Command line entry point for the watch-history exporter."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from .config import Settings, get_settings
from .errors import ExportError
from .pipeline import RunSummary, run_export

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _non_negative_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if parsed < 0:
        raise argparse.ArgumentTypeError("limit must be zero (unlimited) or positive")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crexport",
        description=(
            "Export new Crunchyroll watch history as per-series episode counts "
            "and advance the stored cutoff date."
        ),
    )
    parser.add_argument(
        "--limit",
        type=_non_negative_int,
        help="Maximum number of distinct series to export (0 means unlimited)",
    )
    parser.add_argument("--output-dir", type=Path, help="Directory for snapshot files")
    parser.add_argument("--cutoff-file", type=Path, help="Path of the cutoff date file")
    parser.add_argument(
        "--strict-cutoff",
        action="store_true",
        default=None,
        help="Fail instead of processing all history when the cutoff file is malformed",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="Logging verbosity")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return ``settings`` with any command line flags applied on top."""

    update: dict[str, Any] = {}
    if args.limit is not None:
        update["history_limit"] = args.limit
    if args.output_dir is not None:
        update["output_dir"] = args.output_dir
    if args.cutoff_file is not None:
        update["cutoff_file"] = args.cutoff_file
    if args.strict_cutoff:
        update["strict_cutoff"] = True
    if args.log_level is not None:
        update["log_level"] = args.log_level
    if not update:
        return settings
    return settings.model_copy(update=update)


async def _run(settings: Settings) -> RunSummary:
    async with httpx.AsyncClient(
        base_url=str(settings.crunchyroll_api_url),
        timeout=httpx.Timeout(20.0, connect=10.0),
    ) as http_client:
        return await run_export(settings, http_client)


def main(argv: Sequence[str] | None = None) -> int:
    """Run one export and return the process exit status."""

    args = build_parser().parse_args(argv)
    try:
        settings = apply_overrides(get_settings(), args)
    except ValidationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        summary = asyncio.run(_run(settings))
    except ExportError as exc:
        logger.error("Export aborted: %s", exc)
        print(f"Export aborted, cutoff date left unchanged: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        logger.error("Could not write export output: %s", exc)
        print(f"Export aborted, cutoff date left unchanged: {exc}", file=sys.stderr)
        return 1

    print(summary.output_path)
    return 0
