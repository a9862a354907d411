"""Compatibility shim exposing the exporter entry points."""

from __future__ import annotations

from watch_export.main import main
from watch_export.pipeline import run_export

__all__ = ["main", "run_export"]
