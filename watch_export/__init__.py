"""Incremental Crunchyroll watch-history exporter."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["ExportPipeline", "run_export"]


def __getattr__(name: str) -> Any:
    if name in __all__:
        module = import_module("watch_export.pipeline")
        return getattr(module, name)
    raise AttributeError(f"module 'watch_export' has no attribute {name}")
