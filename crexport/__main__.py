"""Module executed when running ``python -m crexport``."""

from __future__ import annotations

import sys

from watch_export.main import main


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    sys.exit(main())
