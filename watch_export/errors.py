"""Exception hierarchy for the watch-history exporter."""

from __future__ import annotations


class ExportError(Exception):
    """Base for all exporter failures."""


class WatermarkParseError(ExportError, ValueError):
    """The stored cutoff could not be parsed as a UTC timestamp."""


class RemoteFetchError(ExportError):
    """A call to the remote catalog service failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(RemoteFetchError):
    """Logging in to the remote service failed or credentials are missing."""
