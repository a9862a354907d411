"""Utilities for communicating with the Crunchyroll API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator
from urllib.parse import quote

import httpx

from ..config import Settings
from ..errors import AuthenticationError, RemoteFetchError
from ..models import SeriesMetadata, WatchEvent
from ..utils import parse_utc_timestamp

logger = logging.getLogger(__name__)

TOKEN_PATH = "/auth/v1/token"
ACCOUNT_PATH = "/accounts/v1/me"
HISTORY_PATH = "/content/v2/{account_id}/watch-history"
SERIES_PATH = "/content/v2/cms/series/{series_id}"


@dataclass(slots=True)
class HistoryPage:
    """Container for a page of history items and the reported total size."""

    items: list[Any]
    total: int = 0


class CrunchyrollClient:
    """Thin wrapper around the Crunchyroll HTTP API.

    Serves both as the history source (``iter_history``) and the metadata
    source (``fetch_series``) of an export run. Transport errors, 5xx and 429
    responses are retried with backoff; anything still failing surfaces as
    ``RemoteFetchError``.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client
        self._max_retries = settings.request_max_retries
        self._backoff = settings.request_retry_backoff
        self._access_token: str | None = None
        self._account_id: str | None = None
        if settings.has_static_token:
            self._access_token = settings.crunchyroll_access_token
            self._account_id = settings.crunchyroll_account_id

    @property
    def account_id(self) -> str | None:
        return self._account_id

    @property
    def _can_login(self) -> bool:
        return bool(
            self._settings.crunchyroll_username and self._settings.crunchyroll_password
        )

    def _headers(self, *, authorized: bool = True) -> dict[str, str]:
        headers = {"User-Agent": f"{self._settings.app_name} (crexport)"}
        if authorized and self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def authenticate(self) -> None:
        """Make sure a bearer token and account id are available."""

        if self._access_token and self._account_id:
            return
        await self._login()

    async def _login(self) -> None:
        settings = self._settings
        if not self._can_login:
            raise AuthenticationError(
                "Missing Crunchyroll credentials: set CR_USERNAME and CR_PASSWORD "
                "or CR_ACCESS_TOKEN and CR_ACCOUNT_ID"
            )
        if not settings.crunchyroll_client_id:
            raise AuthenticationError("CR_CLIENT_ID is required for password login")

        auth = httpx.BasicAuth(
            settings.crunchyroll_client_id, settings.crunchyroll_client_secret or ""
        )
        try:
            response = await self._request(
                "POST",
                TOKEN_PATH,
                data={
                    "grant_type": "password",
                    "username": settings.crunchyroll_username,
                    "password": settings.crunchyroll_password,
                    "scope": "offline_access",
                },
                auth=auth,
                authorized=False,
                description="access token",
            )
        except AuthenticationError:
            raise
        except RemoteFetchError as exc:
            raise AuthenticationError(
                f"Crunchyroll login failed: {exc}", status_code=exc.status_code
            ) from exc

        payload = self._json(response, "access token")
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise AuthenticationError("Token response did not include an access token")
        self._access_token = str(token)

        account_id = payload.get("account_id")
        if account_id:
            self._account_id = str(account_id)
        elif not self._account_id:
            self._account_id = await self._fetch_account_id()
        logger.info("Logged in to Crunchyroll as account %s", self._account_id)

    async def _fetch_account_id(self) -> str:
        response = await self._request("GET", ACCOUNT_PATH, description="account")
        payload = self._json(response, "account")
        account_id = payload.get("account_id") if isinstance(payload, dict) else None
        if not account_id:
            raise AuthenticationError("Account response did not include an account id")
        return str(account_id)

    async def iter_history(self) -> AsyncIterator[WatchEvent]:
        """Yield watch events page by page in the order the service returns them."""

        await self.authenticate()
        page_size = self._settings.history_page_size
        page = 1
        received = 0

        while True:
            batch = await self.fetch_history_page(page, page_size=page_size)
            for entry in batch.items:
                event = self._parse_history_entry(entry)
                if event is not None:
                    yield event

            received += len(batch.items)
            if len(batch.items) < page_size:
                break
            if batch.total and received >= batch.total:
                break
            page += 1

    async def fetch_history_page(self, page: int, *, page_size: int) -> HistoryPage:
        """Fetch a single page of the account's watch history."""

        await self.authenticate()
        description = f"watch history page {page}"
        response = await self._request(
            "GET",
            HISTORY_PATH.format(account_id=quote(str(self._account_id), safe="")),
            params={
                "page": page,
                "page_size": page_size,
                "locale": self._settings.crunchyroll_locale,
            },
            description=description,
        )
        payload = self._json(response, description)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise RemoteFetchError(
                f"Unexpected Crunchyroll response structure for {description}"
            )
        logger.debug("Fetched %s (%s entries)", description, len(data))
        return HistoryPage(items=data, total=self._coerce_int(payload.get("total")))

    async def fetch_series(self, series_id: str) -> SeriesMetadata:
        """Return catalog metadata for ``series_id``."""

        await self.authenticate()
        description = f"series {series_id}"
        response = await self._request(
            "GET",
            SERIES_PATH.format(series_id=quote(series_id, safe="")),
            params={"locale": self._settings.crunchyroll_locale},
            description=description,
        )
        payload = self._json(response, description)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise RemoteFetchError(
                f"Series {series_id} no longer resolves",
                status_code=response.status_code,
            )
        return SeriesMetadata.from_api_payload(data[0])

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        auth: httpx.Auth | None = None,
        authorized: bool = True,
        description: str,
    ) -> httpx.Response:
        attempt = 0
        relogged = False
        while True:
            try:
                response = await self._client.request(
                    method,
                    url,
                    headers=self._headers(authorized=authorized),
                    params=params,
                    data=data,
                    auth=auth,
                )
            except httpx.HTTPError as exc:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = self._backoff_delay(attempt)
                    logger.info(
                        "Transient error talking to Crunchyroll (%s). Retrying %s in %.1fs",
                        exc.__class__.__name__,
                        description,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.warning("Failed to fetch %s: %s", description, exc)
                raise RemoteFetchError(f"Failed to fetch {description}: {exc}") from exc

            status = response.status_code
            if status == 401 and authorized:
                if not relogged and self._can_login:
                    relogged = True
                    logger.info("Crunchyroll session rejected, logging in again")
                    self._access_token = None
                    await self._login()
                    continue
                raise AuthenticationError(
                    f"Crunchyroll rejected the credentials for {description}",
                    status_code=status,
                )

            if status == 429 or 500 <= status < 600:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = self._backoff_delay(attempt)
                    if status == 429:
                        backoff = self._retry_after(response, default=backoff)
                    logger.info(
                        "Crunchyroll returned HTTP %s for %s. Retrying in %.1fs",
                        status,
                        description,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.warning(
                    "Failed to fetch %s after %s attempts: HTTP %s",
                    description,
                    attempt,
                    status,
                )
                raise RemoteFetchError(
                    f"Failed to fetch {description}: HTTP {status}", status_code=status
                )

            if status >= 400:
                raise RemoteFetchError(
                    f"Failed to fetch {description}: HTTP {status} {response.text[:200]}",
                    status_code=status,
                )
            return response

    def _backoff_delay(self, attempt: int) -> float:
        return (min(2 ** (attempt - 1), 5) + (0.1 * attempt)) * self._backoff

    @staticmethod
    def _retry_after(response: httpx.Response, *, default: float) -> float:
        header_value = response.headers.get("retry-after")
        if not header_value:
            return default
        try:
            return max(float(header_value), 0.0)
        except (TypeError, ValueError):
            return default

    @staticmethod
    def _json(response: httpx.Response, description: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteFetchError(
                f"Unexpected non-JSON Crunchyroll response for {description}",
                status_code=response.status_code,
            ) from exc

    @staticmethod
    def _coerce_int(value: Any) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0

    @staticmethod
    def _parse_history_entry(entry: Any) -> WatchEvent | None:
        """Map a raw watch-history entry to a ``WatchEvent``.

        Entries that do not belong to a series (movies, music) are skipped.
        """

        if not isinstance(entry, dict):
            return None
        panel = entry.get("panel") if isinstance(entry.get("panel"), dict) else {}

        series_id: str | None = None
        if entry.get("parent_type") == "series" and entry.get("parent_id"):
            series_id = str(entry["parent_id"])
        else:
            episode_metadata = panel.get("episode_metadata")
            if isinstance(episode_metadata, dict) and episode_metadata.get("series_id"):
                series_id = str(episode_metadata["series_id"])
        if not series_id:
            logger.debug("Skipping history entry %s without a series", entry.get("id"))
            return None

        date_played = entry.get("date_played")
        if not isinstance(date_played, str):
            logger.debug("Skipping history entry %s without a play date", entry.get("id"))
            return None
        try:
            watched_at = parse_utc_timestamp(date_played)
        except ValueError:
            logger.debug(
                "Skipping history entry %s with unparseable date %r",
                entry.get("id"),
                date_played,
            )
            return None

        episode_id = entry.get("id")
        title = panel.get("title")
        return WatchEvent(
            series_id=series_id,
            watched_at=watched_at,
            episode_id=str(episode_id) if episode_id else None,
            title=str(title) if title else None,
        )
