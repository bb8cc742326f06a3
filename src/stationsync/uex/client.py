"""
Async client for the UEX Corp 2.0 REST API.

Every collection endpoint answers with the same envelope:

    {"status": "ok", "data": [...]}
    {"status": "error", "message": "requests_limit_reached"}

The rate-limit signal lives in the body and can arrive with HTTP 200, so the
body is inspected before the status code. Failures are translated into three
types that the sync engine's retry policy understands:

  RateLimited          upstream says we're over quota; never retried
  UpstreamUnavailable  5xx; retried with backoff
  UpstreamRejected     network error, 4xx, malformed body; never retried
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from stationsync.config import get_settings

logger = logging.getLogger(__name__)

RATE_LIMIT_MARKER = "requests_limit_reached"
USER_AGENT = "Station/1.0"

LOCATION_PATHS = {
    "star_systems": "/star_systems",
    "planets": "/planets",
    "moons": "/moons",
    "cities": "/cities",
    "space_stations": "/space_stations",
    "outposts": "/outposts",
    "poi": "/poi",
}


class UexError(Exception):
    """Base class for failures talking to the UEX API."""


class RateLimited(UexError):
    """Upstream reported that the request quota is exhausted."""


class UpstreamUnavailable(UexError):
    """Transient server-side failure (HTTP 5xx)."""


class UpstreamRejected(UexError):
    """Permanent failure: bad request, network error or unusable body."""


def utc_timestamp(value: datetime) -> str:
    """ISO-8601 with millisecond precision and a Z suffix; naive values are UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


@dataclass
class FetchFilters:
    """Query filters understood by the UEX collection endpoints."""

    modified_since: Optional[datetime] = None
    category_id: Optional[int] = None
    type: Optional[str] = None

    def to_params(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        if self.type:
            params["type"] = self.type
        if self.category_id is not None:
            params["id_category"] = str(self.category_id)
        if self.modified_since is not None:
            params["date_modified"] = utc_timestamp(self.modified_since)
        return params


class UexClient:
    """
    Thin async wrapper over httpx for the UEX endpoints we mirror.

    Use as an async context manager; one httpx.AsyncClient is shared by all
    calls made inside the block.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        *,
        _transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.uex_api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.uex_timeout_seconds
        self._transport = _transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "UexClient":
        kw: Dict[str, Any] = {
            "timeout": self.timeout,
            "headers": {"User-Agent": USER_AGENT},
        }
        if self._transport is not None:
            kw["transport"] = self._transport
        self._client = httpx.AsyncClient(**kw)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ─── Per-family helpers ──────────────────────────────────────────────────

    async def fetch_categories(
        self, filters: Optional[FetchFilters] = None
    ) -> List[Dict[str, Any]]:
        return await self.fetch("/categories", filters)

    async def fetch_companies(
        self, filters: Optional[FetchFilters] = None
    ) -> List[Dict[str, Any]]:
        return await self.fetch("/companies", filters)

    async def fetch_items_by_category(
        self, category_id: int, filters: Optional[FetchFilters] = None
    ) -> List[Dict[str, Any]]:
        """Fetch items for one category. UEX refuses unscoped item listings."""
        scoped = FetchFilters(
            modified_since=filters.modified_since if filters else None,
            category_id=category_id,
        )
        return await self.fetch("/items", scoped)

    async def fetch_locations(
        self, kind: str, filters: Optional[FetchFilters] = None
    ) -> List[Dict[str, Any]]:
        """Fetch one location kind, e.g. "planets" or "poi"."""
        try:
            path = LOCATION_PATHS[kind]
        except KeyError:
            raise ValueError(f"Unknown location kind: {kind}") from None
        return await self.fetch(path, filters)

    # ─── Core request ────────────────────────────────────────────────────────

    async def fetch(
        self, path: str, filters: Optional[FetchFilters] = None
    ) -> List[Dict[str, Any]]:
        """
        GET a collection endpoint and return its data list.

        Raises:
            RateLimited, UpstreamUnavailable, UpstreamRejected
        """
        if self._client is None:
            raise RuntimeError("UexClient used outside of 'async with'")

        params = filters.to_params() if filters else {}
        url = f"{self.base_url}{path}"
        logger.info("Fetching %s with filters %s", path, params)

        try:
            resp = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise UpstreamRejected(f"Request to {path} failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("status") == "error":
            message = str(body.get("message") or "")
            if RATE_LIMIT_MARKER in message:
                raise RateLimited("UEX API rate limit exceeded")

        if resp.status_code == 429:
            raise RateLimited("UEX API rate limit exceeded (HTTP 429)")
        if resp.status_code >= 500:
            raise UpstreamUnavailable(
                f"UEX server error {resp.status_code} on {path}"
            )
        if resp.status_code >= 400:
            raise UpstreamRejected(
                f"UEX rejected {path} with HTTP {resp.status_code}"
            )

        if not isinstance(body, dict):
            raise UpstreamRejected(f"Malformed response body from {path}")
        if body.get("status") == "error":
            raise UpstreamRejected(
                f"UEX error on {path}: {body.get('message') or 'unknown error'}"
            )

        data = body.get("data") or []
        if not isinstance(data, list):
            raise UpstreamRejected(f"Unexpected 'data' shape from {path}")

        logger.info("Fetched %d records from %s", len(data), path)
        return data
