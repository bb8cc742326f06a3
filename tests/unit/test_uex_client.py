"""Tests for UexClient against httpx.MockTransport. No real network calls."""
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from stationsync.uex.client import (
    USER_AGENT,
    FetchFilters,
    RateLimited,
    UexClient,
    UpstreamRejected,
    UpstreamUnavailable,
)

BASE = "https://uex.test/api/2.0"


def _client(handler) -> UexClient:
    return UexClient(BASE, 5.0, _transport=httpx.MockTransport(handler))


def _ok(data):
    return httpx.Response(200, json={"status": "ok", "data": data})


class TestFetchFilters:
    def test_empty(self):
        assert FetchFilters().to_params() == {}

    def test_all_filters(self):
        params = FetchFilters(
            modified_since=datetime(2025, 3, 1, 2, 0),
            category_id=7,
            type="item",
        ).to_params()
        assert params == {
            "type": "item",
            "id_category": "7",
            "date_modified": "2025-03-01T02:00:00.000Z",
        }

    def test_aware_watermark_is_sent_as_utc(self):
        since = datetime(2025, 3, 1, 4, 30, tzinfo=timezone(timedelta(hours=2)))
        params = FetchFilters(modified_since=since).to_params()
        assert params["date_modified"] == "2025-03-01T02:30:00.000Z"


class TestFetch:
    @pytest.mark.asyncio
    async def test_returns_data_list(self):
        async with _client(lambda req: _ok([{"id": 1}, {"id": 2}])) as client:
            data = await client.fetch_categories()
        assert data == [{"id": 1}, {"id": 2}]

    @pytest.mark.asyncio
    async def test_sends_path_params_and_user_agent(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(request)
            return _ok([])

        async with _client(handler) as client:
            await client.fetch_categories(FetchFilters(type="item"))

        request = seen[0]
        assert request.url.path == "/api/2.0/categories"
        assert request.url.params["type"] == "item"
        assert request.headers["User-Agent"] == USER_AGENT

    @pytest.mark.asyncio
    async def test_items_are_scoped_to_category(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(request)
            return _ok([])

        since = datetime(2025, 2, 27, 2, 0)
        async with _client(handler) as client:
            await client.fetch_items_by_category(12, FetchFilters(modified_since=since))

        params = seen[0].url.params
        assert seen[0].url.path.endswith("/items")
        assert params["id_category"] == "12"
        assert params["date_modified"] == "2025-02-27T02:00:00.000Z"

    @pytest.mark.asyncio
    async def test_location_paths(self):
        paths = []

        def handler(request: httpx.Request):
            paths.append(request.url.path)
            return _ok([])

        async with _client(handler) as client:
            await client.fetch_locations("space_stations")
            await client.fetch_locations("poi")

        assert paths == ["/api/2.0/space_stations", "/api/2.0/poi"]

    @pytest.mark.asyncio
    async def test_unknown_location_kind(self):
        async with _client(lambda req: _ok([])) as client:
            with pytest.raises(ValueError, match="Unknown location kind"):
                await client.fetch_locations("asteroids")

    @pytest.mark.asyncio
    async def test_null_data_is_empty(self):
        async with _client(
            lambda req: httpx.Response(200, json={"status": "ok", "data": None})
        ) as client:
            assert await client.fetch_companies() == []

    @pytest.mark.asyncio
    async def test_outside_context_manager_raises(self):
        client = _client(lambda req: _ok([]))
        with pytest.raises(RuntimeError):
            await client.fetch_categories()


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_rate_limit_marker_with_http_200(self):
        body = {"status": "error", "message": "requests_limit_reached"}
        async with _client(lambda req: httpx.Response(200, json=body)) as client:
            with pytest.raises(RateLimited):
                await client.fetch_categories()

    @pytest.mark.asyncio
    async def test_rate_limit_marker_wins_over_5xx(self):
        body = {"status": "error", "message": "requests_limit_reached"}
        async with _client(lambda req: httpx.Response(503, json=body)) as client:
            with pytest.raises(RateLimited):
                await client.fetch_categories()

    @pytest.mark.asyncio
    async def test_http_429(self):
        async with _client(lambda req: httpx.Response(429, text="slow down")) as client:
            with pytest.raises(RateLimited):
                await client.fetch_categories()

    @pytest.mark.asyncio
    async def test_5xx_is_unavailable(self):
        async with _client(lambda req: httpx.Response(502, text="bad gateway")) as client:
            with pytest.raises(UpstreamUnavailable):
                await client.fetch_categories()

    @pytest.mark.asyncio
    async def test_4xx_is_rejected(self):
        async with _client(lambda req: httpx.Response(404, json={})) as client:
            with pytest.raises(UpstreamRejected):
                await client.fetch_categories()

    @pytest.mark.asyncio
    async def test_error_status_without_marker_is_rejected(self):
        body = {"status": "error", "message": "missing_parameter"}
        async with _client(lambda req: httpx.Response(200, json=body)) as client:
            with pytest.raises(UpstreamRejected, match="missing_parameter"):
                await client.fetch_categories()

    @pytest.mark.asyncio
    async def test_non_json_body_is_rejected(self):
        async with _client(lambda req: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(UpstreamRejected):
                await client.fetch_categories()

    @pytest.mark.asyncio
    async def test_data_not_a_list_is_rejected(self):
        body = {"status": "ok", "data": {"id": 1}}
        async with _client(lambda req: httpx.Response(200, json=body)) as client:
            with pytest.raises(UpstreamRejected):
                await client.fetch_categories()

    @pytest.mark.asyncio
    async def test_network_error_is_rejected(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(UpstreamRejected):
                await client.fetch_categories()
