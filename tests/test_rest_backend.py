"""Tests for the hosted-backend client and the HTTP change stream, over httpx.MockTransport."""
import json

import httpx
import pytest

from sitedesk.backend.rest_backend import RestBackend, filter_params
from sitedesk.errors import NotFoundError, TransportError, WriteError
from sitedesk.realtime.transport import HttpStreamTransport


BASE = "https://api.example.test"


def _backend(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RestBackend(base_url=BASE, api_key="anon-key", access_token="user-token", client=client)


class TestFilterParams:
    def test_operators(self):
        params = filter_params(
            {"project_id": "p1", "log_date__gte": "2024-05-01", "id__in": ["a", "b"], "folder_id__is": None, "is_active": True}
        )
        assert params == {
            "project_id": "eq.p1",
            "log_date": "gte.2024-05-01",
            "id": "in.(a,b)",
            "folder_id": "is.null",
            "is_active": "eq.true",
        }

    def test_unknown_operator(self):
        with pytest.raises(WriteError):
            filter_params({"name__like": "A%"})


class TestRestBackend:
    @pytest.mark.asyncio
    async def test_select(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[{"id": "l1", "project_id": "p1"}])

        backend = _backend(handler)
        rows = await backend.fetch_daily_logs("p1")
        assert rows == [{"id": "l1", "project_id": "p1"}]
        request = seen[0]
        assert request.url.path == "/rest/v1/project_daily_logs"
        assert request.url.params["project_id"] == "eq.p1"
        assert request.url.params["order"] == "created_at.desc"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["authorization"] == "Bearer user-token"
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_insert_returns_representation(self):
        def handler(request):
            assert request.method == "POST"
            assert request.headers["prefer"] == "return=representation"
            body = json.loads(request.content)
            return httpx.Response(201, json=[{"id": "s1", **body[0]}])

        backend = _backend(handler)
        row = await backend.create_shift({"project_id": "p1", "name": "Prep"})
        assert row == {"id": "s1", "project_id": "p1", "name": "Prep"}

    @pytest.mark.asyncio
    async def test_update_missing_row(self):
        def handler(request):
            assert request.method == "PATCH"
            assert request.url.params["id"] == "eq.missing"
            return httpx.Response(200, json=[])

        with pytest.raises(NotFoundError):
            await _backend(handler).update_shift("missing", {"name": "x"})

    @pytest.mark.asyncio
    async def test_rejected_write(self):
        def handler(request):
            return httpx.Response(403, json={"message": "new row violates row-level security policy"})

        with pytest.raises(WriteError) as exc:
            await _backend(handler).create_daily_log({"project_id": "p1"})
        assert exc.value.status_code == 403
        assert "row-level security" in str(exc.value)

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(WriteError):
            await _backend(handler).fetch_projects()

    @pytest.mark.asyncio
    async def test_bulk_update(self):
        def handler(request):
            assert request.url.params["id"] == "in.(d1,d2)"
            return httpx.Response(200, json=[{"id": "d1"}, {"id": "d2"}])

        rows = await _backend(handler).update_documents(["d1", "d2"], {"status": "filed"})
        assert [r["id"] for r in rows] == ["d1", "d2"]

    @pytest.mark.asyncio
    async def test_reprocess_function(self):
        def handler(request):
            assert request.url.path == "/functions/v1/reprocess-documents"
            assert json.loads(request.content) == {"project_id": "p1"}
            return httpx.Response(200, json={"processed": 2, "filed": 1, "message": "ok"})

        result = await _backend(handler).reprocess_documents("p1")
        assert result["filed"] == 1

    def test_requires_configuration(self):
        with pytest.raises(ValueError):
            RestBackend(base_url="", api_key="k")


class TestHttpStreamTransport:
    @pytest.mark.asyncio
    async def test_reads_ndjson_lines(self):
        lines = [
            json.dumps({"type": "insert", "table": "project_daily_logs", "new": {"id": "l1", "project_id": "p1"}}),
            "",
            "not json",
            json.dumps({"type": "delete", "table": "project_daily_logs", "old": {"id": "l1", "project_id": "p1"}}),
        ]

        def handler(request):
            assert request.url.path == "/channels/project-p1"
            assert request.url.params["project_id"] == "eq.p1"
            return httpx.Response(200, content="\n".join(lines).encode())

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpStreamTransport(base_url="https://realtime.example.test", api_key="anon-key", client=client)
        sub = await transport.connect("project-p1", "p1", frozenset({"project_daily_logs"}))
        payloads = [p async for p in sub]
        await sub.aclose()
        assert [p["type"] for p in payloads] == ["insert", "delete"]

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        def handler(request):
            return httpx.Response(503)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpStreamTransport(base_url="https://realtime.example.test", client=client)
        with pytest.raises(TransportError):
            await transport.connect("project-p1", "p1", frozenset())
