"""
Hosted data API client (PostgREST conventions).

Tables live under ``/rest/v1/<table>`` and server-side functions under
``/functions/v1/<name>``. Writes ask for ``return=representation`` so the
canonical row comes back in the response body.
"""
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import settings
from ..errors import NotFoundError, WriteError
from .provider import DataBackend, Row


logger = structlog.get_logger(__name__)


def _literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def filter_params(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for key, value in (filters or {}).items():
        name, _, op = key.partition("__")
        if op == "":
            params[name] = f"eq.{_literal(value)}"
        elif op in ("gte", "lte"):
            params[name] = f"{op}.{_literal(value)}"
        elif op == "in":
            params[name] = "in.(" + ",".join(_literal(v) for v in value) + ")"
        elif op == "is":
            params[name] = f"is.{_literal(value)}"
        else:
            raise WriteError("select", f"Unsupported filter operator {op}")
    return params


class RestBackend(DataBackend):
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.backend_url or "").rstrip("/")
        self.api_key = api_key or settings.backend_api_key
        if not self.base_url:
            raise ValueError("Backend URL is required")
        if not self.api_key:
            raise ValueError("Backend API key is required")
        self.access_token = access_token or self.api_key
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout or settings.backend_timeout)

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(self, action: str, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("backend.request_failed", action=action, url=url, error=str(e))
            raise WriteError(action, str(e)) from e
        if response.status_code >= 400:
            try:
                body = response.json()
                message = body.get("message") or body.get("error") or response.text
            except ValueError:
                message = response.text
            logger.warning("backend.request_rejected", action=action, status=response.status_code, message=message)
            raise WriteError(action, message or response.reason_phrase, status_code=response.status_code)
        if not response.content:
            return None
        return response.json()

    async def select(self, table, filters=None, order_by=None, descending=False) -> List[Row]:
        params = {"select": "*", **filter_params(filters)}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        rows = await self._request("select", "GET", f"rest/v1/{table}", params=params, headers=self._headers())
        return rows or []

    async def insert(self, table: str, row: Row) -> Row:
        rows = await self.insert_many(table, [row])
        if not rows:
            raise WriteError("insert", f"{table} insert returned no row")
        return rows[0]

    async def insert_many(self, table: str, rows: List[Row]) -> List[Row]:
        return await self._request(
            "insert",
            "POST",
            f"rest/v1/{table}",
            json=rows,
            headers=self._headers("return=representation"),
        ) or []

    async def update(self, table: str, row_id: str, changes: Row) -> Row:
        rows = await self._request(
            "update",
            "PATCH",
            f"rest/v1/{table}",
            params={"id": f"eq.{row_id}"},
            json=changes,
            headers=self._headers("return=representation"),
        )
        if not rows:
            raise NotFoundError("update", table, row_id)
        return rows[0]

    async def update_many(self, table: str, row_ids: List[str], changes: Row) -> List[Row]:
        if not row_ids:
            return []
        return await self._request(
            "update",
            "PATCH",
            f"rest/v1/{table}",
            params=filter_params({"id__in": row_ids}),
            json=changes,
            headers=self._headers("return=representation"),
        ) or []

    async def delete(self, table: str, row_id: str) -> Row:
        rows = await self._request(
            "delete",
            "DELETE",
            f"rest/v1/{table}",
            params={"id": f"eq.{row_id}"},
            headers=self._headers("return=representation"),
        )
        if not rows:
            raise NotFoundError("delete", table, row_id)
        return rows[0]

    async def invoke(self, function: str, body: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._request(function, "POST", f"functions/v1/{function}", json=body, headers=self._headers())
        return result or {}

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
