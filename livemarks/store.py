from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

import httpx

from .log import get_logger
from .model import CollectionSpec

log = get_logger(__name__)


class StoreError(RuntimeError):
    """A datastore request failed (transport error or non-2xx response)."""

    def __init__(self, status: Optional[int], message: str):
        super().__init__(f"HTTP {status}: {message}" if status is not None else message)
        self.status = status
        self.message = message


class StoreClient:
    """Async client for a PostgREST-style datastore (``<base>/rest/v1/<table>``).

    Row-level security on the server scopes every request to the session's
    user; snapshot fetches also filter on ``user_id`` explicitly.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        *,
        timeout_s: float = 15,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ValueError("datastore URL is required (LIVEMARKS_STORE_URL)")
        root = base_url.rstrip("/")
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Accept": "application/json",
        }
        self._client = httpx.AsyncClient(
            base_url=f"{root}/rest/v1",
            headers=headers,
            timeout=httpx.Timeout(timeout_s, connect=timeout_s),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, cfg, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> "StoreClient":
        return cls(
            cfg.store_url,
            cfg.api_key,
            cfg.access_token or None,
            timeout_s=cfg.http_timeout_s,
            transport=transport,
        )

    async def __aenter__(self) -> "StoreClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        order: Optional[str] = None,
        descending: bool = False,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, str] = {"select": columns}
        if order:
            params["order"] = f"{order}.{'desc' if descending else 'asc'}"
        for k, v in (filters or {}).items():
            params[k] = f"eq.{v}"
        r = await self._request("GET", f"/{table}", params=params)
        return _json_rows(r)

    async def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        payload = [dict(x) for x in rows]
        if not payload:
            return []
        r = await self._request(
            "POST",
            f"/{table}",
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        return _json_rows(r)

    async def update(self, table: str, row_id: str, changes: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        r = await self._request(
            "PATCH",
            f"/{table}",
            params={"id": f"eq.{row_id}"},
            json=dict(changes),
            headers={"Prefer": "return=representation"},
        )
        rows = _json_rows(r)
        return rows[0] if rows else None

    async def delete(self, table: str, row_id: str) -> None:
        await self._request("DELETE", f"/{table}", params={"id": f"eq.{row_id}"})

    async def fetch_collection(self, spec: CollectionSpec, owner_id: str) -> List[Dict[str, Any]]:
        return await self.select(
            spec.table,
            order=spec.order_column,
            descending=spec.descending,
            filters={"user_id": owner_id},
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            r = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(None, f"{method} {path} failed: {e}") from e
        if r.status_code >= 400:
            msg = _error_message(r)
            log.debug("%s %s -> %d %s", method, path, r.status_code, msg)
            raise StoreError(r.status_code, msg)
        return r


def _json_rows(r: httpx.Response) -> List[Dict[str, Any]]:
    if not r.content:
        return []
    try:
        data = r.json()
    except ValueError as e:
        raise StoreError(r.status_code, "response is not JSON") from e
    if isinstance(data, dict):
        return [data]
    if not isinstance(data, list):
        raise StoreError(r.status_code, f"expected a JSON array, got {type(data).__name__}")
    return [x for x in data if isinstance(x, dict)]


def _error_message(r: httpx.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return (r.text or r.reason_phrase or "").strip()[:300]
    if isinstance(data, dict):
        for k in ("message", "error_description", "error", "hint"):
            v = data.get(k)
            if v:
                return str(v)
    return str(data)[:300]
