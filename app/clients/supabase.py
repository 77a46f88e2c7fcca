from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

from app.clients.base import Row, RowQuery
from app.services.exceptions import StoreConflictError, StoreUnavailableError

logger = logging.getLogger(__name__)

_CONTENT_RANGE = re.compile(r"^(?:\d+-\d+|\*)/(\d+|\*)$")


class SupabaseRestClient:
    """Async row-store client speaking the Supabase (PostgREST) REST dialect."""

    def __init__(
        self,
        base_url: str,
        *,
        service_key: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = str(base_url).rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if service_key:
            self._headers.update({
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
            })
        self._client: Optional[httpx.AsyncClient] = None

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self._base_url}/rest/v1",
            timeout=self._timeout,
            headers=self._headers,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Dict[str, Any] | None = None,
        payload: Any = None,
        prefer: str | None = None,
        accept: Tuple[int, ...] = (),
    ) -> httpx.Response:
        client = await self._ensure_client()
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await client.request(
                method, f"/{table}", params=params, json=payload, headers=headers
            )
            if response.status_code in accept:
                return response
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 409:
                logger.info("Store rejected %s on %s with a conflict", method, table)
                raise StoreConflictError(
                    "Row conflicts with an existing row", cause=exc
                ) from exc
            logger.exception("Store returned error %s for %s %s", status, method, table)
            raise StoreUnavailableError(
                "Store returned an error response",
                status_code=status,
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            logger.exception("Unable to reach store: %s", exc)
            raise StoreUnavailableError(
                "Unable to reach store", status_code=None, cause=exc
            ) from exc

    async def insert(self, table: str, row: Row) -> Row:
        response = await self._request(
            "POST", table, payload=row, prefer="return=representation"
        )
        rows = response.json()
        return rows[0] if isinstance(rows, list) else rows

    async def select(self, table: str, query: RowQuery) -> Tuple[List[Row], int]:
        params = build_select_params(query)
        # PostgREST answers 416 when the offset lies past the last row.
        response = await self._request(
            "GET", table, params=params, prefer="count=exact", accept=(416,)
        )
        if response.status_code == 416:
            return [], parse_total(response.headers.get("Content-Range"), fallback=0)
        rows = response.json()
        total = parse_total(response.headers.get("Content-Range"), fallback=len(rows))
        return rows, total

    async def update(self, table: str, row_id: int, patch: Row) -> Optional[Row]:
        response = await self._request(
            "PATCH",
            table,
            params={"id": f"eq.{row_id}"},
            payload=patch,
            prefer="return=representation",
        )
        rows = response.json()
        return rows[0] if rows else None

    async def delete(self, table: str, row_id: int) -> bool:
        response = await self._request(
            "DELETE",
            table,
            params={"id": f"eq.{row_id}", "select": "id"},
            prefer="return=representation",
        )
        return bool(response.json())


def build_select_params(query: RowQuery) -> List[Tuple[str, str]]:
    params: List[Tuple[str, str]] = []
    if query.columns is not None:
        params.append(("select", ",".join(query.columns)))
    for column, value in query.equals.items():
        params.append((column, f"eq.{value}"))
    if query.created_since is not None:
        params.append(("created_at", f"gte.{query.created_since.isoformat()}"))
    if query.search and query.search_columns:
        pattern = _quote(f"*{query.search}*")
        clauses = ",".join(f"{column}.ilike.{pattern}" for column in query.search_columns)
        params.append(("or", f"({clauses})"))
    if query.order:
        params.append((
            "order",
            ",".join(
                f"{key.column}.{'desc' if key.descending else 'asc'}" for key in query.order
            ),
        ))
    if query.offset:
        params.append(("offset", str(query.offset)))
    if query.limit is not None:
        params.append(("limit", str(query.limit)))
    return params


def parse_total(content_range: str | None, *, fallback: int) -> int:
    # PostgREST reports "0-19/42", or "*/0" for an empty range.
    if not content_range:
        return fallback
    match = _CONTENT_RANGE.match(content_range.strip())
    if not match or match.group(1) == "*":
        return fallback
    return int(match.group(1))


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
