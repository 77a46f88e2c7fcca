"""HTTP client for the review board, with explicit ownership token storage.

The browser client of the board kept issued tokens in local storage, keyed
by review id. Here that storage is a :class:`TokenStore` handed to the
client, so each caller (and each test) owns its tokens.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import httpx

from app.schemas.review import (
    ReviewCreateRequest,
    ReviewCreateResponse,
    ReviewListResponse,
    ReviewPublic,
    ReviewSort,
    ReviewUpdateRequest,
)
from app.services.exceptions import (
    ForbiddenError,
    MissingCredentialError,
    ReviewNotFoundError,
    ReviewValidationError,
    ServiceError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Ownership-Token"


class TokenStore(Protocol):
    def get(self, review_id: int) -> Optional[str]:
        ...

    def put(self, review_id: int, token: str) -> None:
        ...

    def discard(self, review_id: int) -> None:
        ...


class InMemoryTokenStore:
    def __init__(self) -> None:
        self._tokens: Dict[int, str] = {}

    def get(self, review_id: int) -> Optional[str]:
        return self._tokens.get(review_id)

    def put(self, review_id: int, token: str) -> None:
        self._tokens[review_id] = token

    def discard(self, review_id: int) -> None:
        self._tokens.pop(review_id, None)


class JsonFileTokenStore:
    """Tokens persisted as a JSON object ``{"<review id>": "<token>"}``."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        return json.loads(self._path.read_text(encoding="utf-8") or "{}")

    def _save(self, tokens: Dict[str, str]) -> None:
        # Replaced atomically through a temp file in the same directory.
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(tokens, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, review_id: int) -> Optional[str]:
        return self._load().get(str(review_id))

    def put(self, review_id: int, token: str) -> None:
        tokens = self._load()
        tokens[str(review_id)] = token
        self._save(tokens)

    def discard(self, review_id: int) -> None:
        tokens = self._load()
        if tokens.pop(str(review_id), None) is not None:
            self._save(tokens)


class ReviewBoardClient:
    """Async client for the ``/reviews`` endpoints."""

    def __init__(
        self,
        base_url: str,
        tokens: TokenStore,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._tokens = tokens
        self._client = httpx.AsyncClient(
            base_url=str(base_url).rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ReviewBoardClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def owns(self, review_id: int) -> bool:
        return self._tokens.get(review_id) is not None

    async def create(self, request: ReviewCreateRequest) -> ReviewCreateResponse:
        data = await self._send("POST", "/reviews", json=request.model_dump())
        result = ReviewCreateResponse.model_validate(data)
        if result.ownership_token:
            self._tokens.put(result.id, result.ownership_token)
        return result

    async def list(
        self,
        *,
        query: str | None = None,
        sort: ReviewSort = ReviewSort.NEWEST,
        page: int = 1,
        limit: int | None = None,
    ) -> ReviewListResponse:
        params: Dict[str, Any] = {"sort": sort.value, "page": page}
        if query:
            params["query"] = query
        if limit is not None:
            params["limit"] = limit
        data = await self._send("GET", "/reviews", params=params)
        return ReviewListResponse.model_validate(data)

    async def get(self, review_id: int) -> ReviewPublic:
        data = await self._send("GET", f"/reviews/{review_id}", review_id=review_id)
        return ReviewPublic.model_validate(data)

    async def update(self, review_id: int, patch: ReviewUpdateRequest) -> ReviewPublic:
        token = self._require_token(review_id)
        data = await self._send(
            "PATCH",
            f"/reviews/{review_id}",
            json=patch.changes(),
            headers={TOKEN_HEADER: token},
            review_id=review_id,
        )
        return ReviewPublic.model_validate(data["review"])

    async def delete(self, review_id: int) -> None:
        token = self._require_token(review_id)
        await self._send(
            "DELETE",
            f"/reviews/{review_id}",
            headers={TOKEN_HEADER: token},
            review_id=review_id,
        )
        self._tokens.discard(review_id)

    def _require_token(self, review_id: int) -> str:
        token = self._tokens.get(review_id)
        if not token:
            raise MissingCredentialError(review_id, "No ownership token stored for this review")
        return token

    async def _send(
        self,
        method: str,
        path: str,
        *,
        review_id: int | None = None,
        **kwargs: Any,
    ) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            logger.exception("Unable to reach review board: %s", exc)
            raise StoreUnavailableError("Unable to reach review board", cause=exc) from exc

        if response.is_success:
            return response.json()

        detail = _detail(response)
        status = response.status_code
        if status == 404 and review_id is not None:
            raise ReviewNotFoundError(review_id, detail)
        if status == 401 and review_id is not None:
            raise MissingCredentialError(review_id, detail)
        if status == 403 and review_id is not None:
            raise ForbiddenError(review_id, detail)
        if status == 422:
            raise ReviewValidationError(detail)
        if status >= 500:
            raise StoreUnavailableError(detail, status_code=status)
        raise ServiceError(f"Review board returned {status}: {detail}")


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    detail = body.get("detail") if isinstance(body, dict) else None
    return detail if isinstance(detail, str) else json.dumps(detail if detail is not None else body)
