from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Tuple

from app.clients.base import Row, RowQuery, RowStore, SortKey
from app.schemas.review import (
    ReviewCreateRequest,
    ReviewCreateResponse,
    ReviewListRequest,
    ReviewListResponse,
    ReviewPublic,
    ReviewSort,
    ReviewUpdateRequest,
)
from app.services.duplicates import DuplicateGuard, dedupe_bucket
from app.services.exceptions import (
    ReviewNotFoundError,
    ReviewValidationError,
    ServiceError,
    StoreConflictError,
)
from app.services.ownership import TOKEN_COLUMN, OwnershipVerifier, issue_token

logger = logging.getLogger(__name__)

PUBLIC_COLUMNS: Tuple[str, ...] = ("id", "author", "product", "rating", "content", "created_at")
SEARCH_COLUMNS: Tuple[str, ...] = ("author", "product", "content")

_NEWEST_FIRST = (SortKey("created_at", descending=True), SortKey("id", descending=True))

SORT_ORDERS: Dict[ReviewSort, Tuple[SortKey, ...]] = {
    ReviewSort.NEWEST: _NEWEST_FIRST,
    ReviewSort.OLDEST: (SortKey("created_at"), SortKey("id")),
    ReviewSort.RATING_ASC: (SortKey("rating"),) + _NEWEST_FIRST,
    ReviewSort.RATING_DESC: (SortKey("rating", descending=True),) + _NEWEST_FIRST,
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReviewService:
    def __init__(
        self,
        store: RowStore,
        *,
        table: str = "reviews",
        duplicate_window_seconds: float = 7.0,
        default_limit: int = 20,
        max_limit: int = 50,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._table = table
        self._default_limit = min(default_limit, max_limit)
        self._max_limit = max_limit
        self._clock = clock
        self._guard = DuplicateGuard(
            store,
            table=table,
            window_seconds=duplicate_window_seconds,
            columns=PUBLIC_COLUMNS,
        )
        self._verifier = OwnershipVerifier(store, table=table)

    @property
    def verifier(self) -> OwnershipVerifier:
        return self._verifier

    async def create(self, request: ReviewCreateRequest) -> ReviewCreateResponse:
        logger.info("Submitting review for product %r", request.product)
        candidate = request.model_dump()
        now = self._clock()

        admission = await self._guard.should_admit(candidate, now)
        if not admission.admitted:
            return _absorbed(admission.duplicate_of)

        token = issue_token()
        row = {
            **candidate,
            TOKEN_COLUMN: token,
            "dedupe_bucket": dedupe_bucket(now, self._guard.window_seconds),
        }
        try:
            created = await self._store.insert(self._table, row)
        except StoreConflictError:
            # A concurrent identical submission won the insert.
            admission = await self._guard.should_admit(candidate, self._clock())
            if admission.admitted:
                raise
            return _absorbed(admission.duplicate_of)
        except ServiceError:
            raise
        except Exception as exc:  # pragma: no cover - defensive
            logger.exception("Unexpected error while creating review")
            raise ServiceError("Failed to create review", cause=exc)

        logger.info("Created review %s", created["id"])
        return ReviewCreateResponse(id=created["id"], ownership_token=token)

    async def list(self, request: ReviewListRequest) -> ReviewListResponse:
        limit = min(request.limit or self._default_limit, self._max_limit)
        offset = (request.page - 1) * limit
        search = (request.query or "").strip() or None
        logger.info(
            "Listing reviews page=%s limit=%s sort=%s query=%r",
            request.page, limit, request.sort.value, search,
        )

        rows, total = await self._store.select(
            self._table,
            RowQuery(
                search=search,
                search_columns=SEARCH_COLUMNS if search else (),
                order=SORT_ORDERS[request.sort],
                offset=offset,
                limit=limit,
                columns=PUBLIC_COLUMNS,
            ),
        )
        items = [ReviewPublic.model_validate(row) for row in rows]
        return ReviewListResponse(
            items=items,
            page=request.page,
            limit=limit,
            total=total,
            has_more=offset + len(items) < total,
        )

    async def get(self, review_id: int) -> ReviewPublic:
        rows, _ = await self._store.select(
            self._table,
            RowQuery(equals={"id": review_id}, limit=1, columns=PUBLIC_COLUMNS),
        )
        if not rows:
            raise ReviewNotFoundError(review_id)
        return ReviewPublic.model_validate(rows[0])

    async def update(
        self, review_id: int, request: ReviewUpdateRequest, token: str | None
    ) -> ReviewPublic:
        changes = request.changes()
        if not changes:
            raise ReviewValidationError("Nothing to update")

        await self._verifier.require(review_id, token)

        updated = await self._store.update(self._table, review_id, changes)
        if updated is None:
            raise ReviewNotFoundError(review_id)
        logger.info("Updated review %s fields=%s", review_id, sorted(changes))
        return ReviewPublic.model_validate(updated)

    async def delete(self, review_id: int, token: str | None) -> None:
        await self._verifier.require(review_id, token)

        if not await self._store.delete(self._table, review_id):
            raise ReviewNotFoundError(review_id)
        logger.info("Deleted review %s", review_id)


def _absorbed(existing: Row) -> ReviewCreateResponse:
    logger.info("Absorbed duplicate submission of review %s", existing["id"])
    return ReviewCreateResponse(id=existing["id"], ownership_token=None, duplicate=True)
