from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, DefaultDict, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from app.clients.base import Row, RowQuery, project
from app.services.duplicates import DEDUPE_KEY_COLUMNS
from app.services.exceptions import StoreConflictError


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRowStore:
    """Row store kept in process memory, used when no Supabase URL is set.

    Each operation yields to the event loop once (like a network round trip)
    and then runs to completion without further suspension, so individual
    inserts and updates are atomic. Unique constraints are declared per table
    and checked the way a unique index would be.
    """

    def __init__(
        self,
        *,
        unique: Mapping[str, Sequence[Tuple[str, ...]]] | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._tables: DefaultDict[str, Dict[int, Row]] = defaultdict(dict)
        self._counters: DefaultDict[str, Iterator[int]] = defaultdict(
            lambda: itertools.count(1)
        )
        self._unique = {table: [tuple(key) for key in keys] for table, keys in (unique or {}).items()}
        self._clock = clock

    async def simulate_latency(self) -> None:
        await asyncio.sleep(0)

    async def close(self) -> None:
        return None

    async def insert(self, table: str, row: Row) -> Row:
        await self.simulate_latency()
        candidate = dict(row)
        candidate.pop("id", None)
        candidate["created_at"] = self._clock()
        self._check_unique(table, candidate)
        candidate["id"] = next(self._counters[table])
        self._tables[table][candidate["id"]] = candidate
        return dict(candidate)

    async def select(self, table: str, query: RowQuery) -> Tuple[List[Row], int]:
        await self.simulate_latency()
        rows = [row for row in self._tables[table].values() if _matches(row, query)]
        for key in reversed(query.order):
            rows.sort(key=lambda row: row[key.column], reverse=key.descending)
        total = len(rows)
        end = None if query.limit is None else query.offset + query.limit
        window = rows[query.offset:end]
        return [project(row, query.columns) for row in window], total

    async def update(self, table: str, row_id: int, patch: Row) -> Optional[Row]:
        await self.simulate_latency()
        current = self._tables[table].get(row_id)
        if current is None:
            return None
        updated = {**current, **patch, "id": current["id"], "created_at": current["created_at"]}
        self._check_unique(table, updated, ignore_id=row_id)
        self._tables[table][row_id] = updated
        return dict(updated)

    async def delete(self, table: str, row_id: int) -> bool:
        await self.simulate_latency()
        return self._tables[table].pop(row_id, None) is not None

    def _check_unique(self, table: str, row: Row, *, ignore_id: int | None = None) -> None:
        for key in self._unique.get(table, ()):
            if any(column not in row for column in key):
                continue
            values = tuple(row[column] for column in key)
            for existing_id, existing in self._tables[table].items():
                if existing_id == ignore_id:
                    continue
                if tuple(existing.get(column) for column in key) == values:
                    raise StoreConflictError(
                        f"duplicate key value violates unique constraint on {table} {key}"
                    )


def _matches(row: Row, query: RowQuery) -> bool:
    for column, value in query.equals.items():
        if row.get(column) != value:
            return False
    if query.created_since is not None and row["created_at"] < query.created_since:
        return False
    if query.search and query.search_columns:
        needle = query.search.lower()
        if not any(needle in str(row.get(column) or "").lower() for column in query.search_columns):
            return False
    return True


_mock_store: Optional[InMemoryRowStore] = None


def build_mock_store(table: str = "reviews", *, clock: Callable[[], datetime] = _utc_now) -> InMemoryRowStore:
    return InMemoryRowStore(unique={table: [DEDUPE_KEY_COLUMNS]}, clock=clock)


def get_mock_store(table: str = "reviews") -> InMemoryRowStore:
    global _mock_store
    if _mock_store is None:
        _mock_store = build_mock_store(table)
    return _mock_store


def reset_mock_store() -> None:
    global _mock_store
    _mock_store = None
