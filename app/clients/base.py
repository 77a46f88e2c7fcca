"""Row-store capability shared by the Supabase client and the in-memory store.

Both backends accept a :class:`RowQuery` describing filters, ordering, range
and projection, so the review services never build backend specific query
strings themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

Row = Dict[str, Any]


@dataclass(frozen=True)
class SortKey:
    column: str
    descending: bool = False


@dataclass(frozen=True)
class RowQuery:
    equals: Dict[str, Any] = field(default_factory=dict)
    created_since: Optional[datetime] = None
    search: Optional[str] = None
    search_columns: Tuple[str, ...] = ()
    order: Tuple[SortKey, ...] = ()
    offset: int = 0
    limit: Optional[int] = None
    columns: Optional[Tuple[str, ...]] = None


class RowStore(Protocol):
    async def insert(self, table: str, row: Row) -> Row:
        ...

    async def select(self, table: str, query: RowQuery) -> Tuple[List[Row], int]:
        ...

    async def update(self, table: str, row_id: int, patch: Row) -> Optional[Row]:
        ...

    async def delete(self, table: str, row_id: int) -> bool:
        ...

    async def close(self) -> None:
        ...


def project(row: Row, columns: Optional[Sequence[str]]) -> Row:
    if columns is None:
        return dict(row)
    return {column: row[column] for column in columns if column in row}
