"""Duplicate-submission guard.

Anonymous submissions carry no session identity, so a retried or
double-clicked submission is recognised by content: same author, product
and content text accepted within the trailing window. Rating is not part of
the key, so a resubmission that only changes the rating is still absorbed.

The guard is a pre-check. Two racing submissions can both pass it, which is
why rows also carry ``dedupe_bucket`` and the store keeps a unique index on
:data:`DEDUPE_KEY_COLUMNS`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from app.clients.base import Row, RowQuery, RowStore, SortKey

logger = logging.getLogger(__name__)

DEDUPE_KEY_COLUMNS: Tuple[str, ...] = ("author", "product", "content", "dedupe_bucket")


@dataclass(frozen=True)
class Admission:
    duplicate_of: Optional[Row] = None

    @property
    def admitted(self) -> bool:
        return self.duplicate_of is None


ADMIT = Admission()


def dedupe_bucket(moment: datetime, window_seconds: float) -> int:
    return math.floor(moment.timestamp() / window_seconds)


class DuplicateGuard:
    def __init__(
        self,
        store: RowStore,
        *,
        table: str = "reviews",
        window_seconds: float = 7.0,
        columns: Tuple[str, ...] | None = None,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._store = store
        self._table = table
        self._window = timedelta(seconds=window_seconds)
        self._columns = columns

    @property
    def window_seconds(self) -> float:
        return self._window.total_seconds()

    async def should_admit(self, candidate: Row, now: datetime) -> Admission:
        """Return ``ADMIT`` unless an identical submission landed in ``[now - W, now]``."""

        query = RowQuery(
            equals={
                "author": candidate["author"],
                "product": candidate["product"],
                "content": candidate["content"],
            },
            created_since=now - self._window,
            order=(SortKey("created_at", descending=True), SortKey("id", descending=True)),
            limit=1,
            columns=self._columns,
        )
        rows, _ = await self._store.select(self._table, query)
        if not rows:
            return ADMIT
        logger.info("Submission matches review %s inside the duplicate window", rows[0]["id"])
        return Admission(duplicate_of=rows[0])
