"""Ownership tokens for anonymous reviews.

A review created without an account gets a random token that is handed back
once, in the create response. Editing or deleting the review later requires
presenting the same token; :class:`OwnershipVerifier` is the only place that
check happens, and callers must run it before issuing any mutation.
"""

from __future__ import annotations

import hmac
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from app.clients.base import RowQuery, RowStore
from app.services.exceptions import DENIAL_ERRORS, DenyReason

logger = logging.getLogger(__name__)

TOKEN_COLUMN = "ownership_token"


def issue_token() -> str:
    """Return a fresh 122-bit random token (UUID4)."""

    return str(uuid.uuid4())


@dataclass(frozen=True)
class Decision:
    review_id: int
    reason: Optional[DenyReason] = None

    @property
    def allowed(self) -> bool:
        return self.reason is None

    def raise_for_denial(self) -> None:
        if self.reason is not None:
            raise DENIAL_ERRORS[self.reason](self.review_id)


class OwnershipVerifier:
    def __init__(self, store: RowStore, *, table: str = "reviews") -> None:
        self._store = store
        self._table = table

    async def authorize(self, review_id: int, presented_token: str | None) -> Decision:
        rows, _ = await self._store.select(
            self._table,
            RowQuery(equals={"id": review_id}, limit=1, columns=("id", TOKEN_COLUMN)),
        )
        if not rows:
            return self._deny(review_id, DenyReason.NOT_FOUND)
        if presented_token is None or not presented_token.strip():
            return self._deny(review_id, DenyReason.MISSING_CREDENTIAL)

        stored_token = rows[0].get(TOKEN_COLUMN) or ""
        if not hmac.compare_digest(
            presented_token.strip().encode("utf-8"), str(stored_token).encode("utf-8")
        ):
            return self._deny(review_id, DenyReason.FORBIDDEN)
        return Decision(review_id=review_id)

    async def require(self, review_id: int, presented_token: str | None) -> None:
        """Raise the matching :class:`OwnershipDeniedError` unless allowed."""

        decision = await self.authorize(review_id, presented_token)
        decision.raise_for_denial()

    @staticmethod
    def _deny(review_id: int, reason: DenyReason) -> Decision:
        logger.warning("Denied mutation of review %s: %s", review_id, reason.value)
        return Decision(review_id=review_id, reason=reason)
