"""Service package public API definitions.

The store clients import ``app.services.exceptions``, which executes this
module first. Importing the service implementations eagerly here would pull
the clients back in mid-import, so they are resolved lazily on attribute
access instead.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "DuplicateGuard",
    "InMemoryRowStore",
    "OwnershipVerifier",
    "ReviewService",
]

_SERVICE_MODULES = {
    "DuplicateGuard": "duplicates",
    "InMemoryRowStore": "mock_store",
    "OwnershipVerifier": "ownership",
    "ReviewService": "reviews",
}


def __getattr__(name: str) -> Any:
    if name not in _SERVICE_MODULES:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module = import_module(f".{_SERVICE_MODULES[name]}", __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .duplicates import DuplicateGuard as DuplicateGuard
    from .mock_store import InMemoryRowStore as InMemoryRowStore
    from .ownership import OwnershipVerifier as OwnershipVerifier
    from .reviews import ReviewService as ReviewService
