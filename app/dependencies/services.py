from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends

from app.clients.base import RowStore
from app.clients.supabase import SupabaseRestClient
from app.config import Settings, get_settings
from app.services import ReviewService
from app.services.mock_store import get_mock_store

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_supabase_client_cached() -> SupabaseRestClient:
    settings = get_settings()
    logger.info("Using Supabase review store at %s", settings.supabase_url)
    return SupabaseRestClient(
        str(settings.supabase_url),
        service_key=settings.supabase_service_key,
        timeout=settings.store_timeout,
    )


def get_row_store(settings: Settings = Depends(get_settings)) -> RowStore:
    if settings.uses_memory_store:
        return get_mock_store(settings.supabase_table)
    return get_supabase_client_cached()


def get_review_service(
    store: RowStore = Depends(get_row_store),
    settings: Settings = Depends(get_settings),
) -> ReviewService:
    return ReviewService(
        store,
        table=settings.supabase_table,
        duplicate_window_seconds=settings.duplicate_window_seconds,
        default_limit=settings.list_default_limit,
        max_limit=settings.list_max_limit,
    )
