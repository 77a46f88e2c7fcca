# app/health.py
from fastapi import APIRouter, Depends

from app.config import Settings, get_settings

router = APIRouter()


@router.get("/health")
def health(settings: Settings = Depends(get_settings)):
    return {"ok": True, "store": "memory" if settings.uses_memory_store else "supabase"}
