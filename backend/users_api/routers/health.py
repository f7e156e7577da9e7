from __future__ import annotations

from fastapi import APIRouter, Depends

from ..deps import get_app_settings
from ..modules.users.codec import now_iso
from ..settings import Settings

router = APIRouter()


@router.get("/health", tags=["health"])
def health(settings: Settings = Depends(get_app_settings)):
    return {
        "message": "API is healthy!",
        "environment": "offline (local)" if settings.is_offline else "aws",
        "stage": settings.stage or "unknown",
        "version": settings.version or "unknown",
        "timestamp": now_iso(),
    }
