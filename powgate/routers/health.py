from __future__ import annotations

import os
import time
from typing import Any

from fastapi import APIRouter, Depends, status

from powgate.config import Settings, get_settings

router = APIRouter(tags=["health"])
START_TIME = time.time()


@router.get("/live", status_code=status.HTTP_200_OK)
def live() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/health", status_code=status.HTTP_200_OK)
def health(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    # проверок внешних зависимостей нет: сервис без состояния
    return {
        "status": "healthy",
        "version": os.getenv("GIT_SHA") or "dev",
        "uptime": time.time() - START_TIME,
        "pow": {
            "difficulty": settings.pow_difficulty,
            "check": settings.pow_check,
        },
    }
