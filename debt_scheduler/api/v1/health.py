from __future__ import annotations

import os
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from debt_scheduler.config import Settings, get_settings


router = APIRouter()

_START_TIME = time.time()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _best_effort_version() -> str:
    v = (os.getenv("SCHEDULER_APP_VERSION") or os.getenv("APP_VERSION") or "").strip()
    return v or "dev"


@router.get("/health_check", response_class=PlainTextResponse)
async def health_check_legacy():
    return ":ok"


@router.get("/healthz")
async def healthz_check():
    return {"status": "ok"}


@router.get("/health")
async def health_check(request: Request, settings: Settings = Depends(get_settings)):
    supervisor = getattr(request.app.state, "supervisor", None)
    return {
        "status": "ok",
        "version": _best_effort_version(),
        "environment": settings.ENV,
        "uptime_seconds": int(max(0.0, time.time() - _START_TIME)),
        "timestamp": _utc_now_iso(),
        "scheduler": supervisor.snapshot() if supervisor is not None else {"running": False, "jobs": []},
    }
