from __future__ import annotations

import asyncio
import os
import time
from functools import lru_cache
from typing import Any, Dict

from fastapi import APIRouter

from config.settings import settings
from models.schema import COL_SYSTEM
from storage.firestore_client import get_firestore_client

router = APIRouter()

SERVICE_NAME = "medrem-dispatcher"


@lru_cache(maxsize=1)
def _probe_db():
    # One client per process; not cached when construction raises.
    return get_firestore_client()


async def _firestore_probe(timeout_s: float = 0.5) -> Dict[str, Any]:
    """Single read of system/healthz, bounded by timeout_s. Never writes."""
    t0 = time.time()
    try:
        db = _probe_db()
        await asyncio.wait_for(db.collection(COL_SYSTEM).document("healthz").get(), timeout=timeout_s)
    except Exception as e:
        return {"ok": False, "error_type": type(e).__name__, "message": str(e)}
    return {"ok": True, "latency_ms": int((time.time() - t0) * 1000)}


@router.get("/healthz")
def healthz():
    return {"ok": True, "service": SERVICE_NAME}


@router.get("/health")
async def health():
    fs = await _firestore_probe()
    return {
        "ok": bool(fs.get("ok", False)),
        "service": SERVICE_NAME,
        "cloudrun_service": os.getenv("K_SERVICE") or SERVICE_NAME,
        "revision": os.getenv("K_REVISION") or "",
        "environment": settings.ENVIRONMENT,
        "schedule": {
            "cadence": settings.REMINDER_SCHEDULE,
            "time_zone": settings.REMINDER_TIME_ZONE,
            "lookahead_minutes": settings.REMINDER_LOOKAHEAD_MINUTES,
        },
        "firestore": fs,
        "time_unix": time.time(),
    }
