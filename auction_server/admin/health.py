"""Admin health endpoint: uptime plus a reachability check of the auction store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request, Response, status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health")
async def health(request: Request, response: Response) -> dict[str, Any]:
    state = request.app.state
    backend = state.server_config.storage.backend
    try:
        await state.auction_service.storage.ping()
    except Exception as exc:
        logger.warning("storage backend %s is unreachable: %s", backend, exc)
        reachable = False
    else:
        reachable = True
    if not reachable:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    started = getattr(state, "start_time", None)
    uptime = int((datetime.now(timezone.utc) - started).total_seconds()) if started else 0
    return {
        "status": "healthy" if reachable else "degraded",
        "storage": {"backend": backend, "reachable": reachable},
        "uptime_seconds": uptime,
        "version": request.app.version,
    }
