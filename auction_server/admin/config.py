"""Expose currently loaded server config for debugging."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..config import ServerConfig

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_config(request: Request) -> ServerConfig:
    return request.app.state.server_config


@router.get("/config")
async def config(
    request: Request,
    config: ServerConfig = Depends(_get_config),
) -> dict:
    # Storage options may carry credentials, so only option names are exposed.
    return {
        "version": request.app.version,
        "storage_backend": config.storage.backend,
        "storage_options": sorted(config.storage.options),
        "bidding": {
            "extension_threshold_seconds": config.bidding.extension_threshold_seconds,
            "extension_window_seconds": config.bidding.extension_window_seconds,
        },
        "auth_mode": config.auth.mode,
    }
