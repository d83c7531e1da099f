"""Configuration helpers for the auction server."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml

_DEFAULT_SERVER_CONFIG = Path(__file__).resolve().parent / "server.yaml"


@dataclass(frozen=True)
class StorageConfig:
    backend: str
    options: Mapping[str, Any]


@dataclass(frozen=True)
class BiddingConfig:
    extension_threshold_seconds: float
    extension_window_seconds: float


@dataclass(frozen=True)
class AuthConfig:
    mode: str
    default_display_name: str
    public_key: str
    max_clock_skew_ms: int


@dataclass(frozen=True)
class ServerConfig:
    listen: Mapping[str, Any]
    storage: StorageConfig
    bidding: BiddingConfig
    auth: AuthConfig


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    return yaml.safe_load(path.read_text()) or {}


def parse_server_config(data: Mapping[str, Any]) -> ServerConfig:
    storage = data.get("storage", {})
    bidding = data.get("bidding", {})
    auth = data.get("auth", {})
    mode = str(auth.get("mode", "header"))
    if mode not in {"header", "signed"}:
        raise ValueError(f"unknown auth mode {mode}")
    threshold = float(bidding.get("extension_threshold_seconds", 10))
    window = float(bidding.get("extension_window_seconds", 10))
    if threshold < 0 or window < 0:
        raise ValueError("bidding extension settings must not be negative")
    return ServerConfig(
        listen=data.get("listen", {}),
        storage=StorageConfig(
            backend=str(storage.get("backend", "in_memory")),
            options=dict(storage.get("options") or {}),
        ),
        bidding=BiddingConfig(
            extension_threshold_seconds=threshold,
            extension_window_seconds=window,
        ),
        auth=AuthConfig(
            mode=mode,
            default_display_name=str(auth.get("default_display_name", "Anonymous")),
            public_key=str(auth.get("public_key") or ""),
            max_clock_skew_ms=int(auth.get("max_clock_skew_ms", 30000)),
        ),
    )


@lru_cache(maxsize=1)
def get_server_config() -> ServerConfig:
    path = Path(os.getenv("AUCTION_CONFIG_PATH", _DEFAULT_SERVER_CONFIG))
    return parse_server_config(_load_yaml(path))
