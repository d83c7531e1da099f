"""In-memory storage backend for auctions and users."""

from __future__ import annotations

import asyncio
import itertools
import uuid
from copy import deepcopy
from typing import Any, Iterable

from ..auctions.rules import BidUpdate, apply_bid
from ..transport.timestamps import format_timestamp, parse_timestamp, utc_now


class InMemoryStorage:
    def __init__(self) -> None:
        self._auctions: dict[str, dict[str, Any]] = {}
        self._users: dict[str, dict[str, Any]] = {}
        # creation order breaks ties between equal created_at values
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count()
        self._lock = asyncio.Lock()

    async def create_auction(self, record: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            if record["auction_id"] in self._auctions:
                raise ValueError(f"auction {record['auction_id']} already exists")
            self._auctions[record["auction_id"]] = deepcopy(record)
            self._sequence[record["auction_id"]] = next(self._counter)
            return deepcopy(record)

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        async with self._lock:
            try:
                return deepcopy(self._auctions[auction_id])
            except KeyError as exc:
                raise KeyError(f"auction {auction_id} not found") from exc

    async def list_auctions(self) -> list[dict[str, Any]]:
        async with self._lock:
            ordered = sorted(
                self._auctions.values(),
                key=lambda record: (
                    parse_timestamp(record["created_at"]),
                    self._sequence[record["auction_id"]],
                ),
                reverse=True,
            )
            return [deepcopy(record) for record in ordered]

    async def apply_bid(self, auction_id: str, update: BidUpdate) -> dict[str, Any] | None:
        async with self._lock:
            if auction_id not in self._auctions:
                raise KeyError(auction_id)
            updated = apply_bid(self._auctions[auction_id], update)
            if updated is None:
                return None
            self._auctions[auction_id] = updated
            return deepcopy(updated)

    async def upsert_user(self, identity: str, name: str) -> dict[str, Any]:
        async with self._lock:
            now = format_timestamp(utc_now())
            user = self._users.get(identity)
            if user is None:
                user = {
                    "id": uuid.uuid4().hex,
                    "identity": identity,
                    "name": name,
                    "created_at": now,
                    "updated_at": now,
                }
                self._users[identity] = user
            else:
                user.update({"name": name, "updated_at": now})
            return deepcopy(user)

    async def get_users(self, user_ids: Iterable[str]) -> list[dict[str, Any]]:
        wanted = set(user_ids)
        async with self._lock:
            return [deepcopy(user) for user in self._users.values() if user["id"] in wanted]

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None
