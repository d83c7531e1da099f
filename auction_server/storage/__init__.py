"""Storage backend factory."""

from __future__ import annotations

from typing import Iterable, Protocol

from ..auctions.rules import BidUpdate
from ..config import ServerConfig
from .firestore import FirestoreStorage
from .in_memory import InMemoryStorage
from .postgres import PostgresStorage
from .redis import RedisStorage


class AuctionStorage(Protocol):
    async def create_auction(self, record: dict) -> dict: ...

    async def get_auction(self, auction_id: str) -> dict:
        """Return the auction record or raise ``KeyError``."""
        ...

    async def list_auctions(self) -> list[dict]:
        """Return all auction records, newest first."""
        ...

    async def apply_bid(self, auction_id: str, update: BidUpdate) -> dict | None:
        """Atomically store a bid if it still beats the stored highest bid before expiry.

        Returns the updated record, ``None`` when the conditions no longer hold,
        and raises ``KeyError`` for an unknown auction.
        """
        ...

    async def upsert_user(self, identity: str, name: str) -> dict: ...

    async def get_users(self, user_ids: Iterable[str]) -> list[dict]: ...

    async def ping(self) -> None:
        """Raise if the backend cannot be reached."""
        ...

    async def close(self) -> None: ...


def build_storage(config: ServerConfig) -> AuctionStorage:
    backend = config.storage.backend
    options = dict(config.storage.options)
    if backend == "in_memory":
        return InMemoryStorage()
    if backend == "redis":
        return RedisStorage(**options)
    if backend == "postgres":
        return PostgresStorage(**options)
    if backend == "firestore":
        return FirestoreStorage(**options)
    raise ValueError(f"unknown storage backend {backend}")
