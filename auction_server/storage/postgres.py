"""Postgres storage backend leveraging asyncpg."""

from __future__ import annotations

import uuid
from typing import Any, Iterable

import asyncpg

from ..auctions.rules import BidUpdate
from ..transport.timestamps import format_timestamp, parse_timestamp

_AUCTION_COLUMNS = """
    auction_id, item_description, starting_bid_cents, duration_seconds, creator_id,
    current_highest_bid_cents, current_highest_bidder_id, expires_at, last_bid_time, created_at
"""

# Bid acceptance is one conditional statement so concurrent bids cannot both win.
_APPLY_BID = f"""
    UPDATE auctions SET
        current_highest_bid_cents = $2,
        current_highest_bidder_id = $3,
        expires_at = CASE
            WHEN expires_at - $4::timestamptz < $5::interval
                THEN GREATEST(expires_at, $4::timestamptz + $6::interval)
            ELSE expires_at
        END,
        last_bid_time = $4::timestamptz
    WHERE auction_id = $1
      AND current_highest_bid_cents < $2
      AND expires_at >= $4::timestamptz
    RETURNING {_AUCTION_COLUMNS}
"""


class PostgresStorage:
    def __init__(self, *, dsn: str | None = None, **connect_kwargs: Any) -> None:
        if not dsn and not connect_kwargs:
            raise ValueError("postgres connection details missing")
        self._dsn = dsn
        self._connect_kwargs = connect_kwargs
        self._pool: asyncpg.Pool | None = None

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(dsn=self._dsn, **self._connect_kwargs)
            async with self._pool.acquire() as conn:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS users (
                        id TEXT PRIMARY KEY,
                        identity TEXT NOT NULL UNIQUE,
                        name TEXT NOT NULL,
                        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                    );
                    """
                )
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS auctions (
                        auction_id TEXT PRIMARY KEY,
                        item_description TEXT NOT NULL,
                        starting_bid_cents BIGINT NOT NULL CHECK (starting_bid_cents > 0),
                        duration_seconds DOUBLE PRECISION NOT NULL CHECK (duration_seconds > 0),
                        creator_id TEXT NOT NULL REFERENCES users(id),
                        current_highest_bid_cents BIGINT NOT NULL,
                        current_highest_bidder_id TEXT NOT NULL REFERENCES users(id),
                        expires_at TIMESTAMPTZ NOT NULL,
                        last_bid_time TIMESTAMPTZ NOT NULL,
                        created_at TIMESTAMPTZ NOT NULL
                    );
                    CREATE INDEX IF NOT EXISTS idx_auctions_created_at
                    ON auctions (created_at DESC);
                    """
                )
        return self._pool

    def _auction_record(self, row: asyncpg.Record) -> dict[str, Any]:
        duration = row["duration_seconds"]
        if float(duration).is_integer():
            duration = int(duration)
        return {
            "auction_id": row["auction_id"],
            "item_description": row["item_description"],
            "starting_bid_cents": row["starting_bid_cents"],
            "duration_seconds": duration,
            "creator_id": row["creator_id"],
            "current_highest_bid_cents": row["current_highest_bid_cents"],
            "current_highest_bidder_id": row["current_highest_bidder_id"],
            "expires_at": format_timestamp(row["expires_at"]),
            "last_bid_time": format_timestamp(row["last_bid_time"]),
            "created_at": format_timestamp(row["created_at"]),
        }

    def _user_record(self, row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "identity": row["identity"],
            "name": row["name"],
            "created_at": format_timestamp(row["created_at"]),
            "updated_at": format_timestamp(row["updated_at"]),
        }

    async def create_auction(self, record: dict[str, Any]) -> dict[str, Any]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                f"""INSERT INTO auctions({_AUCTION_COLUMNS})
                    VALUES($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)""",
                record["auction_id"],
                record["item_description"],
                record["starting_bid_cents"],
                float(record["duration_seconds"]),
                record["creator_id"],
                record["current_highest_bid_cents"],
                record["current_highest_bidder_id"],
                parse_timestamp(record["expires_at"]),
                parse_timestamp(record["last_bid_time"]),
                parse_timestamp(record["created_at"]),
            )
        return record

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""SELECT {_AUCTION_COLUMNS} FROM auctions WHERE auction_id=$1""",
                auction_id,
            )
        if not row:
            raise KeyError(auction_id)
        return self._auction_record(row)

    async def list_auctions(self) -> list[dict[str, Any]]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""SELECT {_AUCTION_COLUMNS} FROM auctions
                    ORDER BY created_at DESC, auction_id DESC"""
            )
        return [self._auction_record(row) for row in rows]

    async def apply_bid(self, auction_id: str, update: BidUpdate) -> dict[str, Any] | None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                _APPLY_BID,
                auction_id,
                update.amount_cents,
                update.bidder_id,
                update.placed_at,
                update.policy.threshold,
                update.policy.window,
            )
            if row is None:
                exists = await conn.fetchval(
                    "SELECT 1 FROM auctions WHERE auction_id=$1", auction_id
                )
                if not exists:
                    raise KeyError(auction_id)
                return None
        return self._auction_record(row)

    async def upsert_user(self, identity: str, name: str) -> dict[str, Any]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """INSERT INTO users(id, identity, name) VALUES($1, $2, $3)
                   ON CONFLICT (identity)
                   DO UPDATE SET name=EXCLUDED.name, updated_at=NOW()
                   RETURNING id, identity, name, created_at, updated_at""",
                uuid.uuid4().hex,
                identity,
                name,
            )
        return self._user_record(row)

    async def get_users(self, user_ids: Iterable[str]) -> list[dict[str, Any]]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """SELECT id, identity, name, created_at, updated_at
                   FROM users WHERE id = ANY($1::text[])""",
                ids,
            )
        return [self._user_record(row) for row in rows]

    async def ping(self) -> None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
