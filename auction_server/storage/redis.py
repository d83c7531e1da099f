"""Redis storage backend using redis-py asyncio client."""

from __future__ import annotations

import uuid
from typing import Any, Iterable

import orjson
from redis import asyncio as aioredis

from ..auctions.rules import BidUpdate, apply_bid
from ..transport.timestamps import format_timestamp, parse_timestamp, utc_now


class RedisStorage:
    def __init__(
        self,
        *,
        url: str | None = None,
        prefix: str = "auction",
        client: aioredis.Redis | None = None,
    ) -> None:
        if client is None:
            if not url:
                raise ValueError("redis url missing")
            client = aioredis.from_url(url)
        self._redis = client
        self._prefix = prefix.rstrip(":")

    def _auction_key(self, auction_id: str) -> str:
        return f"{self._prefix}:auction:{auction_id}"

    def _index_key(self) -> str:
        return f"{self._prefix}:auctions"

    def _user_key(self, identity: str) -> str:
        return f"{self._prefix}:user:{identity}"

    def _user_id_key(self, user_id: str) -> str:
        return f"{self._prefix}:user-id:{user_id}"

    async def create_auction(self, record: dict[str, Any]) -> dict[str, Any]:
        score = parse_timestamp(record["created_at"]).timestamp()
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._auction_key(record["auction_id"]), orjson.dumps(record), nx=True)
            pipe.zadd(self._index_key(), {record["auction_id"]: score})
            created, _ = await pipe.execute()
        if not created:
            raise ValueError(f"auction {record['auction_id']} already exists")
        return record

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        raw = await self._redis.get(self._auction_key(auction_id))
        if raw is None:
            raise KeyError(auction_id)
        return orjson.loads(raw)

    async def list_auctions(self) -> list[dict[str, Any]]:
        auction_ids = await self._redis.zrevrange(self._index_key(), 0, -1)
        if not auction_ids:
            return []
        keys = [self._auction_key(_text(auction_id)) for auction_id in auction_ids]
        values = await self._redis.mget(keys)
        return [orjson.loads(value) for value in values if value]

    async def apply_bid(self, auction_id: str, update: BidUpdate) -> dict[str, Any] | None:
        key = self._auction_key(auction_id)

        async def _apply(pipe) -> dict[str, Any] | None:
            raw = await pipe.get(key)
            if raw is None:
                raise KeyError(auction_id)
            updated = apply_bid(orjson.loads(raw), update)
            if updated is None:
                return None
            pipe.multi()
            pipe.set(key, orjson.dumps(updated))
            return updated

        return await self._redis.transaction(_apply, key, value_from_callable=True)

    async def upsert_user(self, identity: str, name: str) -> dict[str, Any]:
        key = self._user_key(identity)

        async def _upsert(pipe) -> dict[str, Any]:
            raw = await pipe.get(key)
            now = format_timestamp(utc_now())
            if raw is None:
                user = {
                    "id": uuid.uuid4().hex,
                    "identity": identity,
                    "name": name,
                    "created_at": now,
                    "updated_at": now,
                }
            else:
                user = orjson.loads(raw)
                user.update({"name": name, "updated_at": now})
            pipe.multi()
            pipe.set(key, orjson.dumps(user))
            pipe.set(self._user_id_key(user["id"]), identity)
            return user

        return await self._redis.transaction(_upsert, key, value_from_callable=True)

    async def get_users(self, user_ids: Iterable[str]) -> list[dict[str, Any]]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []
        identities = await self._redis.mget([self._user_id_key(user_id) for user_id in ids])
        keys = [self._user_key(_text(identity)) for identity in identities if identity]
        if not keys:
            return []
        values = await self._redis.mget(keys)
        return [orjson.loads(value) for value in values if value]

    async def ping(self) -> None:
        await self._redis.ping()

    async def close(self) -> None:
        await self._redis.aclose()


def _text(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return value.decode()
    return str(value)
