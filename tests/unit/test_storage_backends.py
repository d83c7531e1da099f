"""Conditional bid update shared by every storage backend.

Redis runs against fakeredis. Postgres and Firestore run against a real
server when ``AUCTION_TEST_POSTGRES_DSN`` or ``FIRESTORE_EMULATOR_HOST`` is set;
their statement and transaction wiring is also covered with mocks below.
"""

from __future__ import annotations

import os
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest
import pytest_asyncio

from auction_server.auctions.models import Auction
from auction_server.auctions.rules import BidUpdate, ExtensionPolicy
from auction_server.storage import firestore as firestore_backend
from auction_server.storage.in_memory import InMemoryStorage
from auction_server.storage.postgres import PostgresStorage
from auction_server.storage.redis import RedisStorage
from auction_server.transport.timestamps import parse_timestamp

from conftest import T0

POSTGRES_DSN = os.environ.get("AUCTION_TEST_POSTGRES_DSN")
FIRESTORE_EMULATOR = os.environ.get("FIRESTORE_EMULATOR_HOST")


def _at(seconds: float, microseconds: int = 0):
    return T0 + timedelta(seconds=seconds, microseconds=microseconds)


def _auction(creator_id: str, *, auction_id: str | None = None, created_at=T0) -> Auction:
    return Auction(
        auction_id=auction_id or uuid.uuid4().hex,
        item_description="Vintage lamp",
        starting_bid_cents=1000,
        duration_seconds=30,
        creator_id=creator_id,
        current_highest_bid_cents=1000,
        current_highest_bidder_id=creator_id,
        expires_at=created_at + timedelta(seconds=30),
        last_bid_time=created_at,
        created_at=created_at,
    )


def _update(amount_cents: int, bidder_id: str, placed_at) -> BidUpdate:
    return BidUpdate(
        amount_cents=amount_cents,
        bidder_id=bidder_id,
        placed_at=placed_at,
        policy=ExtensionPolicy(),
    )


class StorageContract:
    """Cases run against each backend; subclasses provide a ``store`` fixture."""

    async def _seed(self, store) -> tuple[str, str]:
        creator = await store.upsert_user("ext_creator", "Carol")
        bidder = await store.upsert_user("ext_bidder", "Bob")
        auction = _auction(creator["id"])
        await store.create_auction(auction.to_record())
        return auction.auction_id, bidder["id"]

    @pytest.mark.asyncio
    async def test_higher_bid_is_stored(self, store):
        """Test that a strictly higher bid before the deadline replaces the leader."""
        auction_id, bidder_id = await self._seed(store)
        updated = await store.apply_bid(auction_id, _update(1500, bidder_id, _at(5)))
        assert updated["current_highest_bid_cents"] == 1500
        assert updated["current_highest_bidder_id"] == bidder_id
        assert parse_timestamp(updated["expires_at"]) == _at(30)
        assert parse_timestamp(updated["last_bid_time"]) == _at(5)
        stored = await store.get_auction(auction_id)
        assert stored["current_highest_bid_cents"] == 1500

    @pytest.mark.asyncio
    async def test_equal_bid_is_not_applied(self, store):
        """Test that a bid equal to the stored highest leaves the record untouched."""
        auction_id, bidder_id = await self._seed(store)
        assert await store.apply_bid(auction_id, _update(1000, bidder_id, _at(5))) is None
        stored = await store.get_auction(auction_id)
        assert stored["current_highest_bidder_id"] != bidder_id

    @pytest.mark.asyncio
    async def test_bid_below_a_newer_leader_is_not_applied(self, store):
        """Test that a bid below a newer stored highest is not applied."""
        auction_id, bidder_id = await self._seed(store)
        await store.apply_bid(auction_id, _update(3000, bidder_id, _at(5)))
        assert await store.apply_bid(auction_id, _update(2000, bidder_id, _at(6))) is None
        assert (await store.get_auction(auction_id))["current_highest_bid_cents"] == 3000

    @pytest.mark.asyncio
    async def test_bid_after_expiry_is_not_applied(self, store):
        """Test that a bid placed after the stored deadline is not applied."""
        auction_id, bidder_id = await self._seed(store)
        assert await store.apply_bid(auction_id, _update(5000, bidder_id, _at(31))) is None

    @pytest.mark.asyncio
    async def test_bid_at_expiry_is_accepted_and_extended(self, store):
        """Test that a bid exactly on the deadline is stored and extends it."""
        auction_id, bidder_id = await self._seed(store)
        updated = await store.apply_bid(auction_id, _update(5000, bidder_id, _at(30)))
        assert parse_timestamp(updated["expires_at"]) == _at(40)

    @pytest.mark.asyncio
    async def test_late_bid_extends_to_the_microsecond(self, store):
        """Test that the stored deadline is the bid time plus the window to the microsecond."""
        auction_id, bidder_id = await self._seed(store)
        updated = await store.apply_bid(auction_id, _update(5000, bidder_id, _at(25, 500)))
        assert parse_timestamp(updated["expires_at"]) == _at(35, 500)
        stored = await store.get_auction(auction_id)
        assert parse_timestamp(stored["expires_at"]) == _at(35, 500)

    @pytest.mark.asyncio
    async def test_unknown_auction_raises_key_error(self, store):
        """Test that bidding on an unknown auction raises KeyError."""
        bidder = await store.upsert_user("ext_bidder", "Bob")
        with pytest.raises(KeyError):
            await store.apply_bid("missing", _update(5000, bidder["id"], _at(5)))

    @pytest.mark.asyncio
    async def test_newest_auction_listed_first(self, store):
        """Test that auctions list newest first."""
        creator = await store.upsert_user("ext_creator", "Carol")
        older = _auction(creator["id"], created_at=T0)
        newer = _auction(creator["id"], created_at=_at(0, 300))
        await store.create_auction(older.to_record())
        await store.create_auction(newer.to_record())
        listed = [record["auction_id"] for record in await store.list_auctions()]
        assert listed == [newer.auction_id, older.auction_id]

    @pytest.mark.asyncio
    async def test_ping(self, store):
        """Test that a reachable backend answers ping."""
        await store.ping()


@pytest_asyncio.fixture
async def redis_store():
    storage = RedisStorage(client=fakeredis.FakeAsyncRedis())
    yield storage
    await storage.close()


@pytest_asyncio.fixture
async def postgres_store():
    storage = PostgresStorage(dsn=POSTGRES_DSN)
    pool = await storage._ensure_pool()
    async with pool.acquire() as conn:
        await conn.execute("TRUNCATE auctions, users")
    yield storage
    await storage.close()


@pytest_asyncio.fixture
async def firestore_store():
    suffix = uuid.uuid4().hex
    storage = firestore_backend.FirestoreStorage(
        project_id="auction-test",
        collection=f"auctions-{suffix}",
        users_collection=f"users-{suffix}",
    )
    yield storage
    await storage.close()


class TestInMemoryBackend(StorageContract):
    @pytest.fixture
    def store(self):
        return InMemoryStorage()


class TestRedisBackend(StorageContract):
    @pytest.fixture
    def store(self, redis_store):
        return redis_store


@pytest.mark.skipif(not POSTGRES_DSN, reason="AUCTION_TEST_POSTGRES_DSN not set")
class TestPostgresBackend(StorageContract):
    @pytest.fixture
    def store(self, postgres_store):
        return postgres_store


@pytest.mark.skipif(not FIRESTORE_EMULATOR, reason="FIRESTORE_EMULATOR_HOST not set")
class TestFirestoreBackend(StorageContract):
    @pytest.fixture
    def store(self, firestore_store):
        return firestore_store


def _pool(conn) -> MagicMock:
    pool = MagicMock()
    pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
    pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)
    return pool


class TestPostgresBidStatement:
    @pytest.fixture
    def conn(self) -> AsyncMock:
        return AsyncMock()

    @pytest.fixture
    def storage(self, conn) -> PostgresStorage:
        storage = PostgresStorage(dsn="postgresql://localhost/unused")
        storage._pool = _pool(conn)
        return storage

    @pytest.mark.asyncio
    async def test_statement_receives_bid_and_policy(self, storage, conn):
        """Test that the conditional UPDATE receives the bid and the extension intervals."""
        conn.fetchrow.return_value = None
        conn.fetchval.return_value = 1
        placed_at = _at(25)
        await storage.apply_bid("a1", _update(2000, "u2", placed_at))
        args = conn.fetchrow.await_args.args
        assert "current_highest_bid_cents < $2" in args[0]
        assert "expires_at >= $4" in args[0]
        window = timedelta(seconds=10)
        assert args[1:] == ("a1", 2000, "u2", placed_at, window, window)

    @pytest.mark.asyncio
    async def test_unmatched_update_on_existing_auction_returns_none(self, storage, conn):
        """Test that an unmatched update on an existing auction returns None."""
        conn.fetchrow.return_value = None
        conn.fetchval.return_value = 1
        assert await storage.apply_bid("a1", _update(2000, "u2", _at(5))) is None

    @pytest.mark.asyncio
    async def test_unmatched_update_on_unknown_auction_raises(self, storage, conn):
        """Test that an unmatched update on an unknown auction raises KeyError."""
        conn.fetchrow.return_value = None
        conn.fetchval.return_value = None
        with pytest.raises(KeyError):
            await storage.apply_bid("missing", _update(2000, "u2", _at(5)))


class TestFirestoreBidTransaction:
    @pytest.fixture
    def client(self, monkeypatch) -> MagicMock:
        fake = MagicMock()
        fake.transactional = lambda func: func
        monkeypatch.setattr(firestore_backend, "firestore", fake)
        return fake.Client.return_value

    @pytest.fixture
    def snapshot(self, client) -> MagicMock:
        snapshot = client.collection.return_value.document.return_value.get.return_value
        snapshot.exists = True
        snapshot.to_dict.return_value = _auction("u1", auction_id="a1").to_record()
        return snapshot

    @pytest.mark.asyncio
    async def test_accepted_bid_is_written_in_the_transaction(self, client, snapshot):
        """Test that the read and the write share one transaction."""
        storage = firestore_backend.FirestoreStorage(project_id="auction-test")
        updated = await storage.apply_bid("a1", _update(2000, "u2", _at(25)))
        ref = client.collection.return_value.document.return_value
        transaction = client.transaction.return_value
        ref.get.assert_called_with(transaction=transaction)
        transaction.set.assert_called_once_with(ref, updated)
        assert parse_timestamp(updated["expires_at"]) == _at(35)

    @pytest.mark.asyncio
    async def test_rejected_bid_writes_nothing(self, client, snapshot):
        """Test that a rejected bid writes nothing."""
        storage = firestore_backend.FirestoreStorage(project_id="auction-test")
        assert await storage.apply_bid("a1", _update(1000, "u2", _at(5))) is None
        client.transaction.return_value.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_document_raises(self, client, snapshot):
        """Test that a missing document raises KeyError."""
        snapshot.exists = False
        storage = firestore_backend.FirestoreStorage(project_id="auction-test")
        with pytest.raises(KeyError):
            await storage.apply_bid("missing", _update(2000, "u2", _at(5)))
