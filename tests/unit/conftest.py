"""Shared fixtures for auction server tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auction_server.auctions.service import AuctionService
from auction_server.auth.identity import Identity
from auction_server.storage.in_memory import InMemoryStorage

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock injected into the service."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def set(self, seconds: float) -> None:
        self.current = T0 + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def service(storage, clock) -> AuctionService:
    return AuctionService(storage=storage, clock=clock)


@pytest.fixture
def alice() -> Identity:
    return Identity(authenticated=True, user_id="user_alice", display_name="Alice")


@pytest.fixture
def bob() -> Identity:
    return Identity(authenticated=True, user_id="user_bob", display_name="Bob")
