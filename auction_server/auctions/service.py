"""Auction service: creation, listing and the bid processor."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from ..auth.identity import Identity
from ..storage import AuctionStorage
from ..transport.timestamps import utc_now
from .errors import AuctionClosed, BidConflict, InvalidInput, NotFound, Unauthorized
from .fsm import AuctionState
from .models import Auction, BidResult, User
from .money import parse_amount
from .rules import BidUpdate, ExtensionPolicy, check_bid

logger = logging.getLogger(__name__)


@dataclass
class AuctionService:
    storage: AuctionStorage
    policy: ExtensionPolicy = field(default_factory=ExtensionPolicy)
    clock: Callable[[], datetime] = utc_now

    async def create_auction(
        self,
        identity: Identity,
        item_description: Any,
        starting_bid: Any,
        duration: Any,
    ) -> BidResult:
        user_id, display_name = _require_identity(identity)
        if not isinstance(item_description, str) or not item_description.strip():
            raise InvalidInput("itemDescription is required")
        starting_bid_cents = parse_amount(starting_bid, field="startingBid")
        duration_seconds = _parse_duration(duration)

        now = self.clock()
        try:
            expires_at = now + timedelta(seconds=duration_seconds)
        except OverflowError as exc:
            raise InvalidInput("duration is out of range") from exc

        creator = User.from_record(await self.storage.upsert_user(user_id, display_name))
        auction = Auction(
            auction_id=uuid.uuid4().hex,
            item_description=item_description.strip(),
            starting_bid_cents=starting_bid_cents,
            duration_seconds=duration_seconds,
            creator_id=creator.id,
            current_highest_bid_cents=starting_bid_cents,
            current_highest_bidder_id=creator.id,
            expires_at=expires_at,
            last_bid_time=now,
            created_at=now,
        )
        record = await self.storage.create_auction(auction.to_record())
        created = Auction.from_record(record)
        logger.info(
            "auction %s created by %s (starting bid %s cents, expires %s)",
            created.auction_id,
            creator.id,
            starting_bid_cents,
            record["expires_at"],
        )
        return BidResult(auction=created, bidder_name=creator.name)

    async def submit_bid(self, auction_id: Any, proposed_bid: Any, identity: Identity) -> BidResult:
        """Accept a strictly higher bid on an open auction, extending a closing deadline."""
        user_id, display_name = _require_identity(identity)
        if not isinstance(auction_id, str) or not auction_id:
            raise InvalidInput("auctionId is required")
        amount_cents = parse_amount(proposed_bid, field="newBid")

        auction = await self._load(auction_id)
        now = self.clock()
        check_bid(auction, amount_cents, now)

        bidder = User.from_record(await self.storage.upsert_user(user_id, display_name))
        update = BidUpdate(
            amount_cents=amount_cents,
            bidder_id=bidder.id,
            placed_at=now,
            policy=self.policy,
        )
        try:
            record = await self.storage.apply_bid(auction_id, update)
        except KeyError as exc:
            raise NotFound("Auction not found") from exc
        if record is None:
            raise await self._lost_race(auction_id, amount_cents, now)

        updated = Auction.from_record(record)
        extended = updated.expires_at > auction.expires_at
        if extended:
            logger.info(
                "auction %s extended to %s by late bid", auction_id, record["expires_at"]
            )
        logger.info(
            "bid of %s cents accepted on auction %s from %s", amount_cents, auction_id, bidder.id
        )
        return BidResult(auction=updated, bidder_name=bidder.name, extended=extended)

    async def get_auction(self, auction_id: str) -> tuple[Auction, str | None]:
        auction = await self._load(auction_id)
        names = await self._bidder_names([auction.current_highest_bidder_id])
        return auction, names.get(auction.current_highest_bidder_id)

    async def list_auctions(self) -> list[tuple[Auction, str | None]]:
        auctions = [Auction.from_record(record) for record in await self.storage.list_auctions()]
        names = await self._bidder_names(auction.current_highest_bidder_id for auction in auctions)
        return [(auction, names.get(auction.current_highest_bidder_id)) for auction in auctions]

    def now(self) -> datetime:
        return self.clock()

    async def _load(self, auction_id: str) -> Auction:
        try:
            return Auction.from_record(await self.storage.get_auction(auction_id))
        except KeyError as exc:
            raise NotFound("Auction not found") from exc

    async def _bidder_names(self, user_ids: Iterable[str]) -> dict[str, str]:
        users = await self.storage.get_users(set(user_ids))
        return {user["id"]: user["name"] for user in users}

    async def _lost_race(self, auction_id: str, amount_cents: int, now: datetime) -> Exception:
        current = await self._load(auction_id)
        logger.warning(
            "bid of %s cents on auction %s lost to a concurrent update (highest now %s cents)",
            amount_cents,
            auction_id,
            current.current_highest_bid_cents,
        )
        if current.state(now) is AuctionState.CLOSED:
            return AuctionClosed("Bid too late: auction has closed")
        return BidConflict("Bid too low: outbid by a concurrent bid")


def _require_identity(identity: Identity) -> tuple[str, str]:
    if not identity.authenticated or not identity.user_id:
        raise Unauthorized("Unauthorized")
    return identity.user_id, identity.display_name or "Anonymous"


def _parse_duration(value: Any) -> int | float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput("duration must be a number of seconds")
    if value != value or value in (float("inf"), float("-inf")):
        raise InvalidInput("duration must be a finite number of seconds")
    if value <= 0:
        raise InvalidInput("duration must be greater than zero")
    return value
