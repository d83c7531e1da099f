"""Auction and user records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..transport.timestamps import format_timestamp, parse_timestamp
from .fsm import AuctionState, state_at
from .money import format_amount

UNKNOWN_BIDDER = "Unknown"


@dataclass(frozen=True)
class User:
    id: str
    identity: str
    name: str

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "User":
        return cls(id=record["id"], identity=record["identity"], name=record["name"])


@dataclass(frozen=True)
class Auction:
    auction_id: str
    item_description: str
    starting_bid_cents: int
    duration_seconds: float
    creator_id: str
    current_highest_bid_cents: int
    current_highest_bidder_id: str
    expires_at: datetime
    last_bid_time: datetime
    created_at: datetime

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Auction":
        return cls(
            auction_id=record["auction_id"],
            item_description=record["item_description"],
            starting_bid_cents=int(record["starting_bid_cents"]),
            duration_seconds=record["duration_seconds"],
            creator_id=record["creator_id"],
            current_highest_bid_cents=int(record["current_highest_bid_cents"]),
            current_highest_bidder_id=record["current_highest_bidder_id"],
            expires_at=parse_timestamp(record["expires_at"]),
            last_bid_time=parse_timestamp(record["last_bid_time"]),
            created_at=parse_timestamp(record["created_at"]),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "auction_id": self.auction_id,
            "item_description": self.item_description,
            "starting_bid_cents": self.starting_bid_cents,
            "duration_seconds": self.duration_seconds,
            "creator_id": self.creator_id,
            "current_highest_bid_cents": self.current_highest_bid_cents,
            "current_highest_bidder_id": self.current_highest_bidder_id,
            "expires_at": format_timestamp(self.expires_at),
            "last_bid_time": format_timestamp(self.last_bid_time),
            "created_at": format_timestamp(self.created_at),
        }

    def state(self, now: datetime) -> AuctionState:
        return state_at(self.expires_at, now)

    def to_payload(self, bidder_name: str | None, now: datetime) -> dict[str, Any]:
        """Render the auction in the JSON shape served by the HTTP API."""
        return {
            "id": self.auction_id,
            "itemDescription": self.item_description,
            "startingBid": format_amount(self.starting_bid_cents),
            "duration": self.duration_seconds,
            "creatorId": self.creator_id,
            "currentHighestBid": format_amount(self.current_highest_bid_cents),
            "currentHighestBidderId": self.current_highest_bidder_id,
            "currentHighestBidder": {"name": bidder_name or UNKNOWN_BIDDER},
            "expiresAt": format_timestamp(self.expires_at),
            "lastBidTime": format_timestamp(self.last_bid_time),
            "createdAt": format_timestamp(self.created_at),
            "status": self.state(now).value,
        }


@dataclass(frozen=True)
class BidResult:
    auction: Auction
    bidder_name: str
    extended: bool = False
