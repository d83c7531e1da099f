"""Bid acceptance and soft-close extension rules.

These functions are pure: callers supply the clock reading, and storage
backends run :func:`apply_bid` inside whatever atomic section they provide.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from ..config import BiddingConfig
from ..transport.timestamps import format_timestamp
from .errors import AuctionClosed, BidTooLow
from .fsm import AuctionEvent, transition
from .models import Auction


@dataclass(frozen=True)
class ExtensionPolicy:
    threshold: timedelta = timedelta(seconds=10)
    window: timedelta = timedelta(seconds=10)

    @classmethod
    def from_config(cls, config: BiddingConfig) -> "ExtensionPolicy":
        return cls(
            threshold=timedelta(seconds=config.extension_threshold_seconds),
            window=timedelta(seconds=config.extension_window_seconds),
        )


@dataclass(frozen=True)
class BidUpdate:
    amount_cents: int
    bidder_id: str
    placed_at: datetime
    policy: ExtensionPolicy


def extended_expiry(expires_at: datetime, now: datetime, policy: ExtensionPolicy) -> datetime:
    """Push the deadline to ``now + window`` when a bid lands inside the threshold.

    The result is never earlier than ``expires_at``, and repeated late bids
    reset the window rather than adding to it.
    """
    if expires_at - now < policy.threshold:
        return max(expires_at, now + policy.window)
    return expires_at


def check_bid(auction: Auction, amount_cents: int, now: datetime) -> None:
    try:
        transition(auction.state(now), AuctionEvent.BID_ACCEPTED)
    except ValueError as exc:
        raise AuctionClosed("Bid too late: auction has closed") from exc
    if amount_cents <= auction.current_highest_bid_cents:
        raise BidTooLow("Bid too low: must exceed the current highest bid")


def apply_bid(record: dict[str, Any], update: BidUpdate) -> dict[str, Any] | None:
    """Return the updated auction record, or ``None`` when the bid no longer qualifies."""
    auction = Auction.from_record(record)
    try:
        check_bid(auction, update.amount_cents, update.placed_at)
    except (AuctionClosed, BidTooLow):
        return None
    expires_at = extended_expiry(auction.expires_at, update.placed_at, update.policy)
    updated = dict(record)
    updated.update(
        {
            "current_highest_bid_cents": update.amount_cents,
            "current_highest_bidder_id": update.bidder_id,
            "expires_at": format_timestamp(expires_at),
            "last_bid_time": format_timestamp(update.placed_at),
        }
    )
    return updated
