"""Auction lifecycle state machine.

The state is never stored: it is projected from the stored expiry and the
caller's clock, and a bid is only accepted where the table allows it.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum


class AuctionState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class AuctionEvent(str, Enum):
    BID_ACCEPTED = "bid_accepted"
    DEADLINE_PASSED = "deadline_passed"


# CLOSED has no outgoing transitions.
_TRANSITIONS = {
    (AuctionState.OPEN, AuctionEvent.BID_ACCEPTED): AuctionState.OPEN,
    (AuctionState.OPEN, AuctionEvent.DEADLINE_PASSED): AuctionState.CLOSED,
}


def state_at(expires_at: datetime, now: datetime) -> AuctionState:
    state = AuctionState.OPEN
    if now > expires_at:
        state = transition(state, AuctionEvent.DEADLINE_PASSED)
    return state


def transition(current: AuctionState, event: AuctionEvent) -> AuctionState:
    try:
        return _TRANSITIONS[(current, event)]
    except KeyError as exc:
        raise ValueError(f"invalid transition from {current} via {event}") from exc
