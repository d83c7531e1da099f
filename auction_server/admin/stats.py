"""Operational stats endpoint."""

from __future__ import annotations

from collections import Counter
from typing import Any

from fastapi import APIRouter, Depends, Request

from ..auctions.fsm import AuctionState
from ..auctions.service import AuctionService

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_service(request: Request) -> AuctionService:
    return request.app.state.auction_service


@router.get("/stats")
async def stats(service: AuctionService = Depends(_get_service)) -> dict[str, Any]:
    auctions = [auction for auction, _ in await service.list_auctions()]
    now = service.now()
    states: Counter[str] = Counter(auction.state(now).value for auction in auctions)
    # Creation stamps last_bid_time with created_at; any accepted bid moves it forward.
    with_bids = [auction for auction in auctions if auction.last_bid_time > auction.created_at]
    leaders = {auction.current_highest_bidder_id for auction in with_bids}
    return {
        "total_auctions": len(auctions),
        "open_auctions": states[AuctionState.OPEN.value],
        "closed_auctions": states[AuctionState.CLOSED.value],
        "auctions_with_bids": len(with_bids),
        "distinct_leading_bidders": len(leaders),
    }
