"""Failures surfaced by the auction service."""

from __future__ import annotations


class AuctionError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthorized(AuctionError):
    status_code = 401


class InvalidInput(AuctionError):
    status_code = 400


class NotFound(AuctionError):
    status_code = 404


class AuctionClosed(AuctionError):
    status_code = 400


class BidTooLow(AuctionError):
    status_code = 400


class BidConflict(BidTooLow):
    """A concurrent bid was stored between validation and the conditional update."""


class InternalFailure(AuctionError):
    status_code = 500
