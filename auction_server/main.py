from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from jsonschema import ValidationError

from .admin import config as admin_config
from .admin import health as admin_health
from .admin import stats as admin_stats
from .auctions.errors import AuctionError, InternalFailure
from .auctions.models import BidResult
from .auctions.rules import ExtensionPolicy
from .auctions.service import AuctionService
from .auth.identity import Identity, IdentityResolver
from .config import ServerConfig, get_server_config
from .storage import build_storage
from .validation.validator import SchemaRegistry, get_schema_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    server_config = get_server_config()
    schema_registry = get_schema_registry()
    storage = build_storage(server_config)
    identity_resolver = IdentityResolver(server_config.auth)
    auction_service = AuctionService(
        storage=storage,
        policy=ExtensionPolicy.from_config(server_config.bidding),
    )

    app.state.server_config = server_config
    app.state.schema_registry = schema_registry
    app.state.identity_resolver = identity_resolver
    app.state.auction_service = auction_service
    app.state.start_time = datetime.now(timezone.utc)

    try:
        yield
    finally:
        await storage.close()


app = FastAPI(
    title="Auction Bid Server",
    version="1.0.0",
    docs_url="/docs",
    lifespan=lifespan,
)

app.include_router(admin_health.router)
app.include_router(admin_stats.router)
app.include_router(admin_config.router)


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    reason = errors[0].get("msg", "malformed request") if errors else "malformed request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": f"Invalid request: {reason}"},
    )


# Dependency helpers ---------------------------------------------------------


def get_server_settings(request: Request) -> ServerConfig:
    return request.app.state.server_config


def get_schema_service(request: Request) -> SchemaRegistry:
    return request.app.state.schema_registry


def get_auction_service(request: Request) -> AuctionService:
    return request.app.state.auction_service


def get_identity(request: Request) -> Identity:
    resolver: IdentityResolver = request.app.state.identity_resolver
    return resolver.resolve(request.headers)


# Routes ---------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root(settings: ServerConfig = Depends(get_server_settings)) -> dict[str, Any]:
    return {
        "service": "auction-server",
        "version": app.version,
        "storage_backend": settings.storage.backend,
        "bidding": {
            "extension_threshold_seconds": settings.bidding.extension_threshold_seconds,
            "extension_window_seconds": settings.bidding.extension_window_seconds,
        },
    }


@app.get("/auction", tags=["auction"])
async def list_auctions(
    service: AuctionService = Depends(get_auction_service),
) -> dict[str, Any]:
    try:
        auctions = await service.list_auctions()
    except Exception as exc:
        raise _internal_error("Error fetching auctions", exc) from exc
    now = service.now()
    return {"auctions": [auction.to_payload(name, now) for auction, name in auctions]}


@app.get("/auction/{auction_id}", tags=["auction"])
async def get_auction(
    auction_id: str,
    service: AuctionService = Depends(get_auction_service),
) -> dict[str, Any]:
    try:
        auction, name = await service.get_auction(auction_id)
    except AuctionError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    except Exception as exc:
        raise _internal_error("Error fetching auction", exc) from exc
    return {"auction": auction.to_payload(name, service.now())}


@app.post("/auction", tags=["auction"], status_code=status.HTTP_201_CREATED)
async def create_auction(
    payload: Any = Body(None),
    identity: Identity = Depends(get_identity),
    schemas: SchemaRegistry = Depends(get_schema_service),
    service: AuctionService = Depends(get_auction_service),
) -> dict[str, Any]:
    _require_authenticated(identity)
    _validate(schemas, "create_auction", payload, "Invalid auction data")
    try:
        result = await service.create_auction(
            identity,
            payload.get("itemDescription"),
            payload.get("startingBid"),
            payload.get("duration"),
        )
    except AuctionError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    except Exception as exc:
        raise _internal_error("Error creating auction", exc) from exc
    return {
        "message": "Auction created successfully!",
        "auction": _result_payload(result, service),
    }


@app.patch("/auction", tags=["auction"])
async def place_bid(
    payload: Any = Body(None),
    identity: Identity = Depends(get_identity),
    schemas: SchemaRegistry = Depends(get_schema_service),
    service: AuctionService = Depends(get_auction_service),
) -> dict[str, Any]:
    _require_authenticated(identity)
    _validate(schemas, "place_bid", payload, "Invalid bid data")
    try:
        result = await service.submit_bid(
            payload.get("auctionId"),
            payload.get("newBid"),
            identity,
        )
    except AuctionError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    except Exception as exc:
        raise _internal_error("Error placing bid", exc) from exc
    return {
        "message": "Bid placed successfully!",
        "auction": _result_payload(result, service),
        "extended": result.extended,
    }


def _require_authenticated(identity: Identity) -> None:
    if not identity.authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def _validate(schemas: SchemaRegistry, schema_name: str, payload: Any, message: str) -> None:
    try:
        schemas.validate(schema_name, payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"{message}: {exc.message}"
        ) from exc


def _result_payload(result: BidResult, service: AuctionService) -> dict[str, Any]:
    return result.auction.to_payload(result.bidder_name, service.now())


def _internal_error(message: str, exc: Exception) -> HTTPException:
    logger.error(f"{message}: {exc}", exc_info=True)
    failure = InternalFailure("Internal Server Error")
    return HTTPException(status_code=failure.status_code, detail=failure.message)
