"""Firestore storage backend leveraging google-cloud-firestore."""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Callable, Iterable

from google.cloud import firestore
from google.oauth2 import service_account

from ..auctions.rules import BidUpdate, apply_bid
from ..transport.timestamps import format_timestamp, utc_now


class FirestoreStorage:
    def __init__(
        self,
        *,
        project_id: str,
        collection: str = "auctions",
        users_collection: str = "users",
        credentials_path: str | None = None,
    ) -> None:
        if not project_id:
            raise ValueError("project_id required for firestore backend")
        client_kwargs: dict[str, Any] = {"project": project_id}
        if credentials_path:
            client_kwargs["credentials"] = service_account.Credentials.from_service_account_file(
                credentials_path
            )
        self._client = firestore.Client(**client_kwargs)
        self._collection_name = collection
        self._users_collection_name = users_collection

    def _collection(self):
        return self._client.collection(self._collection_name)

    def _users_collection(self):
        return self._client.collection(self._users_collection_name)

    async def _run(self, func: Callable, *args, **kwargs):
        return await asyncio.to_thread(func, *args, **kwargs)

    async def create_auction(self, record: dict[str, Any]) -> dict[str, Any]:
        # create() fails if the document already exists
        await self._run(self._collection().document(record["auction_id"]).create, record)
        return record

    async def get_auction(self, auction_id: str) -> dict[str, Any]:
        doc = await self._run(self._collection().document(auction_id).get)
        if not doc.exists:
            raise KeyError(auction_id)
        return doc.to_dict()

    async def list_auctions(self) -> list[dict[str, Any]]:
        query = self._collection().order_by(
            "created_at", direction=firestore.Query.DESCENDING
        )
        docs = await self._run(lambda: list(query.stream()))
        return [doc.to_dict() for doc in docs]

    async def apply_bid(self, auction_id: str, update: BidUpdate) -> dict[str, Any] | None:
        ref = self._collection().document(auction_id)

        @firestore.transactional
        def _apply(transaction) -> dict[str, Any] | None:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise KeyError(auction_id)
            updated = apply_bid(snapshot.to_dict(), update)
            if updated is not None:
                transaction.set(ref, updated)
            return updated

        return await self._run(_apply, self._client.transaction())

    async def upsert_user(self, identity: str, name: str) -> dict[str, Any]:
        ref = self._users_collection().document(identity)

        @firestore.transactional
        def _upsert(transaction) -> dict[str, Any]:
            snapshot = ref.get(transaction=transaction)
            now = format_timestamp(utc_now())
            if snapshot.exists:
                user = snapshot.to_dict()
                user.update({"name": name, "updated_at": now})
            else:
                user = {
                    "id": uuid.uuid4().hex,
                    "identity": identity,
                    "name": name,
                    "created_at": now,
                    "updated_at": now,
                }
            transaction.set(ref, user)
            return user

        return await self._run(_upsert, self._client.transaction())

    async def get_users(self, user_ids: Iterable[str]) -> list[dict[str, Any]]:
        ids = list(dict.fromkeys(user_ids))
        users: list[dict[str, Any]] = []
        # Firestore caps "in" filters at 30 values per query
        for start in range(0, len(ids), 30):
            query = self._users_collection().where(
                filter=firestore.FieldFilter("id", "in", ids[start : start + 30])
            )
            docs = await self._run(lambda: list(query.stream()))
            users.extend(doc.to_dict() for doc in docs)
        return users

    async def ping(self) -> None:
        await self._run(lambda: list(self._collection().limit(1).stream()))

    async def close(self) -> None:
        await self._run(self._client.close)
