from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Protocol, runtime_checkable

from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.cloud import firestore
from google.cloud.firestore_v1.async_client import AsyncClient
from google.cloud.firestore_v1.base_query import FieldFilter
from loguru import logger

from streettalk.constants import MSG_DELETE_FAILED, MSG_LOAD_FAILED, MSG_SAVE_FAILED
from streettalk.domain.errors import NotFoundError, QueryFailure
from streettalk.domain.models import Document, PaginationCursor, QuerySpec
from streettalk.domain.policies import now_ms


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Placeholder resolved by the store at write time.
SERVER_TIMESTAMP: Any = _ServerTimestamp()

# Firestore field path of the document id
DOCUMENT_ID = "__name__"


@dataclass(frozen=True, slots=True)
class QueryResult:
    documents: list[Document]
    # last returned document, None when nothing came back
    cursor: PaginationCursor | None


@runtime_checkable
class DocumentStore(Protocol):
    async def query(self, spec: QuerySpec, *, limit: int, start_after: PaginationCursor | None = None) -> QueryResult: ...
    async def list_ids(self, collection: str, field: str, value: Any) -> list[str]: ...
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...
    async def add(self, collection: str, data: dict[str, Any]) -> str: ...
    async def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True) -> None: ...
    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...
    async def delete(self, collection: str, doc_id: str) -> None: ...
    async def increment(self, collection: str, doc_id: str, field: str, amount: int) -> None: ...
    async def array_union(self, collection: str, doc_id: str, field: str, values: list[Any]) -> None: ...
    async def array_remove(self, collection: str, doc_id: str, field: str, values: list[Any]) -> None: ...


class InMemoryDocumentStore:
    """
    Dict-backed store with the same ordering contract as Firestore:
    order field descending, ties broken by document id descending.
    """

    def __init__(self, *, clock=now_ms) -> None:
        self._clock = clock
        self._collections: Dict[str, Dict[str, dict[str, Any]]] = {}

    def _coll(self, name: str) -> Dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _resolve(self, data: dict[str, Any]) -> dict[str, Any]:
        return {k: (self._clock() if v is SERVER_TIMESTAMP else v) for k, v in data.items()}

    async def query(self, spec: QuerySpec, *, limit: int, start_after: PaginationCursor | None = None) -> QueryResult:
        # documents without the order field never match an ordered query
        rows = [
            (doc_id, data)
            for doc_id, data in self._coll(spec.collection).items()
            if data.get(spec.order_by) is not None
            and (spec.filter_field is None or data.get(spec.filter_field) == spec.filter_value)
        ]
        rows.sort(key=lambda r: (r[1].get(spec.order_by), r[0]), reverse=True)

        if start_after is not None:
            # positional: strictly after the cursor key, even if that doc is gone
            anchor = (start_after.created_at, start_after.doc_id)
            rows = [r for r in rows if (r[1].get(spec.order_by), r[0]) < anchor]

        docs = [Document(doc_id=doc_id, data=copy.deepcopy(data)) for doc_id, data in rows[:limit]]
        cursor = None
        if docs:
            last = docs[-1]
            cursor = PaginationCursor(doc_id=last.doc_id, created_at=last.data.get(spec.order_by))
        return QueryResult(documents=docs, cursor=cursor)

    async def list_ids(self, collection: str, field: str, value: Any) -> list[str]:
        return [doc_id for doc_id, data in self._coll(collection).items() if data.get(field) == value]

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        data = self._coll(collection).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self._coll(collection)[doc_id] = self._resolve(data)
        return doc_id

    async def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True) -> None:
        coll = self._coll(collection)
        base = coll.get(doc_id, {}) if merge else {}
        coll[doc_id] = {**base, **self._resolve(data)}

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        coll = self._coll(collection)
        if doc_id not in coll:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        coll[doc_id].update(self._resolve(data))

    async def delete(self, collection: str, doc_id: str) -> None:
        self._coll(collection).pop(doc_id, None)

    async def increment(self, collection: str, doc_id: str, field: str, amount: int) -> None:
        coll = self._coll(collection)
        if doc_id not in coll:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        coll[doc_id][field] = coll[doc_id].get(field, 0) + amount

    async def array_union(self, collection: str, doc_id: str, field: str, values: list[Any]) -> None:
        doc = self._coll(collection).setdefault(doc_id, {})
        current = list(doc.get(field, []))
        current.extend(v for v in values if v not in current)
        doc[field] = current

    async def array_remove(self, collection: str, doc_id: str, field: str, values: list[Any]) -> None:
        doc = self._coll(collection).setdefault(doc_id, {})
        doc[field] = [v for v in doc.get(field, []) if v not in values]


class FirestoreDocumentStore:
    """Cloud Firestore through the async client. API errors surface as QueryFailure."""

    def __init__(self, *, client: AsyncClient) -> None:
        self._db = client

    async def start(self) -> None:
        # channel opens lazily on the first call
        logger.info("Firestore client ready: project={}", self._db.project)

    async def stop(self) -> None:
        # AsyncClient has no close(); the GAPIC transport owns the channel
        await self._db._firestore_api.transport.close()
        logger.info("Firestore client closed")

    @staticmethod
    def _resolve(data: dict[str, Any]) -> dict[str, Any]:
        return {k: (firestore.SERVER_TIMESTAMP if v is SERVER_TIMESTAMP else v) for k, v in data.items()}

    async def query(self, spec: QuerySpec, *, limit: int, start_after: PaginationCursor | None = None) -> QueryResult:
        q = self._db.collection(spec.collection)
        if spec.filter_field is not None:
            q = q.where(filter=FieldFilter(spec.filter_field, "==", spec.filter_value))
        # document id breaks createdAt ties, same as the in-memory store
        q = q.order_by(spec.order_by, direction=firestore.Query.DESCENDING)
        q = q.order_by(DOCUMENT_ID, direction=firestore.Query.DESCENDING)
        if start_after is not None:
            if start_after.snapshot is not None:
                q = q.start_after(start_after.snapshot)
            else:
                q = q.start_after({spec.order_by: start_after.created_at, DOCUMENT_ID: start_after.doc_id})
        q = q.limit(limit)

        try:
            snapshots = await q.get()
        except GoogleAPICallError as exc:
            logger.warning("Firestore query failed: {} ({})", spec.collection, exc)
            raise QueryFailure(MSG_LOAD_FAILED) from exc

        docs = [Document(doc_id=s.id, data=s.to_dict() or {}) for s in snapshots]
        cursor = None
        if snapshots:
            last = snapshots[-1]
            cursor = PaginationCursor(doc_id=last.id, created_at=last.get(spec.order_by), snapshot=last)
        return QueryResult(documents=docs, cursor=cursor)

    async def list_ids(self, collection: str, field: str, value: Any) -> list[str]:
        q = self._db.collection(collection).where(filter=FieldFilter(field, "==", value))
        try:
            return [s.id async for s in q.stream()]
        except GoogleAPICallError as exc:
            raise QueryFailure(MSG_LOAD_FAILED) from exc

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            snap = await self._db.collection(collection).document(doc_id).get()
        except GoogleAPICallError as exc:
            raise QueryFailure(MSG_LOAD_FAILED) from exc
        return snap.to_dict() if snap.exists else None

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        try:
            _, ref = await self._db.collection(collection).add(self._resolve(data))
        except GoogleAPICallError as exc:
            raise QueryFailure(MSG_SAVE_FAILED) from exc
        return ref.id

    async def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True) -> None:
        try:
            await self._db.collection(collection).document(doc_id).set(self._resolve(data), merge=merge)
        except GoogleAPICallError as exc:
            raise QueryFailure(MSG_SAVE_FAILED) from exc

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            await self._db.collection(collection).document(doc_id).update(self._resolve(data))
        except NotFound as exc:
            raise NotFoundError(f"{collection}/{doc_id} not found") from exc
        except GoogleAPICallError as exc:
            raise QueryFailure(MSG_SAVE_FAILED) from exc

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            await self._db.collection(collection).document(doc_id).delete()
        except GoogleAPICallError as exc:
            raise QueryFailure(MSG_DELETE_FAILED) from exc

    async def increment(self, collection: str, doc_id: str, field: str, amount: int) -> None:
        await self.update(collection, doc_id, {field: firestore.Increment(amount)})

    async def array_union(self, collection: str, doc_id: str, field: str, values: list[Any]) -> None:
        await self.set(collection, doc_id, {field: firestore.ArrayUnion(values)}, merge=True)

    async def array_remove(self, collection: str, doc_id: str, field: str, values: list[Any]) -> None:
        await self.set(collection, doc_id, {field: firestore.ArrayRemove(values)}, merge=True)
