from __future__ import annotations

import asyncio
import copy
import json
import logging
from typing import Callable, Protocol

import redis.asyncio as redis_async
from redis.exceptions import WatchError

from liveroom.core.config import REDIS_URL, STORE_KEY_PREFIX, STORE_UPDATE_RETRIES, USE_REDIS_STORE

logger = logging.getLogger("session.store")

Mutator = Callable[[dict | None], dict | None]


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> dict | None:
        ...

    async def insert(self, collection: str, doc_id: str, document: dict) -> bool:
        ...

    async def modify(self, collection: str, doc_id: str, mutate: Mutator) -> dict | None:
        ...

    async def find(self, collection: str, predicate: Callable[[dict], bool] | None = None) -> list[dict]:
        ...


class StoreConflict(RuntimeError):
    pass


class LocalDocumentStore:
    """In-process document store.

    ``modify`` runs the mutator under the store lock, so each call is an atomic
    read-modify-write. The mutator receives ``None`` when the document does not
    exist and returns ``None`` to skip the write.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._collections: dict[str, dict[str, dict]] = {}

    async def get(self, collection: str, doc_id: str) -> dict | None:
        if not doc_id:
            return None
        async with self._lock:
            document = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    async def insert(self, collection: str, doc_id: str, document: dict) -> bool:
        async with self._lock:
            documents = self._collections.setdefault(collection, {})
            if doc_id in documents:
                return False
            documents[doc_id] = copy.deepcopy(document)
            return True

    async def modify(self, collection: str, doc_id: str, mutate: Mutator) -> dict | None:
        async with self._lock:
            documents = self._collections.setdefault(collection, {})
            current = documents.get(doc_id)
            updated = mutate(copy.deepcopy(current) if current is not None else None)
            if updated is None:
                return None
            documents[doc_id] = copy.deepcopy(updated)
            return copy.deepcopy(updated)

    async def find(self, collection: str, predicate: Callable[[dict], bool] | None = None) -> list[dict]:
        async with self._lock:
            documents = list(self._collections.get(collection, {}).values())
        return [copy.deepcopy(doc) for doc in documents if predicate is None or predicate(doc)]


class RedisDocumentStore:
    """Redis-backed document store.

    Keys:
    - {prefix}:{collection}:{doc_id} (JSON string)

    ``modify`` is an optimistic WATCH/MULTI transaction retried on conflict.
    """

    def __init__(self, redis_url: str, prefix: str = STORE_KEY_PREFIX, max_retries: int = STORE_UPDATE_RETRIES):
        self._redis = redis_async.from_url(redis_url, decode_responses=True)
        self._prefix = str(prefix or "liveroom")
        self._max_retries = max(1, int(max_retries))

    def _key(self, collection: str, doc_id: str) -> str:
        return f"{self._prefix}:{collection}:{doc_id}"

    async def get(self, collection: str, doc_id: str) -> dict | None:
        if not doc_id:
            return None
        raw = await self._redis.get(self._key(collection, doc_id))
        return json.loads(raw) if raw else None

    async def insert(self, collection: str, doc_id: str, document: dict) -> bool:
        created = await self._redis.set(self._key(collection, doc_id), json.dumps(document), nx=True)
        return bool(created)

    async def modify(self, collection: str, doc_id: str, mutate: Mutator) -> dict | None:
        key = self._key(collection, doc_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            for attempt in range(self._max_retries):
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    current = json.loads(raw) if raw else None
                    updated = mutate(current)
                    if updated is None:
                        await pipe.unwatch()
                        return None
                    pipe.multi()
                    pipe.set(key, json.dumps(updated))
                    await pipe.execute()
                    return updated
                except WatchError:
                    logger.info("Store modify conflict; retrying | key=%s attempt=%s", key, attempt + 1)
                    continue
        raise StoreConflict(f"modify of {key} did not settle after {self._max_retries} attempts")

    async def find(self, collection: str, predicate: Callable[[dict], bool] | None = None) -> list[dict]:
        keys = [key async for key in self._redis.scan_iter(match=f"{self._prefix}:{collection}:*")]
        if not keys:
            return []
        rows = await self._redis.mget(keys)
        documents = [json.loads(raw) for raw in rows if raw]
        return [doc for doc in documents if predicate is None or predicate(doc)]


def build_document_store() -> DocumentStore:
    if not USE_REDIS_STORE:
        return LocalDocumentStore()

    if not REDIS_URL:
        raise RuntimeError("USE_REDIS_STORE=true requires REDIS_URL")
    return RedisDocumentStore(REDIS_URL)
