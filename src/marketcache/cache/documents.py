"""Document cache — collection documents, query results and cascades."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from marketcache.cache.keys import (
    PAYLOAD_INDEX_KEY,
    canonical_json,
    collection_pattern,
    collection_query_pattern,
    document_key,
    query_key,
)
from marketcache.cache.store import KeyValueStore, validate_value
from marketcache.errors.exceptions import SerializationError
from marketcache.types import (
    CacheResult,
    CacheTTL,
    PayloadCacheEntry,
    QueryCacheEntry,
    now_ms,
)

logger = logging.getLogger(__name__)

MERCHANTS = "merchants"
ADDRESSES = "addresses"


class _IndexedKey(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    collection: str
    kind: str = "document"
    expires_at: int = Field(alias="expiresAt")


class DocumentCache:
    """Caches documents and query results of a document store's collections.

    Every write also records its key in the ``payload:index`` registry so
    per-collection statistics never depend on parsing key strings.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # ── Documents ──

    async def cache_document(
        self,
        collection: str,
        doc_id: str,
        data: Any,
        ttl: int = CacheTTL.MEDIUM,
    ) -> CacheResult[PayloadCacheEntry[Any]]:
        entry = PayloadCacheEntry[Any](
            collection=collection, id=str(doc_id), data=data, ttl_seconds=int(ttl)
        )
        key = document_key(collection, str(doc_id))
        written = await self._write(key, entry, "document", int(ttl))
        if not written.success:
            return written
        return CacheResult.ok(entry)

    async def get_document(
        self,
        collection: str,
        doc_id: str,
        model: Any = None,
    ) -> CacheResult[PayloadCacheEntry[Any]]:
        """Cached document envelope; ``model`` validates the document body."""
        schema = PayloadCacheEntry[model] if model is not None else PayloadCacheEntry[Any]
        return await self._store.get(document_key(collection, str(doc_id)), schema)

    async def invalidate_document(self, collection: str, doc_id: str) -> CacheResult[bool]:
        key = document_key(collection, str(doc_id))
        result = await self._store.delete(key)
        if result.success:
            await self._store.hash_delete(PAYLOAD_INDEX_KEY, [key])
        return result

    # ── Queries ──

    async def cache_query(
        self,
        collection: str,
        query: Mapping[str, Any],
        results: Any,
        ttl: int = CacheTTL.SHORT,
    ) -> CacheResult[QueryCacheEntry]:
        try:
            key = query_key(collection, query)
        except SerializationError as exc:
            return CacheResult.fail(str(exc))
        entry = QueryCacheEntry(
            collection=collection, query=dict(query), results=results, ttl_seconds=int(ttl)
        )
        written = await self._write(key, entry, "query", int(ttl))
        if not written.success:
            return written
        return CacheResult.ok(entry)

    async def get_query(
        self,
        collection: str,
        query: Mapping[str, Any],
        model: Any = None,
    ) -> CacheResult[Any]:
        """Cached results for ``query``; stale entries are deleted and missed.

        The envelope keeps the query it was stored for, so a fingerprint
        collision reads as a miss rather than as another query's results.
        """
        try:
            key = query_key(collection, query)
            wanted = canonical_json(dict(query))
        except SerializationError as exc:
            return CacheResult.fail(str(exc))

        result = await self._store.get(key, QueryCacheEntry)
        if not result.is_hit:
            return result
        entry: QueryCacheEntry = result.data
        if entry.is_stale():
            logger.debug("Query %s is stale, deleting", key)
            await self._store.delete(key)
            await self._store.hash_delete(PAYLOAD_INDEX_KEY, [key])
            return CacheResult.miss()
        if canonical_json(entry.query) != wanted:
            logger.warning("Fingerprint collision on %s, treating as miss", key)
            return CacheResult.miss()

        results = entry.results
        if model is not None:
            try:
                results = validate_value(model, results, key)
            except SerializationError as exc:
                return CacheResult.fail(str(exc))
        return CacheResult.found(results)

    # ── Invalidation ──

    async def invalidate_collection(self, collection: str) -> CacheResult[int]:
        """Delete every cached document and query of ``collection``."""
        result = await self._delete_pattern(collection_pattern(collection))
        if result.success:
            logger.info("Invalidated %d keys of collection '%s'", result.data, collection)
        return result

    async def invalidate_merchant_caches(self, merchant_id: str) -> CacheResult[int]:
        """Drop one merchant document and every cached merchant query."""
        return await self._cascade(MERCHANTS, merchant_id, collection_query_pattern(MERCHANTS))

    async def invalidate_address_caches(self, address_id: str) -> CacheResult[int]:
        """Drop one address document and everything cached for merchants.

        Any merchant entry may embed the changed address, so all of them go.
        """
        return await self._cascade(ADDRESSES, address_id, collection_pattern(MERCHANTS))

    # ── Statistics ──

    async def get_collection_stats(self) -> CacheResult[dict[str, int]]:
        """Live cached keys per collection, read from the key registry."""
        indexed = await self._store.hash_get_all(PAYLOAD_INDEX_KEY)
        if not indexed.success:
            return CacheResult.fail(indexed.error or "registry read failed")

        stats: dict[str, int] = {}
        expired: list[str] = []
        now = now_ms()
        for key, raw in (indexed.data or {}).items():
            try:
                meta = _IndexedKey.model_validate(raw)
            except ValidationError:
                expired.append(key)
                continue
            if meta.expires_at <= now:
                expired.append(key)
                continue
            stats[meta.collection] = stats.get(meta.collection, 0) + 1

        if expired:
            await self._store.hash_delete(PAYLOAD_INDEX_KEY, expired)
        return CacheResult.ok(dict(sorted(stats.items())))

    # ── Convenience wrappers ──

    async def cache_merchant(
        self, merchant_id: str, data: Any, ttl: int = CacheTTL.LONG
    ) -> CacheResult[PayloadCacheEntry[Any]]:
        return await self.cache_document(MERCHANTS, merchant_id, data, ttl)

    async def get_merchant(
        self, merchant_id: str, model: Any = None
    ) -> CacheResult[PayloadCacheEntry[Any]]:
        return await self.get_document(MERCHANTS, merchant_id, model)

    async def cache_address(
        self, address_id: str, data: Any, ttl: int = CacheTTL.LONG
    ) -> CacheResult[PayloadCacheEntry[Any]]:
        return await self.cache_document(ADDRESSES, address_id, data, ttl)

    async def get_address(
        self, address_id: str, model: Any = None
    ) -> CacheResult[PayloadCacheEntry[Any]]:
        return await self.get_document(ADDRESSES, address_id, model)

    async def cache_merchants_by_location(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        merchants: list[Any],
        ttl: int = CacheTTL.MEDIUM,
    ) -> CacheResult[QueryCacheEntry]:
        query = {"latitude": latitude, "longitude": longitude, "radiusKm": radius_km}
        return await self.cache_query(MERCHANTS, query, merchants, ttl)

    async def get_merchants_by_location(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        model: Any = None,
    ) -> CacheResult[Any]:
        query = {"latitude": latitude, "longitude": longitude, "radiusKm": radius_km}
        return await self.get_query(MERCHANTS, query, model)

    # ── Internals ──

    async def _write(self, key: str, entry: Any, kind: str, ttl: int) -> CacheResult[Any]:
        registration = {
            "collection": entry.collection,
            "kind": kind,
            "expiresAt": entry.expires_at,
        }
        committed = await (
            self._store.transaction()
            .set(key, entry, ttl)
            .hash_set(PAYLOAD_INDEX_KEY, {key: registration})
            .extend_expiry(PAYLOAD_INDEX_KEY, ttl)
            .commit()
        )
        if not committed.success:
            return CacheResult.fail(committed.error or f"{kind} write failed")
        return committed

    async def _cascade(self, collection: str, doc_id: str, dependent_pattern: str) -> CacheResult[int]:
        document = await self.invalidate_document(collection, doc_id)
        if not document.success:
            return CacheResult.fail(document.error or "document invalidation failed")
        dependents = await self._delete_pattern(dependent_pattern)
        total = int(bool(document.data)) + (dependents.data or 0)
        if not dependents.success:
            return CacheResult(success=False, data=total, error=dependents.error)
        logger.info("Cascade from %s/%s removed %d keys", collection, doc_id, total)
        return CacheResult.ok(total)

    async def _delete_pattern(self, pattern: str) -> CacheResult[int]:
        listed = await self._store.keys(pattern)
        if not listed.success:
            return CacheResult.fail(listed.error or "key scan failed")
        keys = list(listed.data or [])
        if not keys:
            return CacheResult.ok(0)
        result = await self._store.delete_many(keys)
        await self._store.hash_delete(PAYLOAD_INDEX_KEY, keys)
        return result
