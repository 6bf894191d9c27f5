"""Geospatial cache — nearby-merchant query results and location snapshots.

Every cached geo query is also recorded in a spatial index: one hash per
1° grid cell (``geo:index:{cell}``) mapping the query key to the query's
centre and expiry. Area invalidation reads the cells around the area
instead of re-deriving coordinates from key strings.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from marketcache.cache.keys import (
    GEO_INDEX_PREFIX,
    GEO_QUERY_PREFIX,
    MERCHANT_LOCATION_PREFIX,
    escape_pattern,
    geo_index_key,
    geo_query_key,
    merchant_location_key,
)
from marketcache.cache.store import KeyValueStore, validate_value
from marketcache.errors.exceptions import SerializationError
from marketcache.types import (
    CacheResult,
    CacheTTL,
    GeoQueryCacheEntry,
    GeospatialCacheEntry,
    GeospatialQuery,
    NearbyMerchant,
    now_ms,
)
from marketcache.utils.geo import cell_for, cells_for_area, haversine_km

logger = logging.getLogger(__name__)


class _IndexedQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    latitude: float
    longitude: float
    expires_at: int = Field(alias="expiresAt")


class GeospatialCache:
    """Caches proximity-query results and per-merchant locations."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # ── Geo queries ──

    async def cache_geo_query(
        self,
        query: GeospatialQuery | Mapping[str, Any],
        results: Any,
        ttl: int = CacheTTL.MEDIUM,
    ) -> CacheResult[GeoQueryCacheEntry]:
        """Store ``results`` for ``query`` and index the query by area."""
        try:
            query = _coerce_query(query)
            key = geo_query_key(query)
        except SerializationError as exc:
            return CacheResult.fail(str(exc))

        entry = GeoQueryCacheEntry(query=query, results=results, ttl_seconds=int(ttl))
        index_entry = {
            "latitude": query.latitude,
            "longitude": query.longitude,
            "expiresAt": entry.expires_at,
        }
        bucket = geo_index_key(cell_for(query.latitude, query.longitude))
        committed = await (
            self._store.transaction()
            .set(key, entry, int(ttl))
            .hash_set(bucket, {key: index_entry})
            .extend_expiry(bucket, int(ttl))
            .commit()
        )
        if not committed.success:
            return CacheResult.fail(committed.error or "geo query write failed")
        return CacheResult.ok(entry)

    async def get_geo_query(
        self,
        query: GeospatialQuery | Mapping[str, Any],
        model: Any = None,
    ) -> CacheResult[Any]:
        """Cached results for ``query``; stale entries are deleted and missed."""
        try:
            query = _coerce_query(query)
            key = geo_query_key(query)
        except SerializationError as exc:
            return CacheResult.fail(str(exc))

        result = await self._store.get(key, GeoQueryCacheEntry)
        if not result.is_hit:
            return result
        entry: GeoQueryCacheEntry = result.data
        if entry.is_stale():
            logger.debug("Geo query %s is stale, deleting", key)
            await self._store.delete(key)
            return CacheResult.miss()

        results = entry.results
        if model is not None:
            try:
                results = validate_value(model, results, key)
            except SerializationError as exc:
                return CacheResult.fail(str(exc))
        return CacheResult.found(results)

    # ── Merchant locations ──

    async def cache_merchant_location(
        self,
        merchant_id: str,
        data: Any,
        ttl: int = CacheTTL.LONG,
    ) -> CacheResult[GeospatialCacheEntry]:
        """Snapshot a merchant's location; ``data`` must carry latitude/longitude."""
        coordinates = _coordinates_of(data)
        if coordinates is None:
            return CacheResult.fail(f"Location data for merchant '{merchant_id}' has no coordinates")

        latitude, longitude = coordinates
        entry = GeospatialCacheEntry(
            data=data, latitude=latitude, longitude=longitude, ttl_seconds=int(ttl)
        )
        written = await self._store.set(merchant_location_key(merchant_id), entry, int(ttl))
        if not written.success:
            return written
        return CacheResult.ok(entry)

    async def get_merchant_location(self, merchant_id: str) -> CacheResult[GeospatialCacheEntry]:
        key = merchant_location_key(merchant_id)
        result = await self._store.get(key, GeospatialCacheEntry)
        if not result.is_hit:
            return result
        if result.data.is_stale():
            logger.debug("Merchant location %s is stale, deleting", key)
            await self._store.delete(key)
            return CacheResult.miss()
        return result

    async def invalidate_merchant_location(self, merchant_id: str) -> CacheResult[bool]:
        return await self._store.delete(merchant_location_key(merchant_id))

    # ── Distance ──

    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Great-circle distance in kilometres (Haversine, R = 6371 km)."""
        return haversine_km(lat1, lon1, lat2, lon2)

    async def filter_merchants_by_distance(
        self,
        center_lat: float,
        center_lon: float,
        radius_km: float,
        merchant_ids: Iterable[str],
    ) -> CacheResult[list[NearbyMerchant]]:
        """Cached merchants within ``radius_km`` of the centre, nearest first.

        Merchants without a cached location are skipped; warm the location
        cache first when every merchant must be considered.
        """
        if not self._store.enabled:
            return CacheResult.disabled()

        ids = list(dict.fromkeys(merchant_ids))
        lookups = await asyncio.gather(*(self.get_merchant_location(i) for i in ids))

        nearby: list[NearbyMerchant] = []
        for merchant_id, lookup in zip(ids, lookups, strict=True):
            if not lookup.is_hit:
                continue
            entry: GeospatialCacheEntry = lookup.data
            distance = haversine_km(center_lat, center_lon, entry.latitude, entry.longitude)
            if distance <= radius_km:
                nearby.append(
                    NearbyMerchant(
                        id=merchant_id,
                        latitude=entry.latitude,
                        longitude=entry.longitude,
                        distance=distance,
                        data=entry.data,
                    )
                )
        nearby.sort(key=lambda m: m.distance)
        return CacheResult.ok(nearby)

    # ── Invalidation ──

    async def invalidate_area_cache(
        self,
        center_lat: float,
        center_lon: float,
        radius_km: float,
    ) -> CacheResult[int]:
        """Delete cached geo queries whose centre lies within the area.

        Not atomic: a query cached while the scan runs may survive it.
        Expired index entries met along the way are pruned.
        """
        if not self._store.enabled:
            return CacheResult.disabled()

        cells = cells_for_area(center_lat, center_lon, radius_km)
        if cells is None:
            listed = await self._store.keys(escape_pattern(GEO_INDEX_PREFIX) + "*")
            if not listed.success:
                return CacheResult.fail(listed.error or "index scan failed")
            buckets = listed.data or []
        else:
            buckets = [geo_index_key(cell) for cell in cells]

        deleted = 0
        errors: list[str] = []
        now = now_ms()
        for bucket in buckets:
            indexed = await self._store.hash_get_all(bucket)
            if not indexed.success:
                errors.append(indexed.error or bucket)
                continue

            matched: list[str] = []
            dropped: list[str] = []
            for query_key, raw in (indexed.data or {}).items():
                try:
                    meta = _IndexedQuery.model_validate(raw)
                except ValidationError:
                    dropped.append(query_key)
                    continue
                if meta.expires_at <= now:
                    dropped.append(query_key)
                elif haversine_km(center_lat, center_lon, meta.latitude, meta.longitude) <= radius_km:
                    matched.append(query_key)

            if matched:
                removal = await self._store.delete_many(matched)
                deleted += removal.data or 0
                if removal.success:
                    dropped.extend(matched)
                else:
                    errors.append(removal.error or bucket)
            await self._store.hash_delete(bucket, dropped)

        logger.info(
            "Invalidated %d geo queries within %.2f km of (%.4f, %.4f)",
            deleted, radius_km, center_lat, center_lon,
        )
        if errors:
            return CacheResult(success=False, data=deleted, error="; ".join(errors))
        return CacheResult.ok(deleted)

    async def clear_all_geo_cache(self) -> CacheResult[int]:
        """Delete every geo query, merchant location and spatial-index bucket."""
        if not self._store.enabled:
            return CacheResult.disabled()

        total = 0
        for prefix in (GEO_QUERY_PREFIX, MERCHANT_LOCATION_PREFIX):
            result = await self._store.delete_pattern(escape_pattern(prefix) + "*")
            total += result.data or 0
            if not result.success:
                return CacheResult(success=False, data=total, error=result.error)

        index = await self._store.delete_pattern(escape_pattern(GEO_INDEX_PREFIX) + "*")
        if not index.success:
            return CacheResult(success=False, data=total, error=index.error)
        return CacheResult.ok(total)


def _coerce_query(query: GeospatialQuery | Mapping[str, Any]) -> GeospatialQuery:
    if isinstance(query, GeospatialQuery):
        return query
    try:
        return GeospatialQuery.model_validate(dict(query))
    except ValidationError as exc:
        raise SerializationError(f"Invalid geospatial query: {exc.error_count()} error(s)") from exc


def _coordinates_of(data: Any) -> tuple[float, float] | None:
    if isinstance(data, Mapping):
        latitude, longitude = data.get("latitude"), data.get("longitude")
    else:
        latitude = getattr(data, "latitude", None)
        longitude = getattr(data, "longitude", None)
    if latitude is None or longitude is None:
        return None
    try:
        return float(latitude), float(longitude)
    except (TypeError, ValueError):
        return None
