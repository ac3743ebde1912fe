"""
Redis-backed cache for resolved places.

A resolved ``Place`` is immutable, so ``details(place_id)`` results can be
kept for a long TTL.  Autocomplete results are never cached: they depend on
the partial query and go stale quickly.

Cache failures are logged and bypassed; the cache must never turn a
working lookup into a failed one.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.domain.entities import Location, Place
from src.domain.ports import PlaceResolver

logger = logging.getLogger(__name__)


class CachedPlaceResolver:
    def __init__(
        self,
        inner: PlaceResolver,
        client: aioredis.Redis,
        ttl_seconds: int = 86_400,
    ):
        self.inner = inner
        self.redis = client
        self.ttl = ttl_seconds

    @staticmethod
    def key(place_id: str) -> str:
        return f"place:{place_id}"

    async def autocomplete(self, query: str) -> list[Place]:
        return await self.inner.autocomplete(query)

    async def details(self, place_id: str) -> Place:
        cached = await self._read(place_id)
        if cached is not None:
            return cached

        place = await self.inner.details(place_id)
        # Unlocated places may resolve later; don't pin the miss.
        if place.location is not None:
            await self._write(place)
        return place

    async def _read(self, place_id: str) -> Optional[Place]:
        try:
            raw = await self.redis.get(self.key(place_id))
        except RedisError as exc:
            logger.warning("Place cache read failed for %s: %s", place_id, exc)
            return None
        if not raw:
            return None

        data = json.loads(raw)
        loc = data.get("location")
        return Place(
            place_id=data["place_id"],
            description=data.get("description", ""),
            formatted_address=data.get("formatted_address", ""),
            location=Location(**loc) if loc else None,
        )

    async def _write(self, place: Place) -> None:
        try:
            await self.redis.set(
                self.key(place.place_id), json.dumps(asdict(place)), ex=self.ttl
            )
        except RedisError as exc:
            logger.warning("Place cache write failed for %s: %s", place.place_id, exc)
