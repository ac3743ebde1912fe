"""
Per-field debounced place lookup.

Each autocomplete input owns one ``DebouncedLookup``.  A new query cancels
the pending task of *that* field only and bumps its generation counter;
a response that resolves after being superseded is discarded rather than
applied.  Fields never share a timer, so typing in "destination" cannot
cancel a lookup for "origin".
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from src.domain.entities import Place
from src.domain.ports import PlaceResolver

logger = logging.getLogger(__name__)


class DebouncedLookup:
    def __init__(
        self,
        resolver: PlaceResolver,
        delay_seconds: float = 0.3,
        min_chars: int = 2,
    ):
        self.resolver = resolver
        self.delay = delay_seconds
        self.min_chars = min_chars
        self.generation = 0
        self._task: Optional[asyncio.Task] = None

    async def search(self, query: str) -> Optional[list[Place]]:
        """
        Return suggestions for *query*, ``[]`` for too-short input, or
        ``None`` when a newer query superseded this one.
        """
        self.cancel()
        self.generation += 1
        generation = self.generation

        if not query or len(query.strip()) < self.min_chars:
            return []

        self._task = asyncio.create_task(self._debounced(query))
        try:
            results = await self._task
        except asyncio.CancelledError:
            if self.generation != generation:
                return None
            raise

        if generation != self.generation:
            logger.debug("Discarding stale suggestions for %r", query)
            return None
        return results

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _debounced(self, query: str) -> list[Place]:
        await asyncio.sleep(self.delay)
        return await self.resolver.autocomplete(query)


class AutocompleteSession:
    """One ``DebouncedLookup`` per named field, created lazily."""

    def __init__(
        self,
        resolver: PlaceResolver,
        delay_seconds: float = 0.3,
        min_chars: int = 2,
    ):
        self.resolver = resolver
        self.delay = delay_seconds
        self.min_chars = min_chars
        self._fields: dict[str, DebouncedLookup] = {}

    def field(self, name: str) -> DebouncedLookup:
        if name not in self._fields:
            self._fields[name] = DebouncedLookup(
                self.resolver, self.delay, self.min_chars
            )
        return self._fields[name]

    async def search(self, field_name: str, query: str) -> Optional[list[Place]]:
        return await self.field(field_name).search(query)

    def close(self) -> None:
        for lookup in self._fields.values():
            lookup.cancel()
