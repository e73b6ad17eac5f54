"""TTL cache for decompressed ribbon payloads.

Retrieving an entity ribbon is slow, so decompressed XML is kept per
``(entity, location filter)`` for a bounded time. Entries are replaced as a
whole, so readers never see a partial write.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import io
import logging
import threading
import time
import zipfile
import zlib
from dataclasses import dataclass
from typing import Callable

from commandbar_visibility.ports import RibbonPayloadFetcher

LOGGER = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 10 * 60


def decompress_ribbon_payload(compressed_base64: str | None) -> str | None:
    """Decode a base64 ribbon payload compressed as gzip or as a zip archive.

    Returns:
        The ribbon XML, or ``None`` when the payload is empty or undecodable.
    """
    if not compressed_base64:
        return None
    try:
        raw = base64.b64decode(compressed_base64, validate=True)
        if raw[:2] == b"PK":
            with zipfile.ZipFile(io.BytesIO(raw)) as archive:
                names = archive.namelist()
                if not names:
                    return None
                data = archive.read(names[0])
        else:
            data = gzip.decompress(raw)
        return data.decode("utf-8-sig")
    except (binascii.Error, OSError, zlib.error, zipfile.BadZipFile, EOFError, UnicodeDecodeError) as error:
        LOGGER.warning(
            "ribbon payload decompression failed",
            extra={"event": "ribbon_cache.decompress.failed", "error": str(error)},
        )
        return None


@dataclass(slots=True, frozen=True)
class _CacheEntry:
    xml: str
    expires_at: float


class RibbonPayloadCache:
    """Thread-safe in-memory cache with a fixed time-to-live per entry."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be greater than 0")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._items: dict[tuple[str, str], _CacheEntry] = {}

    def get(self, entity: str, location_filter: str) -> str | None:
        key = (entity, location_filter)
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._items[key]
                return None
            return entry.xml

    def put(self, entity: str, location_filter: str, xml: str) -> None:
        entry = _CacheEntry(xml=xml, expires_at=self._clock() + self.ttl_seconds)
        with self._lock:
            self._items[(entity, location_filter)] = entry

    def invalidate(self, entity: str | None = None) -> int:
        """Drop entries for one entity, or every entry when ``entity`` is ``None``.

        Returns how many entries were removed.
        """
        with self._lock:
            if entity is None:
                removed = len(self._items)
                self._items.clear()
                return removed
            keys = [key for key in self._items if key[0] == entity]
            for key in keys:
                del self._items[key]
            return len(keys)

    def sweep_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._items.items() if entry.expires_at <= now]
            for key in expired:
                del self._items[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class CachedRibbonPayloadSource:
    """Fetches and decompresses ribbon XML, serving repeats from the cache."""

    def __init__(self, fetcher: RibbonPayloadFetcher, cache: RibbonPayloadCache | None = None) -> None:
        self.fetcher = fetcher
        self.cache = cache if cache is not None else RibbonPayloadCache()

    async def fetch_ribbon_payload(
        self,
        entity: str | None,
        location_filter: str = "All",
        skip_cache: bool = False,
    ) -> str | None:
        """Return the entity's ribbon XML, or ``None`` when unavailable.

        Args:
            entity: Entity logical name.
            location_filter: ``Form``, ``HomepageGrid``, ``SubGrid`` or ``All``.
            skip_cache: Ignore any cached entry and fetch fresh.
        """
        if not entity:
            LOGGER.warning("entity name required for ribbon retrieval", extra={"event": "ribbon_cache.entity.missing"})
            return None

        if not skip_cache:
            cached = self.cache.get(entity, location_filter)
            if cached is not None:
                LOGGER.debug(
                    "ribbon payload served from cache",
                    extra={"event": "ribbon_cache.hit", "entity": entity, "location_filter": location_filter},
                )
                return cached

        try:
            compressed = await self.fetcher.fetch_compressed_ribbon(entity, location_filter)
        except Exception as error:  # noqa: BLE001
            LOGGER.warning(
                "ribbon payload fetch failed",
                extra={"event": "ribbon_cache.fetch.failed", "entity": entity, "error": str(error)},
            )
            return None

        xml = decompress_ribbon_payload(compressed)
        if xml is not None:
            self.cache.put(entity, location_filter, xml)
        return xml

    def invalidate(self, entity: str | None = None) -> int:
        return self.cache.invalidate(entity)
