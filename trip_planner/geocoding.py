from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Tuple, Union

import httpx

from .models import Coordinate, GeocodingMiss


GeocodeResult = Union[Coordinate, GeocodingMiss]


class GeocodeCache:
    """Bounded LRU of successful lookups, safe to share between requests."""

    def __init__(self, max_size: int = 512) -> None:
        self.max_size = max_size
        self._items: "OrderedDict[Tuple[str, str], Coordinate]" = OrderedDict()
        self._lock = asyncio.Lock()

    @staticmethod
    def key(place: str, country: str) -> Tuple[str, str]:
        return place.strip().lower(), country.strip().lower()

    async def get(self, place: str, country: str) -> Optional[Coordinate]:
        async with self._lock:
            k = self.key(place, country)
            coord = self._items.get(k)
            if coord is not None:
                self._items.move_to_end(k)
            return coord

    async def set(self, place: str, country: str, coord: Coordinate) -> None:
        if self.max_size <= 0:
            return
        async with self._lock:
            k = self.key(place, country)
            self._items[k] = coord
            self._items.move_to_end(k)
            while len(self._items) > self.max_size:
                self._items.popitem(last=False)

    def __len__(self) -> int:
        return len(self._items)


class GeocodingResolver:
    """Resolve ``place, country`` to a coordinate using Nominatim.

    One lookup per call, no retries: anything other than a usable first match
    comes back as a ``GeocodingMiss`` so the pipeline can carry on.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str = "https://nominatim.openstreetmap.org",
        user_agent: str = "TripPlanner/1.0",
        timeout_sec: float = 8.0,
        cache: Optional[GeocodeCache] = None,
        max_concurrency: int = 2,
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout_sec = timeout_sec
        self.cache = cache
        self.max_concurrency = max(1, max_concurrency)

    async def resolve(self, place: str, country: str) -> GeocodeResult:
        if not place or not place.strip():
            return GeocodingMiss(place=place, country=country, reason="empty place")

        if self.cache is not None:
            cached = await self.cache.get(place, country)
            if cached is not None:
                return cached

        start_time = time.monotonic()
        params = {
            "q": f"{place}, {country}" if country else place,
            "format": "jsonv2",
            "limit": 1,
            "addressdetails": 0,
        }
        headers = {"User-Agent": self.user_agent}
        http_status: Optional[int] = None
        try:
            resp = await self.client.get(
                f"{self.base_url}/search",
                params=params,
                headers=headers,
                timeout=self.timeout_sec,
            )
            http_status = resp.status_code
            if resp.status_code != 200:
                return self._miss(place, country, f"Nominatim error: {resp.status_code}", start_time, http_status)
            data = resp.json()
        except httpx.TimeoutException:
            return self._miss(place, country, "timeout", start_time, http_status)
        except (httpx.HTTPError, ValueError) as e:
            return self._miss(place, country, f"Nominatim request failed: {e}", start_time, http_status)

        if not data:
            return self._miss(place, country, "no match", start_time, http_status)

        first = data[0]
        try:
            coord = Coordinate(lat=float(first["lat"]), lng=float(first["lon"]))
        except (TypeError, ValueError, KeyError):
            return self._miss(place, country, "malformed match", start_time, http_status)

        _log("geocode", start_time, True, http_status, place=place, country=country)
        if self.cache is not None:
            await self.cache.set(place, country, coord)
        return coord

    async def resolve_many(self, places: Iterable[str], country: str) -> Dict[str, GeocodeResult]:
        """Resolve each distinct place once, with at most ``max_concurrency`` lookups in flight.

        The limit belongs to this call, so lookups for other requests never
        queue behind it.
        """
        unique = list(dict.fromkeys(places))
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(place: str) -> GeocodeResult:
            async with semaphore:
                return await self.resolve(place, country)

        results = await asyncio.gather(*(bounded(p) for p in unique))
        return dict(zip(unique, results))

    def _miss(
        self, place: str, country: str, reason: str, start_time: float, http_status: Optional[int]
    ) -> GeocodingMiss:
        _log("geocode", start_time, False, http_status, place=place, country=country, reason=reason)
        return GeocodingMiss(place=place, country=country, reason=reason)


def _log(fn: str, start_time: float, ok: bool, http_status: Optional[int], **extra: object) -> None:
    log_data = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "tool": "nominatim",
        "fn": fn,
        "latency_ms": f"{(time.monotonic() - start_time) * 1000:.2f}",
        "ok": ok,
        "http_status": http_status,
        **extra,
    }
    if ok:
        logging.info(json.dumps(log_data))
    else:
        logging.warning(json.dumps(log_data))
