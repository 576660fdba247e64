"""Nominatim geocoding client with an explicit session cache."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Mapping, Protocol

import httpx

from placelore.metrics.observability import PipelineMetrics, get_logger
from placelore.models import GeoPoint, ReverseGeocodeResult
from placelore.search.client import TransportError


@dataclass(frozen=True)
class GeocodingConfig:
    """Configuration for the Nominatim client."""

    base_url: str = "https://nominatim.openstreetmap.org"
    user_agent: str = "placelore/0.1"
    language: str = "en"
    timeout: float = 15.0


class GeocodeCache:
    """Name → coordinate cache, unbounded for the lifetime of the session."""

    def __init__(self) -> None:
        self._entries: Dict[str, GeoPoint] = {}

    @staticmethod
    def normalize(name: str) -> str:
        return name.strip().lower()

    def get(self, name: str) -> GeoPoint | None:
        point = self._entries.get(self.normalize(name))
        PipelineMetrics.observe_geocode_cache(point is not None)
        return point

    def put(self, name: str, point: GeoPoint) -> None:
        self._entries[self.normalize(name)] = point

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class Geocoder(Protocol):
    """Protocol describing forward and reverse geocoding."""

    async def reverse(self, lat: float, lon: float) -> ReverseGeocodeResult:
        """Return the display name and address fields for a coordinate."""

    async def search(self, name: str) -> GeoPoint | None:
        """Return the best coordinate for a place name, if any."""


class NominatimGeocoder:
    """Geocoder backed by the public Nominatim API."""

    def __init__(
        self,
        config: GeocodingConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        cache: GeocodeCache | None = None,
    ) -> None:
        self._config = config or GeocodingConfig()
        self._client = client or httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=self._config.timeout,
            headers={"Accept": "application/json", "User-Agent": self._config.user_agent},
        )
        self._owns_client = client is None
        self._cache = cache if cache is not None else GeocodeCache()
        self._logger = get_logger("geocoding")

    @property
    def cache(self) -> GeocodeCache:
        return self._cache

    async def reverse(self, lat: float, lon: float) -> ReverseGeocodeResult:
        params = {
            "format": "jsonv2",
            "lat": lat,
            "lon": lon,
            "accept-language": self._config.language,
        }
        data = await self._get_json("/reverse", params)
        if not isinstance(data, Mapping):
            raise TransportError("Malformed reverse geocoding response")
        if "error" in data:
            raise TransportError(f"Reverse geocoding failed: {data['error']}")
        address = data.get("address")
        display_name = data.get("display_name")
        return ReverseGeocodeResult(
            point=GeoPoint(lat=lat, lon=lon),
            display_name=display_name if isinstance(display_name, str) else None,
            address={str(k): str(v) for k, v in address.items()} if isinstance(address, Mapping) else {},
        )

    async def search(self, name: str) -> GeoPoint | None:
        if not name.strip():
            return None
        cached = self._cache.get(name)
        if cached is not None:
            return cached
        try:
            response = await self._client.get("/search", params={"format": "jsonv2", "limit": 1, "q": name})
        except httpx.HTTPError as exc:
            raise TransportError(f"Geocoding request failed: {exc}") from exc
        if response.status_code >= 400:
            self._logger.info("geocode.miss", name=name, status=response.status_code)
            return None
        try:
            data = response.json()
        except ValueError:
            return None
        point = _first_point(data)
        if point is None:
            return None
        self._cache.put(name, point)
        return point

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, path: str, params: Mapping[str, object]) -> object:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise TransportError(f"Geocoding request failed: {exc}") from exc
        if response.status_code >= 400:
            raise TransportError(f"HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError("Malformed geocoding response") from exc


def _first_point(data: object) -> GeoPoint | None:
    if not isinstance(data, list) or not data or not isinstance(data[0], Mapping):
        return None
    try:
        lat = float(data[0].get("lat"))
        lon = float(data[0].get("lon"))
    except (TypeError, ValueError):
        return None
    if not math.isfinite(lat) or not math.isfinite(lon):
        return None
    return GeoPoint(lat=lat, lon=lon)
