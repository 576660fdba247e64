from __future__ import annotations

import asyncio

import httpx
import pytest

from placelore.geocoding.service import GeocodeCache, GeocodingConfig, NominatimGeocoder
from placelore.models import GeoPoint
from placelore.search.client import TransportError


def _geocoder(handler, cache: GeocodeCache | None = None) -> NominatimGeocoder:
    config = GeocodingConfig()
    http = httpx.AsyncClient(base_url=config.base_url, transport=httpx.MockTransport(handler))
    return NominatimGeocoder(config, client=http, cache=cache)


def test_reverse_returns_display_name_and_address() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"display_name": "Paris, Île-de-France, France", "address": {"city": "Paris", "postcode": 75001}},
        )

    result = asyncio.run(_geocoder(handler).reverse(48.8566, 2.3522))

    assert result.display_name == "Paris, Île-de-France, France"
    assert result.address == {"city": "Paris", "postcode": "75001"}
    assert result.point == GeoPoint(48.8566, 2.3522)
    params = seen[0].url.params
    assert seen[0].url.path == "/reverse"
    assert params["format"] == "jsonv2"
    assert params["accept-language"] == "en"


def test_reverse_error_body_is_transport_error() -> None:
    geocoder = _geocoder(lambda request: httpx.Response(200, json={"error": "Unable to geocode"}))
    with pytest.raises(TransportError, match="Unable to geocode"):
        asyncio.run(geocoder.reverse(0.0, 0.0))


def test_search_uses_cache_for_repeated_names() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.params["q"])
        return httpx.Response(200, json=[{"lat": "48.137", "lon": "11.575"}])

    cache = GeocodeCache()
    geocoder = _geocoder(handler, cache=cache)

    async def scenario():
        first = await geocoder.search("Munich, Germany")
        second = await geocoder.search("  munich, germany ")
        return first, second

    first, second = asyncio.run(scenario())
    assert first == second == GeoPoint(48.137, 11.575)
    assert calls == ["Munich, Germany"]
    assert len(cache) == 1


def test_search_misses_return_none() -> None:
    responses = iter(
        [
            httpx.Response(200, json=[]),
            httpx.Response(404, text="not found"),
            httpx.Response(200, json=[{"lat": "nan", "lon": "1"}]),
        ],
    )
    geocoder = _geocoder(lambda request: next(responses))

    async def scenario():
        return [await geocoder.search(name) for name in ("Atlantis", "El Dorado", "Nowhere")]

    assert asyncio.run(scenario()) == [None, None, None]
    assert len(geocoder.cache) == 0


def test_blank_name_skips_request() -> None:
    geocoder = _geocoder(lambda request: pytest.fail("no request expected"))
    assert asyncio.run(geocoder.search("   ")) is None


def test_search_network_failure_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(TransportError):
        asyncio.run(_geocoder(handler).search("Paris"))
