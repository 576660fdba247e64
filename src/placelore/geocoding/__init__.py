"""Geocoding collaborators."""

from .service import GeocodeCache, Geocoder, GeocodingConfig, NominatimGeocoder

__all__ = ["GeocodeCache", "Geocoder", "GeocodingConfig", "NominatimGeocoder"]
