# shirpur-delivery-core/delivery_core/geocoding.py
"""
Forward and reverse geocoding against an OSM Nominatim-compatible service.

The tracking math only ever needs coordinates; these helpers turn customer
addresses into coordinates and agent positions into something readable.
Failures never raise: reverse geocoding falls back to the coordinates as
text and address search returns no candidates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests

from . import config

logger = logging.getLogger(__name__)

# Module-level cache, keyed by rounded coordinates or the normalised query
_reverse_cache: Dict[Tuple[float, float], str] = {}
_search_cache: Dict[str, List["GeocodeResult"]] = {}

# Address parts in display order
_ADDRESS_FIELDS: Tuple[str, ...] = (
    "house_number", "building", "shop", "office",
    "road", "neighbourhood", "suburb",
)


@dataclass(frozen=True)
class GeocodeResult:
    display_name: str
    lat: float
    lng: float
    address: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


def _headers() -> Dict[str, str]:
    return {"User-Agent": config.GEOCODER_USER_AGENT}


def _fallback_label(lat: float, lng: float) -> str:
    return f"{lat:.6f}, {lng:.6f}"


def _trim_cache(cache: Dict[Any, Any]) -> None:
    """Drop the oldest 10% once the cache is full."""
    if len(cache) >= config.GEOCODER_CACHE_SIZE:
        for key in list(cache.keys())[:max(1, config.GEOCODER_CACHE_SIZE // 10)]:
            del cache[key]


def format_address(address: Dict[str, Any]) -> str:
    """
    Compact one-line address from Nominatim's addressdetails.

    Example:
        >>> format_address({"road": "Station Road", "town": "Shirpur", "state": "Maharashtra"})
        'Station Road, Shirpur, Maharashtra'
    """
    parts = [str(address[k]) for k in _ADDRESS_FIELDS if address.get(k)]
    locality = address.get("city") or address.get("town") or address.get("village")
    if locality:
        parts.append(str(locality))
    for key in ("state", "postcode"):
        if address.get(key):
            parts.append(str(address[key]))
    return ", ".join(parts)


def reverse_geocode(lat: float, lng: float) -> str:
    """
    Human-readable address for a coordinate.

    Returns:
        A formatted address, the provider's display_name, or "lat, lng"
        with six decimals when the lookup fails
    """
    cache_key = (round(lat, 5), round(lng, 5))
    if cache_key in _reverse_cache:
        return _reverse_cache[cache_key]

    try:
        response = requests.get(
            f"{config.GEOCODER_URL}/reverse",
            params={"format": "json", "lat": lat, "lon": lng, "zoom": 18, "addressdetails": 1},
            headers=_headers(),
            timeout=config.GEOCODER_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        data = response.json()
    except requests.exceptions.Timeout:
        logger.warning("Reverse geocoding timed out")
        return _fallback_label(lat, lng)
    except requests.exceptions.RequestException as e:
        logger.warning(f"Reverse geocoding failed: {e}")
        return _fallback_label(lat, lng)
    except ValueError as e:
        logger.warning(f"Reverse geocoding response parsing failed: {e}")
        return _fallback_label(lat, lng)

    if not isinstance(data, dict) or not data.get("address"):
        return _fallback_label(lat, lng)

    label = format_address(data["address"]) or data.get("display_name") or _fallback_label(lat, lng)
    _trim_cache(_reverse_cache)
    _reverse_cache[cache_key] = label
    return label


def search_address(query: str, limit: Optional[int] = None) -> List[GeocodeResult]:
    """
    Candidate coordinates for a free-text address.

    Returns:
        Up to `limit` results, best match first; empty on any failure
    """
    normalised = " ".join(query.split()).lower()
    if not normalised:
        return []
    limit = limit or config.GEOCODER_SEARCH_LIMIT
    cache_key = f"{normalised}|{limit}"
    if cache_key in _search_cache:
        return list(_search_cache[cache_key])

    try:
        response = requests.get(
            f"{config.GEOCODER_URL}/search",
            params={
                "format": "json",
                "q": query,
                "limit": limit,
                "addressdetails": 1,
            },
            headers=_headers(),
            timeout=config.GEOCODER_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        results = [
            GeocodeResult(
                display_name=item.get("display_name", ""),
                lat=float(item["lat"]),
                lng=float(item["lon"]),
                address=item.get("address") or {},
            )
            for item in response.json()
        ]
    except requests.exceptions.Timeout:
        logger.warning("Address search timed out")
        return []
    except requests.exceptions.RequestException as e:
        logger.warning(f"Address search failed: {e}")
        return []
    except (KeyError, ValueError, TypeError) as e:
        logger.warning(f"Address search response parsing failed: {e}")
        return []

    _trim_cache(_search_cache)
    _search_cache[cache_key] = results
    return list(results)


def clear_geocoding_cache() -> int:
    """
    Clear both geocoding caches.

    Returns:
        Number of cached entries that were cleared
    """
    count = len(_reverse_cache) + len(_search_cache)
    _reverse_cache.clear()
    _search_cache.clear()
    return count
