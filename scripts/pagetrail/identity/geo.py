"""
Coarse network/location context from an IP geolocation service.

Fetched at most once per engine and cached in the context cache for 24h.
Failure is soft: every field becomes None and nothing is retried.
"""

import sys
from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, Optional

import httpx

from ..storage.store import ContextCache, LOCATION_KEY, LOCATION_TTL


@dataclass(frozen=True)
class GeoInfo:
    """Normalized geolocation fields; loc is 'lat,long'."""
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    postal: Optional[str] = None
    loc: Optional[str] = None
    timezone: Optional[str] = None
    ip: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "GeoInfo":
        """Keep known fields, mapping empty values to None."""
        return cls(**{f.name: (data.get(f.name) or None) for f in fields(cls)})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    def to_properties(self) -> Dict[str, Any]:
        """Field names as they appear on page-visit events."""
        props = self.to_dict()
        props["ip_address"] = props.pop("ip")
        return props


class GeoContextFetcher:
    """One-shot geolocation lookup with a persisted 24h cache."""

    def __init__(
        self,
        cache: ContextCache,
        service_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        debug: bool = False
    ):
        """
        Initialize fetcher.

        Args:
            cache: Context cache holding the geo record
            service_url: Geolocation endpoint returning a JSON object
            client: Shared HTTP client (a short-lived one is created if None)
            timeout: Request timeout in seconds
            debug: Print cache hits/misses to stderr
        """
        self.cache = cache
        self.service_url = service_url
        self.client = client
        self.timeout = timeout
        self.debug = debug
        self.info = GeoInfo()
        self.fetched = False

    async def fetch(self) -> GeoInfo:
        """
        Adopt the cached record or query the service once.

        Returns:
            GeoInfo (all None on failure)
        """
        if self.fetched:
            return self.info
        self.fetched = True

        cached = self.cache.read_record(LOCATION_KEY)
        if cached is not None:
            self.info = GeoInfo.from_payload(cached)
            if self.debug:
                print("Debug: Using cached IP and location info", file=sys.stderr)
            return self.info

        try:
            data = await self._request()
        except (httpx.HTTPError, ValueError) as e:
            print(f"Warning: Failed to fetch IP and location info: {e}", file=sys.stderr)
            self.info = GeoInfo()
            return self.info

        self.info = GeoInfo.from_payload(data)
        self.cache.write_record(LOCATION_KEY, self.info.to_dict(), ttl=LOCATION_TTL)
        return self.info

    async def _request(self) -> Dict[str, Any]:
        if self.client is not None:
            response = await self.client.get(self.service_url, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.service_url)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("geolocation response is not a JSON object")
        return data
