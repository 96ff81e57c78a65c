"""Place-search providers.

Each provider turns free text into a list of :class:`ProviderPlace` records.
HTTP is done with ``requests`` on the event loop's default executor so the
loop thread never blocks on the network.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests

from .errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderPlace:
    provider_id: Optional[str]
    name: Optional[str]
    latitude: Any
    longitude: Any
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    street: Optional[str] = None
    kind: Optional[str] = None


class PlaceProvider(ABC):
    """Base class: ``await provider.search(query)`` returns raw places."""

    name = "provider"

    def __init__(self, url: str, limit: int = 8, timeout: float = 6.0, user_agent: str = "geostamp-cam",
                 session: Optional[requests.Session] = None):
        self.url = url
        self.limit = int(limit)
        self.timeout = float(timeout)
        self.session = session or requests.Session()
        # Nominatim's usage policy rejects the stock requests agent
        self.session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})

    async def search(self, query: str) -> List[ProviderPlace]:
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, self._fetch, query)
        places = self.parse(data)
        logger.debug("%s returned %d places for %r", self.name, len(places), query)
        return places

    @abstractmethod
    def params(self, query: str) -> Dict[str, Any]:
        """Query-string parameters for one search."""

    @abstractmethod
    def parse(self, data: Any) -> List[ProviderPlace]:
        """Decoded JSON to places; raises ProviderError on an unexpected shape."""

    def _fetch(self, query: str) -> Any:
        try:
            r = self.session.get(self.url, params=self.params(query), timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderError(self.name, str(e)) from e
        if not r.ok:
            raise ProviderError(self.name, f"HTTP {r.status_code}")
        try:
            return r.json()
        except ValueError as e:
            raise ProviderError(self.name, f"invalid JSON: {e}") from e


class PhotonProvider(PlaceProvider):
    """komoot Photon: GeoJSON features, coordinates are ``[lon, lat]``."""

    name = "photon"

    def params(self, query: str) -> Dict[str, Any]:
        return {"q": query, "limit": self.limit}

    def parse(self, data: Any) -> List[ProviderPlace]:
        features = data.get("features") if isinstance(data, dict) else None
        if not isinstance(features, list):
            raise ProviderError(self.name, "response has no feature list")
        out: List[ProviderPlace] = []
        for f in features:
            if not isinstance(f, dict):
                continue
            props = f.get("properties") or {}
            coords = (f.get("geometry") or {}).get("coordinates") or []
            lon = coords[0] if len(coords) > 1 else ""
            lat = coords[1] if len(coords) > 1 else ""
            osm_id = props.get("osm_id") or props.get("osmID")
            osm_type = props.get("osm_type") or props.get("osmType") or "ph"
            out.append(ProviderPlace(
                provider_id=f"{osm_type}_{osm_id}" if osm_id else None,
                name=props.get("name"),
                latitude=lat,
                longitude=lon,
                city=props.get("city"),
                state=props.get("state"),
                country=props.get("country"),
                street=props.get("street"),
                kind=props.get("osm_key") or props.get("type"),
            ))
        return out


class NominatimProvider(PlaceProvider):
    """OpenStreetMap Nominatim ``/search`` in ``jsonv2`` format."""

    name = "nominatim"

    def params(self, query: str) -> Dict[str, Any]:
        return {"q": query, "format": "jsonv2", "addressdetails": 1, "limit": self.limit}

    def parse(self, data: Any) -> List[ProviderPlace]:
        if not isinstance(data, list):
            raise ProviderError(self.name, "response is not a list")
        out: List[ProviderPlace] = []
        for d in data:
            if not isinstance(d, dict):
                continue
            addr = d.get("address") or {}
            osm_id = d.get("osm_id")
            name = d.get("name") or (d.get("display_name") or "").split(",")[0].strip() or None
            out.append(ProviderPlace(
                provider_id=f"{d.get('osm_type') or 'nm'}_{osm_id}" if osm_id else None,
                name=name,
                latitude=d.get("lat", ""),
                longitude=d.get("lon", ""),
                city=addr.get("city") or addr.get("town") or addr.get("village"),
                state=addr.get("state"),
                country=addr.get("country"),
                street=addr.get("road"),
                kind=d.get("category") or d.get("type"),
            ))
        return out


PROVIDERS = {
    PhotonProvider.name: PhotonProvider,
    NominatimProvider.name: NominatimProvider,
}


def build_providers(cfg: Dict[str, Any]) -> List[PlaceProvider]:
    """Instantiate the configured providers in their fallback order."""
    sc = cfg.get("search", {})
    urls = {"photon": sc.get("photon_url"), "nominatim": sc.get("nominatim_url")}
    names: Sequence[str] = sc.get("providers") or ["photon", "nominatim"]
    out: List[PlaceProvider] = []
    for n in names:
        cls = PROVIDERS.get(n)
        if cls is None or not urls.get(n):
            logger.warning("Skipping unknown or unconfigured search provider %r", n)
            continue
        out.append(cls(
            urls[n],
            limit=int(sc.get("limit", 8)),
            timeout=float(sc.get("timeout_s", 6.0)),
            user_agent=sc.get("user_agent", "geostamp-cam"),
        ))
    return out
