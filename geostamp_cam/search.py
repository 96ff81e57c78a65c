"""Debounced place search with stale-response protection.

One :class:`PlaceSearchService` serves one editing session and lives on the
session's event loop. Keystrokes restart a debounce timer; when it fires the
request generation is bumped and the lookup task carries that number. Any
write back to shared state first checks that the task's generation is still
the current one, so a slow response for an older query can never overwrite
a newer one, whatever order the network answers in.

Phases of one query: IDLE -> DEBOUNCING -> SEARCHING -> RESOLVED | FAILED,
and any keystroke goes back to DEBOUNCING.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .content import SelectedLocation
from .errors import ProviderError
from .providers import PlaceProvider, ProviderPlace

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.35
MIN_QUERY_LENGTH = 2
NO_RESULTS = "No results found"


class SearchPhase(enum.Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    SEARCHING = "searching"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class PlaceSuggestion:
    id: str
    title: str
    subtitle: str
    lat: str
    lon: str
    display_name: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "title": self.title,
            "subtitle": self.subtitle,
            "lat": self.lat,
            "lon": self.lon,
            "display_name": self.display_name,
        }


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def build_suggestions(records: Iterable[ProviderPlace]) -> List[PlaceSuggestion]:
    """Map raw provider places to suggestions with ids unique in the list."""
    out: List[PlaceSuggestion] = []
    seen: Set[str] = set()
    for idx, rec in enumerate(records):
        title = (rec.name or rec.street or rec.kind or rec.city
                 or rec.country or rec.state or "Unknown")
        parts = []
        if rec.city and rec.city != title:
            parts.append(rec.city)
        if rec.state:
            parts.append(rec.state)
        if rec.country:
            parts.append(rec.country)
        subtitle = ", ".join(parts)
        lat, lon = _text(rec.latitude), _text(rec.longitude)
        if rec.name:
            display = f"{rec.name}, {subtitle}" if subtitle else rec.name
        else:
            display = rec.kind or subtitle or title
        sid = rec.provider_id or f"{rec.kind or 'ph'}_{idx}_{lat}_{lon}"
        if sid in seen:
            sid = f"{sid}-{idx}"
            while sid in seen:
                sid += "'"
        seen.add(sid)
        out.append(PlaceSuggestion(sid, title, subtitle, lat, lon, display))
    return out


class PlaceSearchService:
    def __init__(
        self,
        providers: Sequence[PlaceProvider],
        debounce: float = DEBOUNCE_SECONDS,
        min_query_length: int = MIN_QUERY_LENGTH,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.providers = list(providers)
        self.debounce = float(debounce)
        self.min_query_length = int(min_query_length)
        self._loop = loop

        self.query = ""
        self.suggestions: Tuple[PlaceSuggestion, ...] = ()
        self.last_error: Optional[str] = None
        self.selected: Optional[SelectedLocation] = None
        self.phase = SearchPhase.IDLE
        self.generation = 0

        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], providers: Sequence[PlaceProvider],
                    loop: Optional[asyncio.AbstractEventLoop] = None) -> "PlaceSearchService":
        sc = cfg.get("search", {})
        return cls(
            providers,
            debounce=float(sc.get("debounce_ms", DEBOUNCE_SECONDS * 1000)) / 1000.0,
            min_query_length=int(sc.get("min_query_length", MIN_QUERY_LENGTH)),
            loop=loop,
        )

    # ---------- read ----------
    @property
    def searching(self) -> bool:
        return self.phase is SearchPhase.SEARCHING

    @property
    def debounce_pending(self) -> bool:
        return self._timer is not None

    @property
    def message(self) -> Optional[str]:
        """Error or no-results text to show under the search box, if any."""
        if self.suggestions or len(self.query) < self.min_query_length:
            return None
        if self.selected is not None and self.query == self.selected.label:
            return None
        if self.phase in (SearchPhase.RESOLVED, SearchPhase.FAILED):
            return self.last_error or NO_RESULTS
        return None

    def suggestion(self, suggestion_id: str) -> Optional[PlaceSuggestion]:
        for s in self.suggestions:
            if s.id == suggestion_id:
                return s
        return None

    # ---------- input ----------
    def on_query_changed(self, text: str) -> None:
        if self._closed:
            logger.debug("Ignoring query %r after close", text)
            return
        self.query = text
        self._cancel_timer()
        # a lookup still in flight is for older text now
        self._invalidate()
        if self.selected is not None and text != self.selected.label:
            logger.debug("Query edited away from %r, dropping selected place", self.selected.label)
            self.selected = None
        if len(text) < self.min_query_length:
            self.suggestions = ()
            self.last_error = None
            self.phase = SearchPhase.IDLE
            return
        if self.selected is not None:
            # still showing the accepted label verbatim
            return
        self.phase = SearchPhase.DEBOUNCING
        self._timer = self._get_loop().call_later(self.debounce, self._fire)

    def search_now(self) -> None:
        """Search the current query immediately (submit key)."""
        if self._closed:
            return
        if len(self.query) < self.min_query_length:
            self.on_query_changed(self.query)
            return
        self._cancel_timer()
        self._start_lookup(self.query)

    def select_place(self, item: PlaceSuggestion) -> Optional[SelectedLocation]:
        try:
            loc = SelectedLocation(float(item.lat), float(item.lon), label=item.display_name)
        except (TypeError, ValueError) as e:
            logger.debug("Dropping malformed suggestion %s: %s", item.id, e)
            return None
        self._cancel_timer()
        self._invalidate()
        self.selected = loc
        self.query = loc.label
        self.suggestions = ()
        self.last_error = None
        self.phase = SearchPhase.IDLE
        logger.info("Selected place %r (%s, %s)", loc.label, loc.latitude, loc.longitude)
        return loc

    # ---------- lifecycle ----------
    def close(self) -> None:
        """Tear down: no pending timer fires and no in-flight answer lands."""
        self._cancel_timer()
        self._invalidate()
        self.phase = SearchPhase.IDLE
        self._closed = True

    def reset(self) -> None:
        """Start over for a new editing session."""
        self._cancel_timer()
        self._invalidate()
        self.query = ""
        self.suggestions = ()
        self.last_error = None
        self.selected = None
        self.phase = SearchPhase.IDLE
        self._closed = False

    async def drain(self) -> None:
        """Wait for lookups already in flight (used by tests and the submit route)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---------- internal ----------
    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _invalidate(self) -> None:
        # in-flight lookups compare against this and discard themselves
        self.generation += 1

    def _fire(self) -> None:
        self._timer = None
        if self._closed:
            return
        self._start_lookup(self.query)

    def _start_lookup(self, query: str) -> None:
        self.generation += 1
        g = self.generation
        self.phase = SearchPhase.SEARCHING
        self.last_error = None
        task = self._get_loop().create_task(self._lookup(g, query))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _current(self, g: int, provider: str) -> bool:
        if g == self.generation:
            return True
        logger.debug("Discarding %s response for generation %d (current %d)", provider, g, self.generation)
        return False

    async def _lookup(self, g: int, query: str) -> None:
        failures: List[str] = []
        resolved_empty = False
        for provider in self.providers:
            if not self._current(g, provider.name):
                return
            try:
                records = await provider.search(query)
            except ProviderError as e:
                logger.warning("Place search failed: %s", e)
                failures.append(str(e))
                continue
            except Exception as e:
                logger.warning("Place search via %s raised %s: %s", provider.name, type(e).__name__, e)
                failures.append(f"{provider.name}: {e}")
                continue
            if not self._current(g, provider.name):
                return
            suggestions = build_suggestions(records)
            if suggestions:
                self.suggestions = tuple(suggestions)
                self.last_error = None
                self.phase = SearchPhase.RESOLVED
                return
            logger.info("%s found nothing for %r", provider.name, query)
            resolved_empty = True

        if not self._current(g, "fallback"):
            return
        self.suggestions = ()
        if resolved_empty:
            self.last_error = NO_RESULTS
            self.phase = SearchPhase.RESOLVED
        else:
            self.last_error = failures[-1] if failures else "No search providers configured"
            self.phase = SearchPhase.FAILED
