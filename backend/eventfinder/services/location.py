"""Viewer location resolution.

A resolver walks an ordered list of strategies and the first one that yields a
coordinate wins:

1. a coordinate persisted by an earlier resolution
2. the device position (persisted when obtained)
3. the user's chosen city, looked up in the static city table
4. the country-level fallback, which always succeeds

Reordering or dropping a source is a change to the ``strategies`` list.
Permission denial and lookup failures are not errors; they just move on to
the next strategy.  Concurrent calls on one resolver share a single in-flight
resolution so the device is asked at most once.
"""
import logging
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass
from threading import Event, Lock
from typing import Callable, Optional, Sequence

from eventfinder.services.geo import COUNTRY_FALLBACK, Coordinate, coords_for_city, parse_coordinate
from eventfinder.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

LOCATION_STORAGE_KEY = "eventfinder_user_location"

# Blocks on a permission prompt / position fix; returns None when denied.
DeviceProvider = Callable[[Event], Optional[Coordinate]]


@dataclass(frozen=True)
class ResolvedLocation:
    coordinate: Coordinate
    source: str

    def as_dict(self) -> dict:
        return {"lat": self.coordinate.lat, "lng": self.coordinate.lng, "source": self.source}


@dataclass
class LocationRequest:
    device: Optional[Coordinate] = None
    city: Optional[str] = None
    cancel: Optional[Event] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()


class LocationStrategy:
    """One source in the fallback chain."""

    source = "unknown"
    persist = True

    def locate(self, request: LocationRequest) -> Optional[Coordinate]:
        raise NotImplementedError


class CachedLocation(LocationStrategy):
    source = "cached"
    persist = False

    def __init__(self, store: Optional[KeyValueStore], key: str):
        self.store = store
        self.key = key

    def locate(self, request):
        if self.store is None:
            return None
        stored = self.store.get(self.key)
        if not stored:
            return None
        return parse_coordinate(stored.get("lat"), stored.get("lng"))


class DeviceLocation(LocationStrategy):
    source = "device"

    def __init__(self, provider: Optional[DeviceProvider] = None):
        self.provider = provider

    def locate(self, request):
        if request.device is not None:
            return request.device
        if self.provider is None or request.cancelled:
            return None
        coordinate = self.provider(request.cancel or Event())
        if request.cancelled:
            logger.debug("Device location arrived after cancellation; discarding")
            return None
        return coordinate


class CityLocation(LocationStrategy):
    source = "city"

    def locate(self, request):
        return coords_for_city(request.city)


class CountryLocation(LocationStrategy):
    source = "country"

    def locate(self, request):
        return COUNTRY_FALLBACK


class GeoResolver:
    """Resolve (and remember) a best-effort viewer coordinate."""

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        key: str = LOCATION_STORAGE_KEY,
        device_provider: Optional[DeviceProvider] = None,
        strategies: Optional[Sequence[LocationStrategy]] = None,
    ):
        self.store = store
        self.key = key
        if strategies is None:
            strategies = [
                CachedLocation(store, key),
                DeviceLocation(device_provider),
                CityLocation(),
                CountryLocation(),
            ]
        self.strategies = list(strategies)
        self._lock = Lock()
        self._inflight: Optional[Future] = None

    def resolve(
        self,
        device: Optional[Coordinate] = None,
        city: Optional[str] = None,
        cancel: Optional[Event] = None,
    ) -> ResolvedLocation:
        """Return the first coordinate the strategy chain produces.

        A call made while another is outstanding waits for that result instead
        of starting a second resolution.
        """
        with self._lock:
            inflight = self._inflight
            if inflight is None:
                self._inflight = Future()
        if inflight is not None:
            return inflight.result()

        future = self._inflight
        try:
            result = self._run_chain(LocationRequest(device=device, city=city, cancel=cancel))
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._inflight = None

    def _run_chain(self, request: LocationRequest) -> ResolvedLocation:
        for strategy in self.strategies:
            try:
                coordinate = strategy.locate(request)
            except Exception as exc:
                logger.warning("Location source '%s' failed: %s", strategy.source, exc)
                continue
            if coordinate is None:
                continue
            if strategy.persist:
                self.remember(coordinate)
            logger.info("Resolved location from '%s' (%s)", strategy.source, self.key)
            return ResolvedLocation(coordinate, strategy.source)
        # Only reachable when a custom chain has no unconditional terminal source.
        self.remember(COUNTRY_FALLBACK)
        return ResolvedLocation(COUNTRY_FALLBACK, CountryLocation.source)

    def remember(self, coordinate: Coordinate) -> None:
        if self.store is not None:
            self.store.set(self.key, coordinate.as_dict())

    def forget(self) -> None:
        if self.store is not None:
            self.store.delete(self.key)


class GeoResolverRegistry:
    """One resolver per viewer, so single-flight holds across requests.

    Holds at most ``max_entries`` resolvers, dropping the least recently used.
    A dropped resolver loses nothing: its coordinate stays in the store.
    """

    def __init__(self, store: KeyValueStore, max_entries: int = 10_000):
        self.store = store
        self.max_entries = max_entries
        self._lock = Lock()
        self._resolvers: "OrderedDict[str, GeoResolver]" = OrderedDict()

    @staticmethod
    def _key(viewer_id: str) -> str:
        return f"{LOCATION_STORAGE_KEY}:{viewer_id}"

    def for_viewer(self, viewer_id: Optional[str]) -> GeoResolver:
        if not viewer_id:
            # Anonymous viewers get no persistence.
            return GeoResolver(store=None)
        key = self._key(viewer_id)
        with self._lock:
            resolver = self._resolvers.get(key)
            if resolver is None:
                resolver = self._resolvers[key] = GeoResolver(store=self.store, key=key)
            self._resolvers.move_to_end(key)
            while len(self._resolvers) > self.max_entries:
                self._resolvers.popitem(last=False)
            return resolver

    def forget(self, viewer_id: str) -> None:
        """Drop the viewer's resolver and its remembered coordinate."""
        key = self._key(viewer_id)
        with self._lock:
            self._resolvers.pop(key, None)
        self.store.delete(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._resolvers)
