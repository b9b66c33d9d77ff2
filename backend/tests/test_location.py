"""Tests for viewer location resolution (strategy chain, persistence, single-flight)."""
import threading
import time

from eventfinder.errors import TransientIOError
from eventfinder.services.geo import COUNTRY_FALLBACK, Coordinate, coords_for_city
from eventfinder.services.kv_store import KeyValueStore
from eventfinder.services.location import (
    CityLocation,
    CountryLocation,
    GeoResolver,
    GeoResolverRegistry,
    LocationStrategy,
)
from tests.conftest import FakeClock, create_test_profile

DEVICE = Coordinate(46.05, 14.47)


class CountingProvider:
    def __init__(self, result=DEVICE, release: threading.Event = None, error: Exception = None):
        self.result = result
        self.release = release
        self.error = error
        self.calls = 0
        self.started = threading.Event()

    def __call__(self, cancel):
        self.calls += 1
        self.started.set()
        if self.release is not None:
            self.release.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.result


class TestKeyValueStore:
    def test_set_get_delete(self):
        store = KeyValueStore()
        store.set("k", {"lat": 1})
        assert store.get("k") == {"lat": 1}
        assert store.delete("k") is True
        assert store.get("k", "missing") == "missing"

    def test_ttl(self):
        clock = FakeClock()
        store = KeyValueStore(default_ttl_seconds=10, clock=clock)
        store.set("k", 1)
        clock.advance(9)
        assert store.get("k") == 1
        clock.advance(1)
        assert store.get("k") is None
        assert len(store) == 0

    def test_max_entries_evicts_least_recently_used(self):
        store = KeyValueStore(max_entries=2)
        store.set("a", 1)
        store.set("b", 2)
        store.get("a")
        store.set("c", 3)
        assert len(store) == 2
        assert store.get("b") is None
        assert store.get("a") == 1


class TestResolutionOrder:
    """First source that yields a coordinate wins."""

    def test_device_wins_and_is_persisted(self):
        store = KeyValueStore()
        provider = CountingProvider()
        resolver = GeoResolver(store, device_provider=provider)
        result = resolver.resolve(city="Maribor")
        assert result.source == "device"
        assert result.coordinate == DEVICE
        assert store.get(resolver.key) == DEVICE.as_dict()

    def test_persisted_coordinate_reused_without_prompt(self):
        provider = CountingProvider()
        resolver = GeoResolver(KeyValueStore(), device_provider=provider)
        resolver.resolve()
        again = resolver.resolve()
        assert again.source == "cached"
        assert again.coordinate == DEVICE
        assert provider.calls == 1

    def test_denied_permission_falls_to_city(self):
        resolver = GeoResolver(KeyValueStore(), device_provider=CountingProvider(result=None))
        result = resolver.resolve(city="  maribor ")
        assert result.source == "city"
        assert result.coordinate == coords_for_city("Maribor")

    def test_provider_error_is_not_fatal(self):
        provider = CountingProvider(error=PermissionError("denied"))
        resolver = GeoResolver(KeyValueStore(), device_provider=provider)
        assert resolver.resolve(city="Celje").source == "city"

    def test_device_timeout_falls_to_city(self):
        provider = CountingProvider(error=TimeoutError("GPS fix timed out"))
        resolver = GeoResolver(KeyValueStore(), device_provider=provider)
        result = resolver.resolve(city="Maribor")
        assert result.source == "city"
        assert result.coordinate == coords_for_city("Maribor")

    def test_unexpected_strategy_error_is_not_fatal(self):
        class Flaky(LocationStrategy):
            source = "flaky"

            def locate(self, request):
                raise ValueError("bad payload")

        resolver = GeoResolver(KeyValueStore(), strategies=[Flaky(), CityLocation()])
        assert resolver.resolve(city="Koper").source == "city"

    def test_unknown_city_falls_to_country(self):
        resolver = GeoResolver(KeyValueStore())
        result = resolver.resolve(city="Atlantis")
        assert result.source == "country"
        assert result.coordinate == COUNTRY_FALLBACK

    def test_every_terminal_branch_persists(self):
        resolver = GeoResolver(KeyValueStore())
        assert resolver.resolve(city="Maribor").source == "city"
        again = resolver.resolve(city="Ljubljana")
        assert again.source == "cached"
        assert again.coordinate == coords_for_city("Maribor")

    def test_forget(self):
        resolver = GeoResolver(KeyValueStore())
        resolver.resolve(city="Maribor")
        resolver.forget()
        assert resolver.resolve(city="Ljubljana").coordinate == coords_for_city("Ljubljana")

    def test_strategies_are_data(self):
        class Broken(LocationStrategy):
            source = "broken"

            def locate(self, request):
                raise TransientIOError("lookup down")

        resolver = GeoResolver(KeyValueStore(), strategies=[Broken(), CountryLocation(), CityLocation()])
        assert resolver.resolve(city="Maribor").source == "country"

    def test_chain_without_terminal_source_still_answers(self):
        resolver = GeoResolver(KeyValueStore(), strategies=[CityLocation()])
        assert resolver.resolve(city="Atlantis").coordinate == COUNTRY_FALLBACK

    def test_no_store_means_no_persistence(self):
        provider = CountingProvider()
        resolver = GeoResolver(store=None, device_provider=provider)
        resolver.resolve()
        resolver.resolve()
        assert provider.calls == 2


class TestCancellation:
    def test_cancelled_before_prompt(self):
        provider = CountingProvider()
        resolver = GeoResolver(KeyValueStore(), device_provider=provider)
        cancel = threading.Event()
        cancel.set()
        result = resolver.resolve(city="Kranj", cancel=cancel)
        assert result.source == "city"
        assert provider.calls == 0

    def test_late_device_answer_is_discarded(self):
        store = KeyValueStore()
        cancel = threading.Event()

        def provider(token):
            cancel.set()  # the caller went away while the fix was pending
            return DEVICE

        resolver = GeoResolver(store, device_provider=provider)
        result = resolver.resolve(city="Kranj", cancel=cancel)
        assert result.source == "city"
        assert store.get(resolver.key) == coords_for_city("Kranj").as_dict()


class TestSingleFlight:
    def test_concurrent_calls_prompt_once(self):
        release = threading.Event()
        provider = CountingProvider(release=release)
        resolver = GeoResolver(KeyValueStore(), device_provider=provider)
        results = []

        def worker():
            results.append(resolver.resolve())

        first = threading.Thread(target=worker)
        first.start()
        assert provider.started.wait(timeout=5)
        second = threading.Thread(target=worker)
        second.start()
        time.sleep(0.05)
        release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert provider.calls == 1
        assert len(results) == 2
        assert all(r.coordinate == DEVICE for r in results)


class TestRegistry:
    def test_one_resolver_per_viewer(self):
        registry = GeoResolverRegistry(KeyValueStore())
        assert registry.for_viewer("u1") is registry.for_viewer("u1")
        assert registry.for_viewer("u1") is not registry.for_viewer("u2")

    def test_viewers_do_not_share_coordinates(self):
        registry = GeoResolverRegistry(KeyValueStore())
        registry.for_viewer("u1").resolve(city="Maribor")
        assert registry.for_viewer("u2").resolve(city="Koper").source == "city"

    def test_anonymous_not_persisted(self):
        registry = GeoResolverRegistry(KeyValueStore())
        registry.for_viewer(None).resolve(city="Maribor")
        assert len(registry.store) == 0

    def test_least_recently_used_resolver_dropped(self):
        registry = GeoResolverRegistry(KeyValueStore(), max_entries=2)
        first = registry.for_viewer("u1")
        registry.for_viewer("u2")
        registry.for_viewer("u1")
        registry.for_viewer("u3")
        assert len(registry) == 2
        assert registry.for_viewer("u1") is first

    def test_dropped_resolver_keeps_coordinate(self):
        registry = GeoResolverRegistry(KeyValueStore(), max_entries=1)
        registry.for_viewer("u1").resolve(city="Maribor")
        registry.for_viewer("u2")
        again = registry.for_viewer("u1").resolve(city="Koper")
        assert again.source == "cached"
        assert again.coordinate == coords_for_city("Maribor")

    def test_forget_drops_resolver_and_coordinate(self):
        registry = GeoResolverRegistry(KeyValueStore())
        registry.for_viewer("u1").resolve(city="Maribor")
        registry.forget("u1")
        assert len(registry) == 0
        assert len(registry.store) == 0


class TestLocationEndpoints:
    def test_resolve_from_profile_city(self, client):
        user = create_test_profile(client, "nina", city="Maribor")
        resp = client.post("/api/location/resolve", json={"viewer_id": user["user_id"]})
        assert resp.status_code == 200
        data = resp.json()
        assert data["source"] == "city"
        assert data["lat"] == coords_for_city("Maribor").lat

    def test_device_coordinate_remembered(self, client):
        user = create_test_profile(client, "nina")
        resp = client.post("/api/location/resolve", json={"viewer_id": user["user_id"], "lat": 46.0, "lng": 14.5})
        assert resp.json()["source"] == "device"
        resp = client.post("/api/location/resolve", json={"viewer_id": user["user_id"], "city": "Koper"})
        assert resp.json() == {"lat": 46.0, "lng": 14.5, "source": "cached"}

    def test_forget(self, client):
        user = create_test_profile(client, "nina")
        client.post("/api/location/resolve", json={"viewer_id": user["user_id"], "lat": 46.0, "lng": 14.5})
        assert client.delete(f"/api/location/{user['user_id']}").status_code == 200
        resp = client.post("/api/location/resolve", json={"viewer_id": user["user_id"], "city": "Koper"})
        assert resp.json()["source"] == "city"

    def test_forget_unknown_viewer(self, client, location_registry):
        assert client.delete("/api/location/nobody").status_code == 404
        assert len(location_registry) == 0

    def test_invalid_coordinate(self, client):
        resp = client.post("/api/location/resolve", json={"lat": 123.0, "lng": 14.5})
        assert resp.status_code == 400

    def test_anonymous_country_fallback(self, client):
        resp = client.post("/api/location/resolve", json={})
        assert resp.json()["source"] == "country"
