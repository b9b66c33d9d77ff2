"""Process-wide collaborators, built once at startup and injected per request."""
from fastapi import Request

from eventfinder.config import Settings
from eventfinder.services.kv_store import KeyValueStore
from eventfinder.services.location import GeoResolverRegistry
from eventfinder.services.media import MediaURLResolver, SignedUrlCache, StorageClient


def build_media_resolver(config: Settings) -> MediaURLResolver:
    storage = StorageClient(
        base_url=config.STORAGE_URL,
        service_key=config.STORAGE_SERVICE_KEY,
        timeout=config.STORAGE_TIMEOUT_SECONDS,
    )
    cache = SignedUrlCache(
        safety_margin_seconds=config.MEDIA_URL_SAFETY_MARGIN_SECONDS,
        max_entries=config.MEDIA_URL_CACHE_MAX_ENTRIES,
    )
    return MediaURLResolver.from_storage(storage, cache, default_ttl=config.MEDIA_URL_TTL_SECONDS)


def build_location_registry(config: Settings) -> GeoResolverRegistry:
    store = KeyValueStore(
        default_ttl_seconds=config.LOCATION_CACHE_TTL_SECONDS,
        max_entries=config.LOCATION_CACHE_MAX_ENTRIES,
    )
    return GeoResolverRegistry(store, max_entries=config.LOCATION_CACHE_MAX_ENTRIES)


def get_media_resolver(request: Request) -> MediaURLResolver:
    return request.app.state.media_resolver


def get_location_registry(request: Request) -> GeoResolverRegistry:
    return request.app.state.location_registry
