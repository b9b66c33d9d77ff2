"""Media URL resolution for stored object references.

Stored references are either bare bucket paths or URLs issued earlier
(signed, public, or the generic object form).  ``MediaURLResolver.resolve``
turns any of them into a URL that is valid right now, caching signed URLs
until shortly before they expire.  Resolution never raises: when every
strategy fails the caller gets the original value back.
"""
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Optional, Sequence
from urllib.parse import quote

import httpx

from eventfinder.errors import TransientIOError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60
SAFETY_MARGIN_SECONDS = 30

_OBJECT_PREFIX = "/storage/v1/object/"


def signed_marker(bucket: str) -> str:
    return f"{_OBJECT_PREFIX}sign/{bucket}/"


def _url_markers(bucket: str) -> list[str]:
    return [signed_marker(bucket), f"{_OBJECT_PREFIX}public/{bucket}/", f"{_OBJECT_PREFIX}{bucket}/"]


def is_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def is_signed_url(bucket: str, value: str) -> bool:
    return is_url(value) and signed_marker(bucket) in value


def extract_storage_path(bucket: str, value: Optional[str]) -> Optional[str]:
    """Bucket-relative path for ``value``, or None when it points somewhere else."""
    if not value:
        return None
    if not is_url(value):
        return value.lstrip("/") or None
    for marker in _url_markers(bucket):
        index = value.find(marker)
        if index >= 0:
            return value[index + len(marker):].split("?", 1)[0] or None
    return None


class StorageClient:
    """Object-storage signing API over HTTP (Supabase storage REST shape)."""

    def __init__(
        self,
        base_url: str,
        service_key: str = "",
        timeout: float = 5.0,
        http: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self._http = http

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> dict[str, str]:
        if not self.service_key:
            return {}
        return {"Authorization": f"Bearer {self.service_key}", "apikey": self.service_key}

    def create_signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        if not self.configured:
            raise TransientIOError("storage is not configured")
        url = f"{self.base_url}{signed_marker(bucket)}{quote(path)}"
        try:
            if self._http is not None:
                response = self._http.post(url, json={"expiresIn": expires_in}, headers=self._headers(), timeout=self.timeout)
            else:
                response = httpx.post(url, json={"expiresIn": expires_in}, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
            signed = response.json().get("signedURL")
        except (httpx.HTTPError, ValueError) as exc:
            raise TransientIOError(f"signing {bucket}/{path} failed: {exc}") from exc
        if not signed:
            raise TransientIOError(f"signing {bucket}/{path} returned no URL")
        if is_url(signed):
            return signed
        # The API answers with a path relative to /storage/v1.
        return f"{self.base_url}/storage/v1/{signed.lstrip('/')}"

    def public_url(self, bucket: str, path: str) -> str:
        if not self.configured:
            raise TransientIOError("storage is not configured")
        return f"{self.base_url}{_OBJECT_PREFIX}public/{bucket}/{quote(path)}"


@dataclass(frozen=True)
class CacheEntry:
    url: str
    expires_at: float


class SignedUrlCache:
    """(bucket, path, ttl) -> URL, served only while comfortably unexpired.

    Constructed once per process and injected; concurrent misses for one key
    may each sign a fresh URL, which is duplicate work but never wrong.
    """

    def __init__(
        self,
        safety_margin_seconds: float = SAFETY_MARGIN_SECONDS,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.time,
    ):
        self.safety_margin = safety_margin_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._lock = Lock()
        self._entries: "OrderedDict[tuple, CacheEntry]" = OrderedDict()

    def get(self, bucket: str, path: str, ttl: int) -> Optional[str]:
        key = (bucket, path, ttl)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self.clock() + self.safety_margin:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.url

    def put(self, bucket: str, path: str, ttl: int, url: str) -> None:
        key = (bucket, path, ttl)
        with self._lock:
            self._entries[key] = CacheEntry(url=url, expires_at=self.clock() + ttl)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class UrlStrategy:
    name = "unknown"

    def url_for(self, bucket: str, path: str, ttl: int) -> Optional[str]:
        raise NotImplementedError


class SignedUrlStrategy(UrlStrategy):
    name = "signed"

    def __init__(self, storage: StorageClient):
        self.storage = storage

    def url_for(self, bucket, path, ttl):
        return self.storage.create_signed_url(bucket, path, ttl)


class PublicUrlStrategy(UrlStrategy):
    name = "public"

    def __init__(self, storage: StorageClient):
        self.storage = storage

    def url_for(self, bucket, path, ttl):
        return self.storage.public_url(bucket, path)


class MediaURLResolver:
    """Resolve stored media references to currently valid URLs."""

    def __init__(
        self,
        cache: SignedUrlCache,
        strategies: Sequence[UrlStrategy],
        default_ttl: int = DEFAULT_TTL_SECONDS,
    ):
        self.cache = cache
        self.strategies = list(strategies)
        self.default_ttl = default_ttl

    @classmethod
    def from_storage(cls, storage: StorageClient, cache: SignedUrlCache, default_ttl: int = DEFAULT_TTL_SECONDS):
        return cls(cache, [SignedUrlStrategy(storage), PublicUrlStrategy(storage)], default_ttl)

    def resolve(self, bucket: str, value: Optional[str], ttl: Optional[int] = None) -> Optional[str]:
        if not value:
            return value
        if is_signed_url(bucket, value):
            return value

        path = extract_storage_path(bucket, value)
        if path is None:
            return value

        ttl = ttl or self.default_ttl
        cached = self.cache.get(bucket, path, ttl)
        if cached is not None:
            return cached

        for strategy in self.strategies:
            try:
                url = strategy.url_for(bucket, path, ttl)
            except TransientIOError as exc:
                logger.warning("%s URL for %s/%s unavailable: %s", strategy.name, bucket, path, exc)
                continue
            if url:
                self.cache.put(bucket, path, ttl, url)
                return url

        return value
