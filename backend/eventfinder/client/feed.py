"""Supersedable feed fetching.

Each ``refresh`` cancels the token of the request before it, and only the most
recently *initiated* request may publish its result: a slow, older response
that finishes last is dropped.  Cancellation is silent; it is not an error.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Event, Lock
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class FeedCancelled(Exception):
    """Raised inside a fetch that noticed its token was cancelled."""


class CancelToken:
    def __init__(self, generation: int):
        self.generation = generation
        self._event = Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# Called as fetch(token=..., **params); returns the feed or raises FeedCancelled.
FeedFetch = Callable[..., list]


class FeedSession:
    """Holds the currently displayed feed for one screen."""

    def __init__(
        self,
        fetch: FeedFetch,
        executor: Optional[ThreadPoolExecutor] = None,
        on_update: Optional[Callable[[list], Any]] = None,
    ):
        self._fetch = fetch
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="feed")
        self._owns_executor = executor is None
        self._on_update = on_update
        self._lock = Lock()
        self._callback_lock = Lock()
        self._generation = 0
        self._token: Optional[CancelToken] = None
        self.events: list = []
        self.error: Optional[Exception] = None
        self.published_generation = 0

    def refresh(self, **params) -> Future:
        """Start a fetch with ``params``, superseding any fetch still running."""
        with self._lock:
            if self._token is not None:
                self._token.cancel()
            self._generation += 1
            token = self._token = CancelToken(self._generation)
        return self._executor.submit(self._run, token, params)

    def _is_current(self, token: CancelToken) -> bool:
        return not token.cancelled and token.generation == self._generation

    def _run(self, token: CancelToken, params: dict) -> Optional[list]:
        try:
            result = self._fetch(token=token, **params)
        except FeedCancelled:
            logger.debug("Feed request %d cancelled", token.generation)
            return None
        except Exception as exc:
            with self._lock:
                if not self._is_current(token):
                    logger.debug("Dropping error from superseded feed request %d", token.generation)
                    return None
                self.error = exc
            raise

        with self._lock:
            if not self._is_current(token):
                logger.debug("Dropping result of superseded feed request %d", token.generation)
                return None
            self.events = result
            self.error = None
            self.published_generation = token.generation
        if self._on_update is not None:
            # Serialized; a request superseded meanwhile gets no callback.
            with self._callback_lock:
                with self._lock:
                    current = self._is_current(token)
                if not current:
                    logger.debug("Skipping callback of superseded feed request %d", token.generation)
                    return None
                self._on_update(result)
        return result

    def cancel(self) -> None:
        with self._lock:
            if self._token is not None:
                self._token.cancel()

    def close(self) -> None:
        self.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=False)
