"""
Debounced website metadata lookup.

request(query) waits for a quiet period before calling the fetcher. Each
new query cancels the pending timer and invalidates any in-flight call, so
only the most recent query can ever reach the consumer:

    request("https://a.io")   t=0.0   timer A scheduled
    request("https://b.io")   t=0.2   timer A cancelled, timer B scheduled
                              t=0.7   B fires -> fetcher.fetch("https://b.io")

Results are tagged with a generation number; a result whose generation is
behind the current one comes back with stale=True and is dropped.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

import httpx

from ..timers import Scheduler, TimerHandle
from .fetcher import MetadataFetcher, validate_url
from .models import LookupErrorKind, LookupFailure, LookupResult

logger = logging.getLogger(__name__)

Spawner = Callable[[Coroutine[Any, Any, LookupResult]], "asyncio.Future[LookupResult]"]


def _spawn_on_running_loop(coro: Coroutine[Any, Any, LookupResult]) -> "asyncio.Task[LookupResult]":
    return asyncio.get_running_loop().create_task(coro)


class DebouncedLookup:
    """Debounce, validate, fetch and de-stale metadata lookups for one field."""

    def __init__(
        self,
        scheduler: Scheduler,
        fetcher: MetadataFetcher,
        on_result: Callable[[LookupResult], None] | None = None,
        debounce_seconds: float = 0.5,
        spawn: Spawner | None = None,
    ):
        self.scheduler = scheduler
        self.fetcher = fetcher
        self.on_result = on_result
        self.debounce_seconds = debounce_seconds
        self._spawn = spawn or _spawn_on_running_loop

        self._generation = 0
        self._pending: TimerHandle | None = None
        self._inflight: asyncio.Future | None = None
        self._last_query: str | None = None

        self.last_result: LookupResult | None = None
        self.fetch_count = 0

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def query(self) -> str | None:
        """Most recently requested query."""
        return self._last_query

    @property
    def is_waiting(self) -> bool:
        """Debounce timer is armed but has not fired."""
        return self._pending is not None and self._pending.active

    @property
    def is_fetching(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def request(self, query: str) -> bool:
        """
        Schedule a lookup for query.

        Returns False when nothing was scheduled: the query repeats the
        current one, is empty, or fails URL validation. Empty and invalid
        queries still supersede earlier queries.
        """
        query = (query or "").strip()
        if query == self._last_query:
            logger.debug(f"Lookup for {query!r} already requested, ignoring")
            return False

        self._supersede()
        self._last_query = query

        if not query:
            self.last_result = None
            return False

        error = validate_url(query)
        if error:
            result = LookupResult(
                query=query,
                error=LookupFailure(kind=LookupErrorKind.MALFORMED_INPUT, detail=error, message=error),
            )
            self.last_result = result
            if self.on_result:
                self.on_result(result)
            return False

        generation = self._generation
        self._pending = self.scheduler.call_later(
            self.debounce_seconds, lambda: self._fire(query, generation)
        )
        return True

    def cancel(self) -> None:
        """Drop the pending timer and make any in-flight result stale."""
        self._supersede()
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()

    async def wait_idle(self) -> LookupResult | None:
        """Wait for the in-flight call (if any) and return the latest result."""
        if self._inflight is not None:
            await asyncio.gather(self._inflight, return_exceptions=True)
        return self.last_result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _supersede(self) -> None:
        self._generation += 1
        self.scheduler.cancel(self._pending)
        self._pending = None

    def _fire(self, query: str, generation: int) -> None:
        self._pending = None
        if generation != self._generation:
            return
        self.fetch_count += 1
        logger.info(f"Looking up metadata for {query}")
        self._inflight = self._spawn(self._perform(query, generation))

    async def _perform(self, query: str, generation: int) -> LookupResult:
        try:
            response = await self.fetcher.fetch(query)
        except httpx.HTTPStatusError as e:
            logger.warning(f"Metadata lookup for {query} got HTTP {e.response.status_code}")
            result = LookupResult(
                query=query,
                error=LookupFailure(kind=LookupErrorKind.INVALID_RESPONSE, detail=str(e)),
            )
        except (httpx.HTTPError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Metadata lookup failed for {query}: {e}")
            result = LookupResult(
                query=query,
                error=LookupFailure(kind=LookupErrorKind.NETWORK, detail=str(e)),
            )
        except Exception as e:
            logger.warning(f"Metadata lookup returned garbage for {query}: {e}")
            result = LookupResult(
                query=query,
                error=LookupFailure(kind=LookupErrorKind.INVALID_RESPONSE, detail=str(e)),
            )
        else:
            if response.is_usable:
                result = LookupResult(query=query, metadata=response)
            else:
                detail = response.error or "No title or description in response"
                logger.warning(f"Unusable metadata for {query}: {detail}")
                result = LookupResult(
                    query=query,
                    error=LookupFailure(kind=LookupErrorKind.INVALID_RESPONSE, detail=detail),
                )

        return self._deliver(result, generation)

    def _deliver(self, result: LookupResult, generation: int) -> LookupResult:
        if generation != self._generation:
            result.stale = True
            logger.debug(f"Discarding stale lookup result for {result.query}")
            return result

        self.last_result = result
        if self.on_result:
            self.on_result(result)
        return result
