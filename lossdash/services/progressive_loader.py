"""Progressive, page-capped loading of incident records for one filter at a time."""

import asyncio
import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType

from lossdash.config import get_settings
from lossdash.errors import LossDashError, PartialLoadError, ValidationError
from lossdash.filters import FilterFingerprint
from lossdash.schemas.records import IncidentRecord, PageResult, id_key
from lossdash.services.page_fetcher import IncidentPageFetcher
from lossdash.services.request_cache import RequestCache

logger = logging.getLogger(__name__)
settings = get_settings()


class LoadPhase(str, Enum):
    """Where the loader is for its current fingerprint."""

    IDLE = "idle"
    FETCHING_FIRST_PAGE = "fetching_first_page"
    FETCHING_ADDITIONAL_PAGES = "fetching_additional_pages"
    COMPLETE = "complete"
    PARTIAL_COMPLETE = "partial_complete"
    FAILED = "failed"


class DataAvailability(str, Enum):
    """What a caller may conclude from the loaded data."""

    LOADING = "loading"
    FAILED = "failed"
    EMPTY = "empty"
    COMPLETE = "complete"
    CAPPED = "capped"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class LoadState:
    """
    Immutable snapshot of the loader for one fingerprint.

    A new snapshot replaces the old one whenever a page resolves, so a
    snapshot handed to a caller never changes underneath it.
    """

    fingerprint: FilterFingerprint | None = None
    generation: int = 0
    phase: LoadPhase = LoadPhase.IDLE
    page_size: int = settings.page_size
    max_pages: int = settings.max_pages
    authoritative_count: int | None = None
    total_pages: int = 0
    pages: Mapping[int, tuple[IncidentRecord, ...]] = field(default_factory=lambda: MappingProxyType({}))
    failed_pages: frozenset[int] = frozenset()
    incidents: tuple[IncidentRecord, ...] = ()
    error: LossDashError | None = None
    loaded_at: float | None = None

    @property
    def pages_loaded(self) -> int:
        return len(self.pages)

    @property
    def loaded_count(self) -> int:
        return len(self.incidents)

    @property
    def failure_count(self) -> int:
        return len(self.failed_pages)

    @property
    def is_loading(self) -> bool:
        return self.phase in (LoadPhase.FETCHING_FIRST_PAGE, LoadPhase.FETCHING_ADDITIONAL_PAGES)

    @property
    def is_capped(self) -> bool:
        """The remote total exceeds what the page cap allows us to load."""
        if self.authoritative_count is None:
            return False
        return self.authoritative_count > self.page_size * self.max_pages

    @property
    def is_complete(self) -> bool:
        return (
            self.total_pages > 0
            and self.pages_loaded == self.total_pages
            and not self.is_capped
        )

    @property
    def loading_progress(self) -> float:
        if self.total_pages <= 0:
            return 0.0
        return self.pages_loaded / self.total_pages * 100

    @property
    def availability(self) -> DataAvailability:
        if self.phase is LoadPhase.FAILED:
            return DataAvailability.FAILED
        if self.phase in (LoadPhase.IDLE, LoadPhase.FETCHING_FIRST_PAGE, LoadPhase.FETCHING_ADDITIONAL_PAGES):
            return DataAvailability.LOADING
        if self.failed_pages:
            return DataAvailability.DEGRADED
        if self.is_capped:
            return DataAvailability.CAPPED
        if not self.incidents:
            return DataAvailability.EMPTY
        return DataAvailability.COMPLETE

    @property
    def partial_error(self) -> PartialLoadError | None:
        if not self.failed_pages:
            return None
        return PartialLoadError(sorted(self.failed_pages))

    def raise_for_status(self) -> None:
        """Raise the first-page error, or PartialLoadError if pages are missing."""
        if self.error is not None:
            raise self.error
        partial = self.partial_error
        if partial is not None:
            raise partial


def merge_pages(pages: Mapping[int, tuple[IncidentRecord, ...]]) -> tuple[IncidentRecord, ...]:
    """Concatenate pages in page-number order, keeping the first record per id."""
    seen: set[str] = set()
    merged: list[IncidentRecord] = []
    for page in sorted(pages):
        for record in pages[page]:
            key = id_key(record.id)
            if key in seen:
                continue
            seen.add(key)
            merged.append(record)
    return tuple(merged)


class ProgressiveLoader:
    """
    Loads incidents for the current fingerprint, one page first, then the rest.

    Page 1 reveals the authoritative count and therefore how many pages to
    load (never more than max_pages). Pages 2..N are fetched concurrently and
    merged in page order as they arrive.

    Every load is tagged with a generation number. Switching fingerprint bumps
    the generation, and any page resolving for an older generation is dropped
    without touching the state.
    Each generation also gets its own concurrency limit, so pages still in
    flight for a replaced fingerprint do not hold slots the new one needs.

    Cache keys carry the scope, which keeps pages fetched with one caller's
    credentials out of another caller's loader.
    """

    def __init__(
        self,
        fetcher: IncidentPageFetcher,
        cache: RequestCache,
        page_size: int = settings.page_size,
        max_pages: int = settings.max_pages,
        max_concurrent_pages: int = settings.max_concurrent_pages,
        first_page_ttl: float = settings.first_page_ttl_seconds,
        page_ttl: float = settings.page_ttl_seconds,
        clock: Callable[[], float] = time.monotonic,
        scope: str = "",
    ):
        if page_size <= 0:
            raise ValidationError(f"page_size must be > 0, got {page_size}")
        if max_pages < 1:
            raise ValidationError(f"max_pages must be >= 1, got {max_pages}")

        self.fetcher = fetcher
        self.cache = cache
        self.page_size = page_size
        self.max_pages = max_pages
        self.first_page_ttl = first_page_ttl
        self.page_ttl = page_ttl
        self.max_concurrent_pages = max(1, max_concurrent_pages)
        self.scope = scope
        self._clock = clock
        self._semaphore = asyncio.Semaphore(self.max_concurrent_pages)

        self._generation = 0
        self._state = LoadState(page_size=page_size, max_pages=max_pages)
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> LoadState:
        """Snapshot for the current fingerprint."""
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    def plan_pages(self, count: int) -> int:
        """Pages to load for an authoritative count, capped at max_pages."""
        if count <= 0:
            return 1
        return min(math.ceil(count / self.page_size), self.max_pages)

    def page_key(self, fingerprint: FilterFingerprint, page: int) -> tuple:
        return ("incidents", self.scope, fingerprint, page, self.page_size)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _is_reusable(self, fingerprint: FilterFingerprint) -> bool:
        state = self._state
        if self._task is None or state.fingerprint != fingerprint:
            return False
        if state.phase is LoadPhase.FAILED:
            return False
        if state.loaded_at is not None and self._clock() - state.loaded_at >= self.first_page_ttl:
            return False
        return True

    def start(self, fingerprint: FilterFingerprint) -> asyncio.Task:
        """
        Begin loading fingerprint in the background.

        Reuses the running or finished load for the same fingerprint unless
        it failed or is older than the first-page lifetime. Any other
        fingerprint discards the current state and supersedes its load.
        """
        if self._is_reusable(fingerprint):
            return self._task

        if self._state.fingerprint is not None and self._state.fingerprint != fingerprint:
            logger.info(f"Filter changed from {self._state.fingerprint} to {fingerprint}")

        self._generation += 1
        self._state = LoadState(
            fingerprint=fingerprint,
            generation=self._generation,
            phase=LoadPhase.FETCHING_FIRST_PAGE,
            page_size=self.page_size,
            max_pages=self.max_pages,
        )
        self._semaphore = asyncio.Semaphore(self.max_concurrent_pages)
        self._task = asyncio.create_task(self._run(fingerprint, self._generation, self._semaphore))
        return self._task

    async def load(self, fingerprint: FilterFingerprint) -> LoadState:
        """
        Load fingerprint and wait until every page has resolved.

        Returns the loader's current state. If another fingerprint replaced
        this one meanwhile, that is the newer fingerprint's state.

        Raises:
            TransportError, ValidationError, AuthenticationError: page 1 failed
        """
        await asyncio.shield(self.start(fingerprint))
        return self._state

    async def _fetch_page(
        self, fingerprint: FilterFingerprint, page: int, semaphore: asyncio.Semaphore
    ) -> PageResult[IncidentRecord]:
        ttl = self.first_page_ttl if page == 1 else self.page_ttl

        async def produce() -> PageResult[IncidentRecord]:
            async with semaphore:
                return await self.fetcher.fetch(fingerprint, page, self.page_size)

        return await self.cache.get_or_fetch(self.page_key(fingerprint, page), produce, ttl)

    async def _run(self, fingerprint: FilterFingerprint, generation: int, semaphore: asyncio.Semaphore) -> None:
        try:
            first = await self._fetch_page(fingerprint, 1, semaphore)
        except LossDashError as e:
            if not self._is_current(generation):
                logger.debug(f"Dropping stale first-page failure for {fingerprint}: {e}")
                return
            logger.error(f"First page failed for {fingerprint}: {e}")
            self._state = replace(self._state, phase=LoadPhase.FAILED, error=e)
            raise

        if not self._is_current(generation):
            logger.debug(f"Dropping stale first page for {fingerprint}")
            return

        total_pages = self.plan_pages(first.count)
        if math.ceil(first.count / self.page_size) > total_pages:
            logger.warning(
                f"{fingerprint} has {first.count} incidents; loading only "
                f"{total_pages} pages of {self.page_size}"
            )

        pages = {1: tuple(first.results)}
        self._state = replace(
            self._state,
            phase=LoadPhase.FETCHING_ADDITIONAL_PAGES if total_pages > 1 else self._state.phase,
            authoritative_count=first.count,
            total_pages=total_pages,
            pages=MappingProxyType(pages),
            incidents=merge_pages(pages),
        )

        if total_pages > 1:
            await asyncio.gather(
                *(
                    self._load_additional_page(fingerprint, generation, page, semaphore)
                    for page in range(2, total_pages + 1)
                )
            )

        if self._is_current(generation):
            self._finish()

    async def _load_additional_page(
        self, fingerprint: FilterFingerprint, generation: int, page: int, semaphore: asyncio.Semaphore
    ) -> None:
        try:
            result = await self._fetch_page(fingerprint, page, semaphore)
        except LossDashError as e:
            if not self._is_current(generation):
                return
            logger.warning(f"Page {page} failed for {fingerprint}: {e}")
            self._state = replace(self._state, failed_pages=self._state.failed_pages | {page})
            return

        if not self._is_current(generation):
            logger.debug(f"Dropping stale page {page} for {fingerprint}")
            return

        self._merge_page(page, result)

    def _merge_page(self, page: int, result: PageResult[IncidentRecord]) -> None:
        pages = dict(self._state.pages)
        pages[page] = tuple(result.results)
        self._state = replace(
            self._state,
            pages=MappingProxyType(pages),
            failed_pages=self._state.failed_pages - {page},
            incidents=merge_pages(pages),
        )

    def _finish(self) -> None:
        state = self._state
        done = state.pages_loaded == state.total_pages and not state.is_capped
        self._state = replace(
            state,
            phase=LoadPhase.COMPLETE if done else LoadPhase.PARTIAL_COMPLETE,
            loaded_at=self._clock(),
        )
        logger.info(
            f"Loaded {self._state.loaded_count} of {state.authoritative_count} incidents for "
            f"{state.fingerprint} ({state.pages_loaded}/{state.total_pages} pages, "
            f"{state.failure_count} failed)"
        )

    async def retry_page(self, page: int) -> LoadState:
        """Re-request one page of the current fingerprint, bypassing the cache."""
        state = self._state
        if state.fingerprint is None or state.is_loading or state.phase is LoadPhase.FAILED:
            raise ValidationError("No finished load to retry pages for")
        if not 2 <= page <= state.total_pages:
            raise ValidationError(f"page must be between 2 and {state.total_pages}, got {page}")

        generation = self._generation
        self.cache.invalidate(self.page_key(state.fingerprint, page))
        await self._load_additional_page(state.fingerprint, generation, page, self._semaphore)
        if self._is_current(generation):
            self._finish()
        return self._state

    async def retry_failed_pages(self) -> LoadState:
        """Re-request every failed page of the current fingerprint concurrently."""
        state = self._state
        if not state.failed_pages:
            return state
        if state.is_loading:
            raise ValidationError("Cannot retry pages while the load is still running")

        generation = self._generation
        for page in state.failed_pages:
            self.cache.invalidate(self.page_key(state.fingerprint, page))
        await asyncio.gather(
            *(
                self._load_additional_page(state.fingerprint, generation, page, self._semaphore)
                for page in sorted(state.failed_pages)
            )
        )
        if self._is_current(generation):
            self._finish()
        return self._state

    def reset(self) -> None:
        """Forget the current fingerprint; in-flight pages become stale."""
        self._generation += 1
        self._state = LoadState(page_size=self.page_size, max_pages=self.max_pages)
        self._task = None
