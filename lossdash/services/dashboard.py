"""Per-session dashboard orchestration over the loader and reference data."""

import asyncio
import hashlib
import logging
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from lossdash.config import Settings, get_settings
from lossdash.errors import AuthenticationError, SupersededLoadError
from lossdash.filters import FilterFingerprint
from lossdash.schemas.dashboard import (
    DashboardSummary,
    IncidentRow,
    LoadStatusOut,
    OfficeRankingEntry,
)
from lossdash.schemas.records import IncidentRecord, IncidentTypeRecord, OfficeRecord
from lossdash.services import aggregation
from lossdash.services.page_fetcher import IncidentPageFetcher
from lossdash.services.progressive_loader import LoadState, ProgressiveLoader
from lossdash.services.record_client import RecordServiceClient
from lossdash.services.reference_data import ReferenceDataLoader, ReferenceTables
from lossdash.services.request_cache import RequestCache

logger = logging.getLogger(__name__)


def load_status(state: LoadState) -> LoadStatusOut:
    """Serialize a load state for presentation."""
    fingerprint = state.fingerprint or FilterFingerprint()
    return LoadStatusOut(
        from_date=fingerprint.from_date,
        to_date=fingerprint.to_date,
        office_id=fingerprint.office_id,
        phase=state.phase.value,
        availability=state.availability.value,
        pages_loaded=state.pages_loaded,
        total_pages=state.total_pages,
        failed_pages=sorted(state.failed_pages),
        is_complete=state.is_complete,
        is_capped=state.is_capped,
        loading_progress=state.loading_progress,
        authoritative_count=state.authoritative_count,
        loaded_count=state.loaded_count,
        error=str(state.error) if state.error else None,
    )


@dataclass(frozen=True)
class DashboardSnapshot:
    """
    What chart and table collaborators receive for one fingerprint.

    Wraps the loader state and reference tables taken at the same moment;
    the aggregation helpers all read from this fixed snapshot.
    """

    state: LoadState
    tables: ReferenceTables
    identified_status_ids: tuple[int | str, ...] = (1, 3)

    @property
    def fingerprint(self) -> FilterFingerprint:
        return self.state.fingerprint or FilterFingerprint()

    @property
    def incidents(self) -> tuple[IncidentRecord, ...]:
        return self.state.incidents

    @property
    def pages_loaded(self) -> int:
        return self.state.pages_loaded

    @property
    def total_pages(self) -> int:
        return self.state.total_pages

    @property
    def is_complete(self) -> bool:
        return self.state.is_complete

    @property
    def loading_progress(self) -> float:
        return self.state.loading_progress

    def get_office_by_id(self, office_id: int | str | None) -> OfficeRecord | None:
        return self.tables.get_office_by_id(office_id)

    def get_incident_type_by_id(self, type_id: int | str | None) -> IncidentTypeRecord | None:
        return self.tables.get_incident_type_by_id(type_id)

    def _bounds(self) -> tuple[str, str, str]:
        fp = self.fingerprint
        return fp.from_date, fp.to_date, fp.office_id

    def office_ranking(self) -> list[OfficeRankingEntry]:
        return aggregation.office_ranking(self.incidents, self.tables.offices.values(), *self._bounds())

    def incident_rows(self, limit: int | None = None) -> list[IncidentRow]:
        rows = aggregation.incident_rows(self.incidents, self.tables, *self._bounds())
        return rows if limit is None else rows[:limit]

    def summary(self, repeat_suspects_limit: int = 5) -> DashboardSummary:
        """Compute every dashboard view for this snapshot's fingerprint."""
        from_date, to_date, office_id = self._bounds()
        incidents = self.incidents
        offices = list(self.tables.offices.values())

        trend = None
        if from_date and to_date:
            trend = aggregation.trend_by_day(incidents, from_date, to_date, office_id)

        return DashboardSummary(
            status=load_status(self.state),
            totals=aggregation.incident_totals(self.state, from_date, to_date, office_id),
            trend=trend,
            office_ranking=aggregation.office_ranking(incidents, offices, from_date, to_date, office_id),
            suspects=aggregation.suspect_stats(
                incidents, self.tables, self.identified_status_ids, from_date, to_date, office_id
            ),
            economics=aggregation.economic_breakdown(incidents, from_date, to_date, office_id),
            hourly=aggregation.hourly_distribution(incidents, from_date, to_date, office_id),
            incident_types=aggregation.incident_type_distribution(
                incidents, self.tables, from_date, to_date, office_id
            ),
            repeat_suspects=aggregation.top_repeat_suspects(
                incidents, self.tables, repeat_suspects_limit, from_date, to_date, office_id
            ),
            affected_offices=aggregation.affected_offices(incidents, from_date, to_date, office_id),
            office_markers=aggregation.office_markers(incidents, offices, from_date, to_date, office_id),
        )


class DashboardSession:
    """
    One caller's loader plus reference data.

    The process cache is shared, but every key is scoped to the session so
    rows fetched with one bearer token are never served to another.
    """

    def __init__(
        self,
        client: RecordServiceClient,
        cache: RequestCache,
        settings: Settings,
        scope: str = "",
    ):
        self.client = client
        self.settings = settings
        self.scope = scope
        self.reference = ReferenceDataLoader(
            client,
            cache,
            ttl=settings.reference_ttl_seconds,
            suspects_page_size=settings.suspects_page_size,
            scope=scope,
        )
        self.loader = ProgressiveLoader(
            IncidentPageFetcher(
                client,
                date_field=settings.date_field,
                office_field=settings.office_field,
                ordering=settings.ordering,
            ),
            cache,
            page_size=settings.page_size,
            max_pages=settings.max_pages,
            max_concurrent_pages=settings.max_concurrent_pages,
            first_page_ttl=settings.first_page_ttl_seconds,
            page_ttl=settings.page_ttl_seconds,
            scope=scope,
        )
        self._watched_task: asyncio.Task | None = None

    def _snapshot(self, tables: ReferenceTables) -> DashboardSnapshot:
        return DashboardSnapshot(
            state=self.loader.state,
            tables=tables,
            identified_status_ids=tuple(self.settings.identified_status_ids),
        )

    async def snapshot(self, fingerprint: FilterFingerprint) -> DashboardSnapshot:
        """
        Load fingerprint fully (page 1 and reference data in parallel).

        Raises:
            SupersededLoadError: another request replaced the fingerprint
                before this load finished
        """
        state, tables = await asyncio.gather(
            self.loader.load(fingerprint),
            self.reference.load_tables(),
        )
        _check_fingerprint(state, fingerprint)
        return self._snapshot(tables)

    def status(self, fingerprint: FilterFingerprint) -> LoadState:
        """Kick off loading if needed and return the state without waiting."""
        task = self.loader.start(fingerprint)
        if task is not self._watched_task:
            task.add_done_callback(_log_background_failure)
            self._watched_task = task
        return self.loader.state

    async def retry_failed_pages(self, fingerprint: FilterFingerprint) -> DashboardSnapshot:
        _check_fingerprint(await self.loader.load(fingerprint), fingerprint)
        _check_fingerprint(await self.loader.retry_failed_pages(), fingerprint)
        return self._snapshot(await self.reference.load_tables())


def _check_fingerprint(state: LoadState, fingerprint: FilterFingerprint) -> None:
    if state.fingerprint != fingerprint:
        raise SupersededLoadError(
            f"Load for {fingerprint} was replaced by {state.fingerprint} before it finished"
        )


def _log_background_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning(f"Background incident load failed: {error}")


class DashboardService:
    """
    Process-wide entry point used by the HTTP layer.

    Holds the shared RequestCache and one DashboardSession per bearer token,
    evicting the least recently used session beyond max_sessions.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cache: RequestCache | None = None,
        client_factory: Callable[[str], RecordServiceClient] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else RequestCache()
        self._transport = transport
        self._client_factory = client_factory or self._default_client
        self._sessions: OrderedDict[str, DashboardSession] = OrderedDict()

    def _default_client(self, token: str) -> RecordServiceClient:
        return RecordServiceClient(
            token,
            base_url=self.settings.record_service_url,
            timeout=self.settings.request_timeout_seconds,
            transport=self._transport,
        )

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def session_for(self, token: str | None) -> DashboardSession:
        if not token or not token.strip():
            raise AuthenticationError("A bearer token is required")

        # Tokens are credentials; keep only a digest as the dictionary key
        key = hashlib.sha256(token.encode()).hexdigest()
        session = self._sessions.get(key)
        if session is None:
            session = DashboardSession(self._client_factory(token), self.cache, self.settings, scope=key)
            self._sessions[key] = session
            while len(self._sessions) > self.settings.max_sessions:
                self._sessions.popitem(last=False)
        else:
            self._sessions.move_to_end(key)
        return session

    async def snapshot(self, token: str | None, fingerprint: FilterFingerprint) -> DashboardSnapshot:
        return await self.session_for(token).snapshot(fingerprint)

    def status(self, token: str | None, fingerprint: FilterFingerprint) -> LoadState:
        return self.session_for(token).status(fingerprint)

    async def retry_failed_pages(self, token: str | None, fingerprint: FilterFingerprint) -> DashboardSnapshot:
        return await self.session_for(token).retry_failed_pages(fingerprint)

    def clear(self) -> None:
        """Drop every session and cached response."""
        self._sessions.clear()
        self.cache.clear()
