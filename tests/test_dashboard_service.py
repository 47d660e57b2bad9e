"""Tests for dashboard sessions and snapshots."""

import asyncio
import logging

import httpx
import pytest

from lossdash.config import Settings
from lossdash.errors import AuthenticationError, SupersededLoadError, TransportError
from lossdash.filters import FilterFingerprint
from lossdash.services.dashboard import DashboardService, DashboardSnapshot, load_status
from lossdash.services.progressive_loader import DataAvailability, LoadPhase, LoadState
from lossdash.services.request_cache import RequestCache

from .fakes import wait_until

FIRST_WEEK = FilterFingerprint("2025-01-01", "2025-01-05")
OFFICE_ONE = FilterFingerprint("2025-01-01", "2025-01-05", "1")


class TestDashboardService:
    """Tests for DashboardService."""

    def test_session_requires_token(self, dashboard_service):
        """Blank tokens are rejected."""
        with pytest.raises(AuthenticationError):
            dashboard_service.session_for(None)
        with pytest.raises(AuthenticationError):
            dashboard_service.session_for("   ")

    def test_session_reused_per_token(self, dashboard_service):
        """The same token maps to the same session."""
        first = dashboard_service.session_for("abc")
        second = dashboard_service.session_for("abc")
        other = dashboard_service.session_for("xyz")

        assert first is second
        assert other is not first
        assert dashboard_service.session_count == 2

    def test_least_recent_session_evicted(self, record_service):
        """Sessions beyond max_sessions are dropped oldest first."""
        service = DashboardService(
            Settings(max_sessions=2, record_service_url="http://records.test/api"),
            transport=httpx.MockTransport(record_service),
        )
        a = service.session_for("a")
        service.session_for("b")
        service.session_for("a")
        service.session_for("c")

        assert service.session_count == 2
        assert service.session_for("a") is a

    @pytest.mark.asyncio
    async def test_snapshot(self, dashboard_service):
        """A snapshot carries the loaded incidents and reference tables."""
        snapshot = await dashboard_service.snapshot("abc", FIRST_WEEK)

        assert snapshot.fingerprint == FIRST_WEEK
        assert snapshot.is_complete is True
        assert snapshot.pages_loaded == snapshot.total_pages == 2
        assert snapshot.loading_progress == 100.0
        assert len(snapshot.incidents) == 4
        assert snapshot.get_office_by_id(3).name == "Sur"
        assert snapshot.get_incident_type_by_id("1").name == "Hurto"
        assert [e.office_id for e in snapshot.office_ranking()] == ["1", "2", "3"]
        assert len(snapshot.incident_rows(limit=3)) == 3

    def test_uses_given_cache(self, test_settings, record_service):
        """An empty cache passed in is the one used."""
        cache = RequestCache()
        service = DashboardService(test_settings, cache=cache, transport=httpx.MockTransport(record_service))

        assert service.cache is cache

    @pytest.mark.asyncio
    async def test_same_token_reuses_cached_data(self, dashboard_service, record_service):
        """Asking again with the same token makes no new requests."""
        await dashboard_service.snapshot("abc", FIRST_WEEK)
        requests_after_first = len(record_service.requests)

        await dashboard_service.snapshot("abc", FIRST_WEEK)

        assert len(record_service.requests) == requests_after_first

    @pytest.mark.asyncio
    async def test_cached_data_not_shared_between_tokens(self, dashboard_service, record_service):
        """Another token fetches its own pages and reference data with its own credentials."""
        await dashboard_service.snapshot("abc", FIRST_WEEK)
        requests_after_first = len(record_service.requests)

        await dashboard_service.snapshot("xyz", FIRST_WEEK)

        later = record_service.requests[requests_after_first:]
        assert len(later) == requests_after_first
        assert all(r.headers["Authorization"] == "Bearer xyz" for r in later)

    @pytest.mark.asyncio
    async def test_rejected_token_gets_nothing_cached(self, dashboard_service, record_service):
        """A token the record service rejects cannot read another caller's rows."""
        record_service.accepted_tokens = {"good"}
        snapshot = await dashboard_service.snapshot("good", FIRST_WEEK)
        assert len(snapshot.incidents) == 4

        with pytest.raises(TransportError) as exc_info:
            await dashboard_service.snapshot("forged", FIRST_WEEK)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_superseded_snapshot(self, dashboard_service):
        """A snapshot whose filter was replaced mid-load raises instead of answering for the new filter."""
        session = dashboard_service.session_for("abc")
        pending = asyncio.create_task(dashboard_service.snapshot("abc", FIRST_WEEK))
        await wait_until(lambda: session.loader.state.fingerprint == FIRST_WEEK)

        dashboard_service.status("abc", OFFICE_ONE)

        with pytest.raises(SupersededLoadError):
            await pending
        await wait_until(lambda: not session.loader.state.is_loading, attempts=5000)
        assert session.loader.state.fingerprint == OFFICE_ONE

    @pytest.mark.asyncio
    async def test_capped_snapshot(self, record_service):
        """A dataset larger than the page cap is reported as capped."""
        service = DashboardService(
            Settings(page_size=2, max_pages=1, record_service_url="http://records.test/api"),
            transport=httpx.MockTransport(record_service),
        )

        snapshot = await service.snapshot("abc", FilterFingerprint())
        summary = snapshot.summary()

        assert snapshot.state.availability is DataAvailability.CAPPED
        assert summary.status.is_capped is True
        assert summary.status.is_complete is False
        assert summary.totals.authoritative_count == 5
        assert summary.totals.loaded_count == 2
        assert summary.trend is None

    @pytest.mark.asyncio
    async def test_status_does_not_wait(self, dashboard_service):
        """status() returns at once and the load finishes in the background."""
        state = dashboard_service.status("abc", FIRST_WEEK)

        assert state.phase is LoadPhase.FETCHING_FIRST_PAGE

        session = dashboard_service.session_for("abc")
        await wait_until(lambda: not session.loader.state.is_loading, attempts=5000)
        assert dashboard_service.status("abc", FIRST_WEEK).is_complete is True

    @pytest.mark.asyncio
    async def test_background_failure_is_logged(self, dashboard_service, record_service, caplog):
        """A background load that fails is logged rather than lost."""
        record_service.fail_pages = {1}

        with caplog.at_level(logging.WARNING, logger="lossdash.services.dashboard"):
            dashboard_service.status("abc", FIRST_WEEK)
            session = dashboard_service.session_for("abc")
            await wait_until(lambda: session.loader.state.phase is LoadPhase.FAILED, attempts=5000)
            await wait_until(lambda: "Background incident load failed" in caplog.text, attempts=100)

        assert session.loader.state.availability is DataAvailability.FAILED

    @pytest.mark.asyncio
    async def test_clear(self, dashboard_service):
        """clear() drops sessions and cached responses."""
        await dashboard_service.snapshot("abc", FIRST_WEEK)

        dashboard_service.clear()

        assert dashboard_service.session_count == 0
        assert len(dashboard_service.cache) == 0


class TestLoadStatus:
    """Tests for load_status."""

    def test_idle(self):
        """An idle state serializes with empty filters."""
        status = load_status(LoadState())

        assert status.from_date == ""
        assert status.phase == "idle"
        assert status.availability == "loading"
        assert status.error is None

    def test_snapshot_defaults(self, reference_tables):
        """A snapshot without a fingerprint uses the empty one."""
        snapshot = DashboardSnapshot(state=LoadState(), tables=reference_tables)

        assert snapshot.fingerprint == FilterFingerprint()
        assert snapshot.summary().trend is None
