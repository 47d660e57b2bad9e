"""Pytest fixtures for lossdash tests."""

from collections.abc import AsyncGenerator
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from lossdash.config import Settings
from lossdash.main import app, limiter
from lossdash.routers.dependencies import get_dashboard_service
from lossdash.schemas.records import (
    IncidentRecord,
    IncidentTypeRecord,
    OfficeRecord,
    SuspectRecord,
    SuspectStatusRecord,
)
from lossdash.services.dashboard import DashboardService
from lossdash.services.reference_data import ReferenceTables

from .fakes import FakeClock, FakeRecordService


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with small pages so paging paths are exercised."""
    return Settings(
        record_service_url="http://records.test/api",
        page_size=2,
        max_pages=3,
        max_concurrent_pages=3,
        rate_limit_per_minute=0,
        debug=True,
    )


@pytest.fixture
def sample_incident_records() -> list[dict[str, Any]]:
    """Sample incidents as returned by the record service."""
    return [
        {
            "id": 1,
            "Date": "2025-01-01",
            "Time": "10:15:00",
            "Office": 1,
            "IncidentType": 1,
            "Suspects": ["s-1", "s-2"],
            "CashLoss": "100.50",
            "MerchandiseLoss": "200",
            "OtherLosses": "",
            "TotalLoss": "300.50",
            "Description": "Shoplifting at checkout",
            "Notes": "",
        },
        {
            "id": 2,
            "Date": "2025-01-01",
            "Time": "22:40:00",
            "Office": 2,
            "IncidentType": 2,
            "Suspects": ["s-1"],
            "CashLoss": "abc",
            "MerchandiseLoss": "50",
            "OtherLosses": None,
            "TotalLoss": None,
            "Description": "Robbery at closing",
            "Notes": None,
        },
        {
            "id": 3,
            "Date": "2025-01-03",
            "Time": "08:00:00",
            "Office": 1,
            "IncidentType": 1,
            "Suspects": ["", " ", "s-3"],
            "CashLoss": "0",
            "MerchandiseLoss": "0",
            "OtherLosses": "25",
            "TotalLoss": "",
            "Description": "Damaged display",
        },
        {
            "id": 4,
            "Date": "2025-01-05",
            "Time": "13:05:00",
            "Office": {"id": 3, "Name": "Sur"},
            "IncidentType": 2,
            "Suspects": ["s-4", "s-5"],
            "CashLoss": 10,
            "MerchandiseLoss": "x",
            "OtherLosses": "5",
            "TotalLoss": "15",
            "Description": "Till shortage",
        },
        {
            "id": 5,
            "Date": "2024-12-31",
            "Time": "23:59:00",
            "Office": 2,
            "IncidentType": 1,
            "Suspects": [],
            "CashLoss": "1000",
            "MerchandiseLoss": "0",
            "OtherLosses": "0",
            "TotalLoss": "1000",
            "Description": "New year's eve theft",
        },
    ]


@pytest.fixture
def sample_office_records() -> list[dict[str, Any]]:
    return [
        {"id": 1, "Name": "Centro", "Code": "CTR", "Address": "Palma 100", "Geo": "-25.2637,-57.5759"},
        {"id": 2, "Name": "Norte", "Code": "NRT", "Address": "Mcal. Lopez 2000", "Geo": ""},
        {"id": 3, "Name": "Sur", "Code": "SUR", "Address": "Eusebio Ayala 900", "Geo": "-25.30, -57.60"},
    ]


@pytest.fixture
def sample_incident_type_records() -> list[dict[str, Any]]:
    return [{"id": 1, "name": "Hurto"}, {"id": 2, "name": "Robo"}]


@pytest.fixture
def sample_suspect_status_records() -> list[dict[str, Any]]:
    return [
        {"id": 1, "Name": "Detenido"},
        {"id": 2, "Name": "Profugo"},
        {"id": 3, "Name": "Preso"},
    ]


@pytest.fixture
def sample_suspect_records() -> list[dict[str, Any]]:
    # s-4 points at a status that does not exist; s-5 is not listed at all
    return [
        {"id": "s-1", "Alias": "El Rubio", "Status": 1},
        {"id": "s-2", "Alias": "Flaco", "Status": 2},
        {"id": "s-3", "Alias": "Tuerto", "Status": 3},
        {"id": "s-4", "Alias": "Sombra", "Status": 99},
    ]


@pytest.fixture
def sample_incidents(sample_incident_records) -> list[IncidentRecord]:
    return [IncidentRecord.model_validate(raw) for raw in sample_incident_records]


@pytest.fixture
def reference_tables(
    sample_office_records,
    sample_incident_type_records,
    sample_suspect_status_records,
    sample_suspect_records,
) -> ReferenceTables:
    return ReferenceTables.from_records(
        offices=tuple(OfficeRecord.model_validate(raw) for raw in sample_office_records),
        incident_types=tuple(IncidentTypeRecord.model_validate(raw) for raw in sample_incident_type_records),
        suspect_statuses=tuple(SuspectStatusRecord.model_validate(raw) for raw in sample_suspect_status_records),
        suspects=tuple(SuspectRecord.model_validate(raw) for raw in sample_suspect_records),
    )


@pytest.fixture
def record_service(
    sample_incident_records,
    sample_office_records,
    sample_incident_type_records,
    sample_suspect_status_records,
    sample_suspect_records,
) -> FakeRecordService:
    """In-memory record service serving the sample data."""
    return FakeRecordService(
        sample_incident_records,
        {
            "offices/": sample_office_records,
            "incidenttypes/": {"count": 2, "next": None, "previous": None, "results": sample_incident_type_records},
            "suspectstatus/": sample_suspect_status_records,
            "suspects/": {"count": 4, "next": None, "previous": None, "results": sample_suspect_records},
        },
    )


@pytest.fixture
def dashboard_service(test_settings, record_service) -> DashboardService:
    """DashboardService talking to the in-memory record service."""
    return DashboardService(test_settings, transport=httpx.MockTransport(record_service))


@pytest_asyncio.fixture
async def client(dashboard_service) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with the dashboard service overridden."""
    limiter.enabled = False
    app.dependency_overrides[get_dashboard_service] = lambda: dashboard_service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()
