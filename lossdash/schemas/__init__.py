"""Pydantic schemas for wire records and dashboard responses."""

from lossdash.schemas.dashboard import DashboardSummary, IncidentRowsResponse, LoadStatusOut
from lossdash.schemas.records import (
    IncidentRecord,
    IncidentTypeRecord,
    OfficeRecord,
    PageResult,
    SuspectRecord,
    SuspectStatusRecord,
)

__all__ = [
    "DashboardSummary",
    "IncidentRecord",
    "IncidentRowsResponse",
    "IncidentTypeRecord",
    "LoadStatusOut",
    "OfficeRecord",
    "PageResult",
    "SuspectRecord",
    "SuspectStatusRecord",
]
