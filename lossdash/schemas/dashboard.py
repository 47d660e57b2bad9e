"""Pydantic schemas for aggregated dashboard views."""

from pydantic import BaseModel


class DayCount(BaseModel):
    """Incidents on one calendar day."""

    date: str
    count: int


class OfficeRankingEntry(BaseModel):
    """Incident and loss totals for one office."""

    office_id: str
    name: str = ""
    code: str = ""
    address: str = ""
    incident_count: int = 0
    total_loss: float = 0.0
    avg_loss_per_incident: float = 0.0


class SuspectStats(BaseModel):
    """Distinct suspects referenced by incidents, split by status."""

    total: int
    identified: int
    unidentified: int


class EconomicBreakdown(BaseModel):
    """Summed losses by category."""

    cash: float = 0.0
    merchandise: float = 0.0
    other: float = 0.0
    total: float = 0.0


class HourlyCell(BaseModel):
    """Heatmap cell; weekday 0 is Monday."""

    weekday: int
    hour: int
    count: int


class TypeCount(BaseModel):
    incident_type_id: str
    name: str = ""
    count: int


class RepeatSuspect(BaseModel):
    suspect_id: str
    alias: str = ""
    status: str | None = None
    incident_count: int


class OfficeMarker(BaseModel):
    """Map marker for an office with known coordinates."""

    office_id: str
    name: str = ""
    latitude: float
    longitude: float
    incident_count: int


class IncidentRow(BaseModel):
    """Incident joined with its office and type names, for tables."""

    id: str
    date: str
    time: str
    office_id: str
    office_name: str | None = None
    incident_type_id: str
    incident_type_name: str | None = None
    suspect_count: int
    total_loss: float
    description: str = ""


class IncidentTotals(BaseModel):
    """
    The three different "totals" a dashboard can mean.

    authoritative_count is the remote total for the loaded filter,
    loaded_count what is actually in memory, filtered_count the subset
    matching the requested view.
    """

    authoritative_count: int | None
    loaded_count: int
    filtered_count: int


class LoadStatusOut(BaseModel):
    """Progress and completeness of the incident load."""

    from_date: str
    to_date: str
    office_id: str
    phase: str
    availability: str
    pages_loaded: int
    total_pages: int
    failed_pages: list[int]
    is_complete: bool
    is_capped: bool
    loading_progress: float
    authoritative_count: int | None
    loaded_count: int
    error: str | None = None


class DashboardSummary(BaseModel):
    """Everything the dashboard charts and KPIs need for one filter."""

    status: LoadStatusOut
    totals: IncidentTotals
    trend: list[DayCount] | None = None
    office_ranking: list[OfficeRankingEntry]
    suspects: SuspectStats
    economics: EconomicBreakdown
    hourly: list[HourlyCell]
    incident_types: list[TypeCount]
    repeat_suspects: list[RepeatSuspect]
    affected_offices: int
    office_markers: list[OfficeMarker]


class IncidentRowsResponse(BaseModel):
    """Joined incident rows for the current filter."""

    status: LoadStatusOut
    incidents: list[IncidentRow]
    total: int
