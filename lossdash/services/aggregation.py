"""
Derived dashboard statistics over a loaded incident set.

Every function here is pure: it reads the incidents and reference tables it
is given and returns new values, so calling it twice with the same inputs
gives the same result. Date bounds are ISO days, inclusive, compared with
the first ten characters of each incident date. An empty bound is unbounded
and an empty office_id means all offices.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import date

from lossdash.filters import iter_days
from lossdash.schemas.dashboard import (
    DayCount,
    EconomicBreakdown,
    HourlyCell,
    IncidentRow,
    IncidentTotals,
    OfficeMarker,
    OfficeRankingEntry,
    RepeatSuspect,
    SuspectStats,
    TypeCount,
)
from lossdash.schemas.records import IncidentRecord, OfficeRecord, id_key
from lossdash.services.progressive_loader import LoadState
from lossdash.services.reference_data import ReferenceTables


def _id_sort_key(value: str) -> tuple:
    # Numeric ids sort numerically, before any non-numeric ids
    return (0, int(value), "") if value.isdecimal() else (1, 0, value)


def _suspect_ids(incident: IncidentRecord) -> Iterable[str]:
    for suspect_id in incident.suspects:
        suspect_id = suspect_id.strip()
        if suspect_id:
            yield suspect_id


def filtered_incidents(
    incidents: Sequence[IncidentRecord],
    from_date: str = "",
    to_date: str = "",
    office_id: str = "",
) -> list[IncidentRecord]:
    """Incidents dated within [from_date, to_date] and, if given, at office_id."""
    office_id = id_key(office_id)
    result = []
    for incident in incidents:
        day = incident.date[:10]
        if from_date and not (day and day >= from_date):
            continue
        if to_date and not (day and day <= to_date):
            continue
        if office_id and incident.office_key != office_id:
            continue
        result.append(incident)
    return result


def total_incidents(
    incidents: Sequence[IncidentRecord],
    from_date: str = "",
    to_date: str = "",
    office_id: str = "",
) -> int:
    """Number of loaded incidents matching the filter (bounded by what was loaded)."""
    return len(filtered_incidents(incidents, from_date, to_date, office_id))


def incident_totals(
    state: LoadState,
    from_date: str = "",
    to_date: str = "",
    office_id: str = "",
) -> IncidentTotals:
    """Report remote, loaded and filtered counts side by side."""
    return IncidentTotals(
        authoritative_count=state.authoritative_count,
        loaded_count=state.loaded_count,
        filtered_count=total_incidents(state.incidents, from_date, to_date, office_id),
    )


def trend_by_day(
    incidents: Sequence[IncidentRecord],
    from_date: str,
    to_date: str,
    office_id: str = "",
) -> list[DayCount]:
    """
    One zero-filled entry per calendar day in the inclusive range.

    Raises:
        ValidationError: a bound is missing or malformed, or to_date < from_date
    """
    days = iter_days(from_date, to_date)
    counts = Counter(incident.date[:10] for incident in filtered_incidents(incidents, from_date, to_date, office_id))
    return [DayCount(date=day, count=counts.get(day, 0)) for day in days]


def office_ranking(
    incidents: Sequence[IncidentRecord],
    offices: Iterable[OfficeRecord],
    from_date: str = "",
    to_date: str = "",
    office_id: str = "",
) -> list[OfficeRankingEntry]:
    """
    Incident count and losses per office, busiest first.

    Every reference office appears, with zeros if it had no incidents.
    Incidents at offices missing from the reference list are ignored.
    Ties are broken by office id ascending.
    """
    counts: Counter[str] = Counter()
    losses: dict[str, float] = {}
    for incident in filtered_incidents(incidents, from_date, to_date, office_id):
        key = incident.office_key
        counts[key] += 1
        losses[key] = losses.get(key, 0.0) + incident.total_amount

    ranking = []
    for office in offices:
        key = id_key(office.id)
        count = counts.get(key, 0)
        total_loss = losses.get(key, 0.0)
        ranking.append(
            OfficeRankingEntry(
                office_id=key,
                name=office.name,
                code=office.code,
                address=office.address,
                incident_count=count,
                total_loss=total_loss,
                avg_loss_per_incident=total_loss / count if count else 0.0,
            )
        )

    ranking.sort(key=lambda entry: (-entry.incident_count, _id_sort_key(entry.office_id)))
    return ranking


def suspect_stats(
    incidents: Sequence[IncidentRecord],
    tables: ReferenceTables,
    identified_status_ids: Iterable[int | str],
    from_date: str = "",
    to_date: str = "",
    office_id: str = "",
) -> SuspectStats:
    """
    Distinct suspects across the filtered incidents.

    A suspect is identified when its record exists, its status resolves to a
    known status record, and that status is one of identified_status_ids.
    Anything else, including suspects missing from the reference data, is
    unidentified.
    """
    identified_keys = {id_key(status_id) for status_id in identified_status_ids}

    distinct: set[str] = set()
    for incident in filtered_incidents(incidents, from_date, to_date, office_id):
        distinct.update(_suspect_ids(incident))

    identified = 0
    for suspect_id in distinct:
        suspect = tables.get_suspect_by_id(suspect_id)
        if suspect is None:
            continue
        status = tables.get_suspect_status_by_id(suspect.status)
        if status is not None and id_key(status.id) in identified_keys:
            identified += 1

    return SuspectStats(
        total=len(distinct),
        identified=identified,
        unidentified=len(distinct) - identified,
    )


def economic_breakdown(
    incidents: Sequence[IncidentRecord],
    from_date: str = "",
    to_date: str = "",
    office_id: str = "",
) -> EconomicBreakdown:
    """Sum cash, merchandise and other losses; unparsable amounts count as zero."""
    cash = merchandise = other = 0.0
    for incident in filtered_incidents(incidents, from_date, to_date, office_id):
        cash += incident.cash_amount
        merchandise += incident.merchandise_amount
        other += incident.other_amount
    return EconomicBreakdown(
        cash=cash,
        merchandise=merchandise,
        other=other,
        total=cash + merchandise + other,
    )


def _hour_of(time_value: str) -> int:
    try:
        hour = int(time_value.split(":", 1)[0])
    except ValueError:
        return 0
    return hour if 0 <= hour <= 23 else 0


def hourly_distribution(
    incidents: Sequence[IncidentRecord],
    from_date: str = "",
    to_date: str = "",
    office_id: str = "",
) -> list[HourlyCell]:
    """Weekday x hour heatmap (7 * 24 cells, zero-filled)."""
    counts: Counter[tuple[int, int]] = Counter()
    for incident in filtered_incidents(incidents, from_date, to_date, office_id):
        try:
            day = date.fromisoformat(incident.date[:10])
        except ValueError:
            continue
        counts[(day.weekday(), _hour_of(incident.time))] += 1

    return [
        HourlyCell(weekday=weekday, hour=hour, count=counts.get((weekday, hour), 0))
        for weekday in range(7)
        for hour in range(24)
    ]


def incident_type_distribution(
    incidents: Sequence[IncidentRecord],
    tables: ReferenceTables,
    from_date: str = "",
    to_date: str = "",
    office_id: str = "",
) -> list[TypeCount]:
    """Incidents per type, most frequent first."""
    counts = Counter(
        incident.incident_type_key for incident in filtered_incidents(incidents, from_date, to_date, office_id)
    )
    distribution = []
    for type_key, count in counts.items():
        incident_type = tables.get_incident_type_by_id(type_key)
        distribution.append(
            TypeCount(
                incident_type_id=type_key,
                name=incident_type.name if incident_type else "",
                count=count,
            )
        )
    distribution.sort(key=lambda entry: (-entry.count, _id_sort_key(entry.incident_type_id)))
    return distribution


def top_repeat_suspects(
    incidents: Sequence[IncidentRecord],
    tables: ReferenceTables,
    limit: int = 5,
    from_date: str = "",
    to_date: str = "",
    office_id: str = "",
) -> list[RepeatSuspect]:
    """Suspects involved in the most incidents (each incident counts once per suspect)."""
    counts: Counter[str] = Counter()
    for incident in filtered_incidents(incidents, from_date, to_date, office_id):
        counts.update(set(_suspect_ids(incident)))

    ordered = sorted(counts.items(), key=lambda item: (-item[1], _id_sort_key(item[0])))
    result = []
    for suspect_id, count in ordered[: max(limit, 0)]:
        suspect = tables.get_suspect_by_id(suspect_id)
        status = tables.get_suspect_status_by_id(suspect.status) if suspect else None
        result.append(
            RepeatSuspect(
                suspect_id=suspect_id,
                alias=suspect.alias if suspect else "",
                status=status.name if status else None,
                incident_count=count,
            )
        )
    return result


def affected_offices(
    incidents: Sequence[IncidentRecord],
    from_date: str = "",
    to_date: str = "",
    office_id: str = "",
) -> int:
    """Number of distinct offices with at least one incident."""
    return len(
        {
            incident.office_key
            for incident in filtered_incidents(incidents, from_date, to_date, office_id)
            if incident.office_key
        }
    )


def office_markers(
    incidents: Sequence[IncidentRecord],
    offices: Iterable[OfficeRecord],
    from_date: str = "",
    to_date: str = "",
    office_id: str = "",
) -> list[OfficeMarker]:
    """Offices with parsable coordinates and their incident counts."""
    counts = Counter(
        incident.office_key for incident in filtered_incidents(incidents, from_date, to_date, office_id)
    )
    markers = []
    for office in offices:
        coordinates = office.coordinates
        if coordinates is None:
            continue
        key = id_key(office.id)
        markers.append(
            OfficeMarker(
                office_id=key,
                name=office.name,
                latitude=coordinates[0],
                longitude=coordinates[1],
                incident_count=counts.get(key, 0),
            )
        )
    return markers


def incident_rows(
    incidents: Sequence[IncidentRecord],
    tables: ReferenceTables,
    from_date: str = "",
    to_date: str = "",
    office_id: str = "",
) -> list[IncidentRow]:
    """Filtered incidents with office and type names joined in."""
    rows = []
    for incident in filtered_incidents(incidents, from_date, to_date, office_id):
        office = tables.get_office_by_id(incident.office)
        incident_type = tables.get_incident_type_by_id(incident.incident_type)
        rows.append(
            IncidentRow(
                id=id_key(incident.id),
                date=incident.date,
                time=incident.time,
                office_id=incident.office_key,
                office_name=office.name if office else None,
                incident_type_id=incident.incident_type_key,
                incident_type_name=incident_type.name if incident_type else None,
                suspect_count=len(set(_suspect_ids(incident))),
                total_loss=incident.total_amount,
                description=incident.description,
            )
        )
    return rows
