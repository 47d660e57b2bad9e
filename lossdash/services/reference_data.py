"""Loading and caching of low-churn reference collections."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as RecordValidationError

from lossdash.config import get_settings
from lossdash.schemas.records import (
    IncidentTypeRecord,
    OfficeRecord,
    SuspectRecord,
    SuspectStatusRecord,
    id_key,
)
from lossdash.services.record_client import RecordServiceClient
from lossdash.services.request_cache import RequestCache

logger = logging.getLogger(__name__)
settings = get_settings()


class ReferenceKind(str, Enum):
    """Reference collections the dashboard joins against incidents."""

    OFFICES = "offices"
    INCIDENT_TYPES = "incident_types"
    SUSPECT_STATUSES = "suspect_statuses"
    SUSPECTS = "suspects"


_MODELS: dict[ReferenceKind, type[BaseModel]] = {
    ReferenceKind.OFFICES: OfficeRecord,
    ReferenceKind.INCIDENT_TYPES: IncidentTypeRecord,
    ReferenceKind.SUSPECT_STATUSES: SuspectStatusRecord,
    ReferenceKind.SUSPECTS: SuspectRecord,
}


def _index(records: tuple) -> dict[str, Any]:
    return {id_key(record.id): record for record in records}


@dataclass(frozen=True)
class ReferenceTables:
    """Typed lookup tables built once per reference-data load."""

    offices: dict[str, OfficeRecord] = field(default_factory=dict)
    incident_types: dict[str, IncidentTypeRecord] = field(default_factory=dict)
    suspect_statuses: dict[str, SuspectStatusRecord] = field(default_factory=dict)
    suspects: dict[str, SuspectRecord] = field(default_factory=dict)

    @classmethod
    def from_records(
        cls,
        offices: tuple[OfficeRecord, ...] = (),
        incident_types: tuple[IncidentTypeRecord, ...] = (),
        suspect_statuses: tuple[SuspectStatusRecord, ...] = (),
        suspects: tuple[SuspectRecord, ...] = (),
    ) -> "ReferenceTables":
        return cls(
            offices=_index(offices),
            incident_types=_index(incident_types),
            suspect_statuses=_index(suspect_statuses),
            suspects=_index(suspects),
        )

    def get_office_by_id(self, office_id: int | str | None) -> OfficeRecord | None:
        return self.offices.get(id_key(office_id))

    def get_incident_type_by_id(self, type_id: int | str | None) -> IncidentTypeRecord | None:
        return self.incident_types.get(id_key(type_id))

    def get_suspect_status_by_id(self, status_id: int | str | None) -> SuspectStatusRecord | None:
        return self.suspect_statuses.get(id_key(status_id))

    def get_suspect_by_id(self, suspect_id: int | str | None) -> SuspectRecord | None:
        return self.suspects.get(id_key(suspect_id))


class ReferenceDataLoader:
    """
    Loads offices, incident types, suspect statuses and suspects.

    Each kind is cached for a long time-to-live under a key scoped to the
    caller, so concurrent loads of the same kind by one caller coalesce into
    one request while callers with different credentials never share rows.
    """

    def __init__(
        self,
        client: RecordServiceClient,
        cache: RequestCache,
        ttl: float = settings.reference_ttl_seconds,
        suspects_page_size: int = settings.suspects_page_size,
        scope: str = "",
    ):
        self.client = client
        self.cache = cache
        self.ttl = ttl
        self.suspects_page_size = suspects_page_size
        self.scope = scope

    def cache_key(self, kind: ReferenceKind) -> tuple[str, str, str]:
        return ("reference", self.scope, kind.value)

    def _request(self, kind: ReferenceKind) -> tuple[str, dict[str, Any] | None]:
        if kind is ReferenceKind.OFFICES:
            return settings.offices_path, None
        if kind is ReferenceKind.INCIDENT_TYPES:
            return settings.incident_types_path, None
        if kind is ReferenceKind.SUSPECT_STATUSES:
            return settings.suspect_statuses_path, None
        return settings.suspects_path, {"page_size": self.suspects_page_size}

    async def _fetch(self, kind: ReferenceKind) -> tuple:
        path, params = self._request(kind)
        rows = await self.client.fetch_collection(path, params)

        model = _MODELS[kind]
        records = []
        skipped = 0
        for row in rows:
            try:
                records.append(model.model_validate(row))
            except RecordValidationError:
                skipped += 1

        if skipped:
            logger.warning(f"Skipped {skipped} invalid {kind.value} records")
        logger.info(f"Loaded {len(records)} {kind.value} records")
        return tuple(records)

    async def load(self, kind: ReferenceKind | str) -> tuple:
        """
        Return the records of one reference collection.

        Served from cache while fresh; the first caller after expiry fetches
        and everyone arriving meanwhile waits on that same fetch.
        """
        kind = ReferenceKind(kind)
        return await self.cache.get_or_fetch(
            self.cache_key(kind),
            lambda: self._fetch(kind),
            self.ttl,
        )

    async def load_tables(self) -> ReferenceTables:
        """Load every reference kind concurrently and index them by id."""
        offices, incident_types, statuses, suspects = await asyncio.gather(
            self.load(ReferenceKind.OFFICES),
            self.load(ReferenceKind.INCIDENT_TYPES),
            self.load(ReferenceKind.SUSPECT_STATUSES),
            self.load(ReferenceKind.SUSPECTS),
        )
        return ReferenceTables.from_records(offices, incident_types, statuses, suspects)
