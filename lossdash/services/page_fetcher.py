"""Fetch single pages of incident records."""

import logging
from typing import Any

from pydantic import ValidationError as RecordValidationError

from lossdash.config import get_settings
from lossdash.errors import TransportError, ValidationError
from lossdash.filters import FilterFingerprint
from lossdash.schemas.records import IncidentRecord, PageResult
from lossdash.services.record_client import RecordServiceClient

logger = logging.getLogger(__name__)
settings = get_settings()


class IncidentPageFetcher:
    """Issues one bounded request for a page of incidents. Holds no state."""

    def __init__(
        self,
        client: RecordServiceClient,
        date_field: str = settings.date_field,
        office_field: str = settings.office_field,
        ordering: str = settings.ordering,
    ):
        self.client = client
        self.date_field = date_field
        self.office_field = office_field
        self.ordering = ordering

    def _build_params(self, fingerprint: FilterFingerprint, page: int, page_size: int) -> dict[str, Any]:
        params: dict[str, Any] = {
            "page": page,
            "page_size": page_size,
            "ordering": self.ordering,
        }
        params.update(fingerprint.to_query_params(self.date_field, self.office_field))
        return params

    def _parse_page(self, payload: dict[str, Any], page: int) -> PageResult[IncidentRecord]:
        records: list[IncidentRecord] = []
        for raw in payload.get("results", []):
            try:
                records.append(IncidentRecord.model_validate(raw))
            except RecordValidationError as e:
                logger.warning(f"Skipping invalid incident on page {page}: {e.error_count()} errors")

        count = payload.get("count")
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise TransportError(f"Incidents page {page} has no usable count: {count!r}")

        return PageResult[IncidentRecord](
            count=count,
            next=payload.get("next"),
            previous=payload.get("previous"),
            results=records,
        )

    async def fetch(
        self,
        fingerprint: FilterFingerprint,
        page: int,
        page_size: int,
    ) -> PageResult[IncidentRecord]:
        """
        Fetch one page of incidents, most recent first.

        Args:
            fingerprint: Date range and office filter
            page: 1-based page number
            page_size: Records per page

        Returns:
            The page with the authoritative total count for the filter

        Raises:
            ValidationError: page < 1 or page_size <= 0
            TransportError: network or HTTP failure
        """
        if page < 1:
            raise ValidationError(f"page must be >= 1, got {page}")
        if page_size <= 0:
            raise ValidationError(f"page_size must be > 0, got {page_size}")

        logger.info(f"Fetching incidents page {page} (size={page_size}) for {fingerprint}")
        payload = await self.client.fetch_incidents(self._build_params(fingerprint, page, page_size))
        result = self._parse_page(payload, page)
        logger.info(f"Fetched {len(result.results)} incidents on page {page}, count={result.count}")

        return result
