"""Filter fingerprint identifying one logical dashboard query."""

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from lossdash.errors import ValidationError

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_iso_date(value: str, field_name: str = "date") -> date:
    """Parse a strict YYYY-MM-DD string, raising ValidationError otherwise."""
    if not _ISO_DATE.match(value):
        raise ValidationError(f"{field_name} must be YYYY-MM-DD, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"{field_name} is not a calendar date: {value!r}") from e


def iter_days(from_date: str, to_date: str) -> list[str]:
    """Every ISO day in the inclusive range."""
    start = parse_iso_date(from_date, "from_date")
    end = parse_iso_date(to_date, "to_date")
    if end < start:
        raise ValidationError(f"to_date {to_date} is before from_date {from_date}")
    return [(start + timedelta(days=offset)).isoformat() for offset in range((end - start).days + 1)]


@dataclass(frozen=True)
class FilterFingerprint:
    """
    The (from_date, to_date, office_id) tuple that identifies a query.

    Empty strings mean "unbounded" for dates and "all offices" for office_id.
    Instances are hashable and compare structurally, so they are used directly
    as cache keys.
    """

    from_date: str = ""
    to_date: str = ""
    office_id: str = ""

    def __post_init__(self) -> None:
        # Normalize before validating; frozen dataclasses need object.__setattr__
        for name in ("from_date", "to_date", "office_id"):
            value = getattr(self, name)
            object.__setattr__(self, name, "" if value is None else str(value).strip())

        start = parse_iso_date(self.from_date, "from_date") if self.from_date else None
        end = parse_iso_date(self.to_date, "to_date") if self.to_date else None
        if start and end and end < start:
            raise ValidationError(f"to_date {self.to_date} is before from_date {self.from_date}")

    def to_query_params(self, date_field: str = "Date", office_field: str = "Office") -> dict[str, Any]:
        """Query parameters understood by the incidents collection."""
        params: dict[str, Any] = {}
        if self.from_date:
            params[f"{date_field}_after"] = self.from_date
        if self.to_date:
            params[f"{date_field}_before"] = self.to_date
        if self.office_id:
            params[office_field] = self.office_id
        return params

    def __str__(self) -> str:
        return f"{self.from_date or '*'}..{self.to_date or '*'}@{self.office_id or 'all'}"
