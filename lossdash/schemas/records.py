"""Pydantic schemas for records returned by the record-management service."""

import math
from typing import Any, Generic, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")


def parse_amount(value: Any) -> float:
    """
    Parse a monetary wire value.

    Amounts usually arrive as strings. Anything absent, non-numeric or
    non-finite counts as zero; this never raises.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def id_key(value: Any) -> str:
    """Normalize an id (int, str or None) to the string used in lookup tables."""
    if value is None:
        return ""
    return str(value).strip()


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class IncidentRecord(_Record):
    """Incident as returned by the incidents collection."""

    id: int | str
    date: str = Field("", alias="Date")
    time: str = Field("", alias="Time")
    office: int | str | None = Field(None, alias="Office")
    incident_type: int | str | None = Field(None, alias="IncidentType")
    suspects: tuple[str, ...] = Field((), alias="Suspects")

    cash_loss: str | float | None = Field(None, alias="CashLoss")
    merchandise_loss: str | float | None = Field(None, alias="MerchandiseLoss")
    other_losses: str | float | None = Field(None, alias="OtherLosses")
    total_loss: str | float | None = Field(None, alias="TotalLoss")

    description: str = Field("", alias="Description")
    notes: str = Field("", alias="Notes")

    @field_validator("date", "time", "description", "notes", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("office", "incident_type", mode="before")
    @classmethod
    def _unwrap_reference(cls, value: Any) -> Any:
        # Some endpoints expand foreign keys into nested objects
        if isinstance(value, dict):
            return value.get("id")
        return value

    @field_validator("suspects", mode="before")
    @classmethod
    def _suspect_ids(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, (str, int)):
            value = [value]
        ids = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("id")
            ids.append("" if item is None else str(item))
        return tuple(ids)

    @field_validator("cash_loss", "merchandise_loss", "other_losses", "total_loss", mode="before")
    @classmethod
    def _raw_amount(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            return None
        return value

    @property
    def office_key(self) -> str:
        return id_key(self.office)

    @property
    def incident_type_key(self) -> str:
        return id_key(self.incident_type)

    @property
    def cash_amount(self) -> float:
        return parse_amount(self.cash_loss)

    @property
    def merchandise_amount(self) -> float:
        return parse_amount(self.merchandise_loss)

    @property
    def other_amount(self) -> float:
        return parse_amount(self.other_losses)

    @property
    def total_amount(self) -> float:
        """Explicit total when it parses, otherwise the sum of the parts."""
        explicit = self.total_loss
        if isinstance(explicit, str):
            explicit = explicit.strip() or None
        if explicit is not None:
            try:
                number = float(explicit)
            except ValueError:
                number = math.nan
            if math.isfinite(number):
                return number
        return self.cash_amount + self.merchandise_amount + self.other_amount


class OfficeRecord(_Record):
    """Branch office."""

    id: int | str
    name: str = Field("", alias="Name")
    code: str = Field("", alias="Code")
    address: str = Field("", alias="Address")
    city: int | str | None = Field(None, alias="City")
    province: str = Field("", alias="Province")
    geo: str = Field("", alias="Geo")
    closed: bool | None = Field(None, alias="Closed")

    @field_validator("name", "code", "address", "province", "geo", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def coordinates(self) -> tuple[float, float] | None:
        """Parse Geo ("lat,lng") into a coordinate pair."""
        parts = [part.strip() for part in self.geo.split(",")]
        if len(parts) != 2:
            return None
        try:
            lat, lng = float(parts[0]), float(parts[1])
        except ValueError:
            return None
        if not (math.isfinite(lat) and math.isfinite(lng)):
            return None
        if not (-90 <= lat <= 90 and -180 <= lng <= 180):
            return None
        return lat, lng


class IncidentTypeRecord(_Record):
    """Incident category (theft, robbery, ...)."""

    id: int | str
    name: str = Field("", validation_alias=AliasChoices("name", "Name"))


class SuspectStatusRecord(_Record):
    """Suspect status (detained, at large, imprisoned, ...)."""

    id: int | str
    name: str = Field("", alias="Name")


class SuspectRecord(_Record):
    """Suspect, reduced to the fields the dashboard needs."""

    id: int | str
    alias: str = Field("", alias="Alias")
    status: int | str | None = Field(None, alias="Status")

    @field_validator("alias", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("status", mode="before")
    @classmethod
    def _unwrap_status(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return value.get("id")
        return value


class PageResult(BaseModel, Generic[T]):
    """One page of a paginated collection; count is the total for the filter."""

    count: int = Field(ge=0)
    next: str | None = None
    previous: str | None = None
    results: list[T] = Field(default_factory=list)
