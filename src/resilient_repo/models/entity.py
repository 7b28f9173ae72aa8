from datetime import date, datetime
from typing import Any
import uuid

from pydantic import BaseModel, ConfigDict, Field


class Entity(BaseModel):
    """
    Base value type for everything a repository stores.

    Field names are pythonic; aliases carry the column names used by the store, so a
    row mapping like {"Id": ...} validates straight into the model. Columns without
    a matching field are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Unique identifier (primary key column "Id")
    id: uuid.UUID = Field(default_factory=uuid.uuid4, alias="Id")


class IntervalEntity(Entity):
    """
    Entity with an effective date interval.

    `effective_interval` is read-only from the repository's point of view: it is
    projected on read from the two bound columns and never written back.
    """

    effective_interval_start_date: date | None = Field(default=None, alias="EffectiveInterval_StartDate")
    effective_interval_end_date: date | None = Field(default=None, alias="EffectiveInterval_EndDate")
    effective_interval: str | None = Field(default=None, alias="EffectiveInterval")


# Column names of the interval projection
INTERVAL_START_COLUMN = "EffectiveInterval_StartDate"
INTERVAL_END_COLUMN = "EffectiveInterval_EndDate"
INTERVAL_COLUMN = "EffectiveInterval"


def format_interval_bound(value: Any) -> str:
    """
    Format one interval bound as an ISO date ("YYYY-MM-DD"), or "" when null.

    Stores without a native date type (SQLite) hand back strings, possibly with a
    time part; those are normalised through date.fromisoformat.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if not text:
        return ""
    return date.fromisoformat(text[:10]).isoformat()


def effective_interval(start: Any, end: Any) -> str:
    """Join both bounds with a comma, e.g. "2024-01-01," for an open-ended interval."""
    return f"{format_interval_bound(start)},{format_interval_bound(end)}"


def project_effective_interval(row: dict[str, Any]) -> dict[str, Any]:
    """
    Return a copy of `row` with the derived EffectiveInterval column added.

    Rows that carry neither bound column are returned unchanged.
    """
    if INTERVAL_START_COLUMN not in row and INTERVAL_END_COLUMN not in row:
        return row
    projected = dict(row)
    projected[INTERVAL_COLUMN] = effective_interval(
        row.get(INTERVAL_START_COLUMN), row.get(INTERVAL_END_COLUMN)
    )
    return projected
