"""Search options shared by the tool surface and the post-processor."""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from blockgraph.config import DEFAULT_LIMIT, MAX_LIMIT


class SortBy(StrEnum):
    RELEVANCE = "relevance"
    RECENT = "recent"
    PAGE_TITLE = "page_title"
    HIERARCHY_DEPTH = "hierarchy_depth"


class DateFilterMode(StrEnum):
    CREATED = "created"
    MODIFIED = "modified"
    EITHER = "either"


class Purpose(StrEnum):
    FINAL = "final"
    INTERMEDIATE = "intermediate"
    REPLACEMENT = "replacement"
    COMPLETION = "completion"


def parse_date(value: str | int | float | datetime | None) -> datetime | None:
    """Parse an ISO date/datetime string or epoch milliseconds into UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        msg = f"Invalid date '{value}'. Expected ISO format (YYYY-MM-DD)."
        raise ValueError(msg) from None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass(frozen=True)
class DateRange:
    """Inclusive date bounds; either side may be open."""

    start: datetime | None = None
    end: datetime | None = None
    filter_mode: DateFilterMode = DateFilterMode.MODIFIED

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DateRange":
        end = parse_date(data.get("end"))
        # A bare end date covers the whole day.
        if end is not None and isinstance(data.get("end"), str) and len(data["end"]) == 10:
            end = end.replace(hour=23, minute=59, second=59, microsecond=999999)
        return cls(
            start=parse_date(data.get("start")),
            end=end,
            filter_mode=DateFilterMode(data.get("filterMode", data.get("filter_mode", "modified"))),
        )


@dataclass(frozen=True)
class SearchOptions:
    """Result shaping options for one hierarchy search."""

    limit: int = DEFAULT_LIMIT
    sort_by: SortBy = SortBy.RELEVANCE
    max_depth: int | None = None
    exclude_block_uid: str | None = None
    date_range: DateRange | None = None
    include_daily: bool = True
    include_children: bool = False
    child_depth: int = 1
    include_parents: bool = False
    parent_depth: int = 1
    limit_to_block_uids: tuple[str, ...] = ()
    limit_to_page_uids: tuple[str, ...] = ()
    secure_mode: bool = False
    purpose: Purpose = Purpose.FINAL

    @property
    def effective_limit(self) -> int:
        return max(1, min(self.limit, MAX_LIMIT))
