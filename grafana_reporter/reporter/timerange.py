from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import parse_qs

from .config import DEFAULT_TIME_SPAN
from .errors import TimeRangeError


@dataclass(frozen=True)
class TimeRange:
    """Time range as understood by the render endpoint (``now-3h``, epoch ms, ...)."""

    from_: str = "now-3h"
    to: str = "now"

    @classmethod
    def parse(cls, span: str = DEFAULT_TIME_SPAN) -> "TimeRange":
        """Build a range from a query string such as ``from=now-3h&to=now``."""
        params = parse_qs(span.strip().lstrip("?"), keep_blank_values=True)
        unknown = set(params) - {"from", "to"}
        if unknown:
            raise TimeRangeError(f"unexpected time span keys: {', '.join(sorted(unknown))}")
        start = (params.get("from") or [""])[-1].strip()
        end = (params.get("to") or [""])[-1].strip()
        if not start:
            raise TimeRangeError(f"time span {span!r} has no 'from' value")
        return cls(from_=start, to=end or "now")

    @property
    def from_formatted(self) -> str:
        return format_bound(self.from_)

    @property
    def to_formatted(self) -> str:
        return format_bound(self.to)


def format_bound(value: str) -> str:
    """Epoch milliseconds become a UTC timestamp; anything else is kept verbatim."""
    if value.isdigit():
        stamp = datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
        return stamp.strftime("%Y-%m-%d %H:%M:%S UTC")
    return value
