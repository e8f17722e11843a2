"""Five-field cron expressions.

Evaluation is pure: ``matches`` and ``next_after`` only look at the datetime
they are given, so the supervisor can drive them from any clock.

Supported syntax per field: ``*``, ``*/n``, ``a``, ``a-b``, ``a-b/n`` and
comma separated lists of those. Day-of-week uses 0-6 with 0 = Sunday (7 is
accepted as Sunday too). When both day-of-month and day-of-week are
restricted, a day matches if either does (classic cron semantics).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import FrozenSet, Optional

from debt_scheduler.utils.exceptions import ScheduleParseException


_FIELDS: tuple[tuple[str, int, int], ...] = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day_of_month", 1, 31),
    ("month", 1, 12),
    ("day_of_week", 0, 7),
)

# Upper bound for next_after(); a valid expression always fires within it.
_SEARCH_HORIZON = timedelta(days=366 * 5)


def _parse_int(raw: str, *, field: str, expr: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ScheduleParseException(
            f"Invalid {field} value {raw!r} in cron expression {expr!r}",
            details={"expression": expr, "field": field},
        ) from None


def _parse_field(raw: str, *, field: str, low: int, high: int, expr: str) -> FrozenSet[int]:
    values: set[int] = set()
    for part in raw.split(","):
        if not part:
            raise ScheduleParseException(
                f"Empty {field} list item in cron expression {expr!r}",
                details={"expression": expr, "field": field},
            )

        step = 1
        if "/" in part:
            part, step_raw = part.split("/", 1)
            step = _parse_int(step_raw, field=field, expr=expr)
            if step <= 0:
                raise ScheduleParseException(
                    f"Step must be positive for {field} in cron expression {expr!r}",
                    details={"expression": expr, "field": field},
                )

        if part == "*":
            start, end = low, high
        elif "-" in part:
            start_raw, end_raw = part.split("-", 1)
            start = _parse_int(start_raw, field=field, expr=expr)
            end = _parse_int(end_raw, field=field, expr=expr)
        else:
            start = _parse_int(part, field=field, expr=expr)
            # "5/15" means "from 5 every 15"
            end = high if step != 1 else start

        if start < low or end > high or start > end:
            raise ScheduleParseException(
                f"{field} range {start}-{end} outside {low}-{high} in cron expression {expr!r}",
                details={"expression": expr, "field": field},
            )
        values.update(range(start, end + 1, step))
    return frozenset(values)


@dataclass(frozen=True)
class CronSchedule:
    expression: str
    minutes: FrozenSet[int]
    hours: FrozenSet[int]
    days_of_month: FrozenSet[int]
    months: FrozenSet[int]
    days_of_week: FrozenSet[int]
    day_of_month_restricted: bool
    day_of_week_restricted: bool

    @classmethod
    def parse(cls, expression: str) -> "CronSchedule":
        expr = (expression or "").strip()
        parts = expr.split()
        if len(parts) != len(_FIELDS):
            raise ScheduleParseException(
                f"Cron expression {expr!r} must have {len(_FIELDS)} fields, got {len(parts)}",
                details={"expression": expr},
            )

        parsed = [
            _parse_field(raw, field=name, low=low, high=high, expr=expr)
            for raw, (name, low, high) in zip(parts, _FIELDS)
        ]
        # 7 and 0 both mean Sunday.
        dow = frozenset(0 if d == 7 else d for d in parsed[4])

        return cls(
            expression=expr,
            minutes=parsed[0],
            hours=parsed[1],
            days_of_month=parsed[2],
            months=parsed[3],
            days_of_week=dow,
            day_of_month_restricted=parts[2] != "*",
            day_of_week_restricted=parts[4] != "*",
        )

    def _day_matches(self, dt: datetime) -> bool:
        dom_ok = dt.day in self.days_of_month
        # datetime.weekday(): Monday == 0; cron: Sunday == 0
        dow_ok = (dt.weekday() + 1) % 7 in self.days_of_week
        if self.day_of_month_restricted and self.day_of_week_restricted:
            return dom_ok or dow_ok
        return dom_ok and dow_ok

    def matches(self, dt: datetime) -> bool:
        return (
            dt.minute in self.minutes
            and dt.hour in self.hours
            and dt.month in self.months
            and self._day_matches(dt)
        )

    def next_after(self, dt: datetime) -> Optional[datetime]:
        """First matching minute strictly after ``dt`` (None if it never fires)."""
        candidate = dt.replace(second=0, microsecond=0) + timedelta(minutes=1)
        horizon = dt + _SEARCH_HORIZON

        while candidate <= horizon:
            if candidate.month not in self.months:
                year = candidate.year + (candidate.month // 12)
                month = candidate.month % 12 + 1
                candidate = candidate.replace(year=year, month=month, day=1, hour=0, minute=0)
                continue
            if not self._day_matches(candidate):
                candidate = (candidate + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if candidate.hour not in self.hours:
                candidate = (candidate + timedelta(hours=1)).replace(minute=0)
                continue
            if candidate.minute not in self.minutes:
                candidate += timedelta(minutes=1)
                continue
            return candidate
        return None

    def __str__(self) -> str:
        return self.expression


def parse_optional(expression: str | None) -> Optional[CronSchedule]:
    """Parse a schedule setting; an empty value disables the job's trigger."""
    if not (expression or "").strip():
        return None
    return CronSchedule.parse(expression or "")
