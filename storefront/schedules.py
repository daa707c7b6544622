"""
Delivery schedule variants.

A schedule is either a recurring weekly pattern (ISO weekday numbers) or an
explicit list of calendar dates. Both answer the same question: what is the
first delivery day on or after a given date?
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, FrozenSet, Iterable, Optional, Tuple, Union

from storefront.errors import ScheduleParseError
from storefront.models import DELIVERY_MODE_SPECIFIC_DATES, DELIVERY_MODE_WEEKLY

# Weekly patterns are scanned this many days forward, start day included
LOOKAHEAD_DAYS = 14


def _applies(warehouse_id: Optional[int], candidate_warehouses: FrozenSet[int]) -> bool:
    # Empty candidate set means "product is on order, any schedule may deliver it"
    if not candidate_warehouses:
        return True
    return warehouse_id in candidate_warehouses


@dataclass(frozen=True)
class WeeklySchedule:
    weekdays: FrozenSet[int]
    warehouse_id: Optional[int] = None
    is_express: bool = False

    def applies_to(self, candidate_warehouses: FrozenSet[int]) -> bool:
        return _applies(self.warehouse_id, candidate_warehouses)

    def next_occurrence_on_or_after(self, start: date) -> Optional[date]:
        for offset in range(LOOKAHEAD_DAYS):
            day = start + timedelta(days=offset)
            if day.isoweekday() in self.weekdays:
                return day
        return None


@dataclass(frozen=True)
class DateListSchedule:
    dates: Tuple[date, ...]
    warehouse_id: Optional[int] = None
    is_express: bool = False

    def applies_to(self, candidate_warehouses: FrozenSet[int]) -> bool:
        return _applies(self.warehouse_id, candidate_warehouses)

    def next_occurrence_on_or_after(self, start: date) -> Optional[date]:
        upcoming = [d for d in self.dates if d >= start]
        return min(upcoming) if upcoming else None


Schedule = Union[WeeklySchedule, DateListSchedule]


def _decode_list(raw: Any, column: str) -> list:
    """JSON columns come back decoded from most drivers, as text from some."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ScheduleParseError(f"{column} is not valid JSON: {raw!r}") from exc
    if not isinstance(raw, list):
        raise ScheduleParseError(f"{column} must be a list, got {type(raw).__name__}")
    return raw


def parse_weekdays(raw: Any) -> FrozenSet[int]:
    days = set()
    for value in _decode_list(raw, "delivery_days"):
        try:
            day = int(value)
        except (TypeError, ValueError) as exc:
            raise ScheduleParseError(f"weekday {value!r} is not a number") from exc
        if not 1 <= day <= 7:
            raise ScheduleParseError(f"weekday {day} is outside 1..7")
        days.add(day)
    return frozenset(days)


def parse_dates(raw: Any) -> Tuple[date, ...]:
    dates = []
    for value in _decode_list(raw, "specific_dates"):
        if isinstance(value, date):
            dates.append(value)
            continue
        try:
            dates.append(date.fromisoformat(str(value)))
        except ValueError as exc:
            raise ScheduleParseError(f"delivery date {value!r} is not YYYY-MM-DD") from exc
    return tuple(sorted(dates))


def parse_schedule(row: Any) -> Schedule:
    """Build a schedule variant from a delivery_schedules row."""
    mode = row.delivery_mode or DELIVERY_MODE_WEEKLY
    if mode == DELIVERY_MODE_SPECIFIC_DATES:
        return DateListSchedule(
            dates=parse_dates(row.specific_dates),
            warehouse_id=row.warehouse_id,
            is_express=bool(row.is_express),
        )
    if mode == DELIVERY_MODE_WEEKLY:
        return WeeklySchedule(
            weekdays=parse_weekdays(row.delivery_days),
            warehouse_id=row.warehouse_id,
            is_express=bool(row.is_express),
        )
    raise ScheduleParseError(f"unknown delivery_mode {mode!r}")


def earliest_delivery(
    schedules: Iterable[Schedule],
    candidate_warehouses: Iterable[int],
    start: date,
) -> Optional[date]:
    """Minimum next occurrence over every schedule that serves the candidate warehouses."""
    candidates = frozenset(candidate_warehouses)
    best: Optional[date] = None
    for schedule in schedules:
        if not schedule.applies_to(candidates):
            continue
        found = schedule.next_occurrence_on_or_after(start)
        if found is not None and (best is None or found < best):
            best = found
    return best
