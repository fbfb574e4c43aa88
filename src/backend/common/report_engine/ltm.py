"""Last-twelve-months (LTM) windows over monthly movements.

A trailing window of N months ending at ``(year, period)`` is expressed as
one ``LTMRange`` per calendar year it touches, oldest first::

    calculate_ltm_range(2024, 6, 12)
    # [LTMRange(2023, 7, 12), LTMRange(2024, 1, 6)]

Invalid parameters produce an empty range list, which downstream code reads
as "no data available".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from .dataset import PERIOD_COLUMN, YEAR_COLUMN
from .logging_setup import get_logger

logger = get_logger(__name__)

MONTHS_PER_YEAR = 12


@dataclass(frozen=True)
class LTMRange:
    year: int
    start_period: int
    end_period: int

    @property
    def months(self) -> int:
        return self.end_period - self.start_period + 1


@dataclass(frozen=True)
class LatestPeriod:
    year: int
    period: int


@dataclass(frozen=True)
class DataAvailability:
    complete: bool
    actual_months: int
    expected_months: int
    message: str


@dataclass(frozen=True)
class LTMInfo:
    ranges: tuple[LTMRange, ...]
    label: str
    filtered_data: pd.DataFrame
    has_complete_data: bool
    latest: LatestPeriod
    availability: DataAvailability

    @property
    def latest_year(self) -> int:
        return self.latest.year

    @property
    def latest_period(self) -> int:
        return self.latest.period


def get_latest_available_period(movements: Optional[pd.DataFrame]) -> Optional[LatestPeriod]:
    """Maximum year in the data, then the maximum period within that year."""
    if movements is None or movements.empty:
        return None

    years = pd.to_numeric(movements[YEAR_COLUMN], errors="coerce")
    if years.dropna().empty:
        return None
    max_year = int(years.max())
    if max_year <= 0:
        return None

    periods = pd.to_numeric(movements.loc[years == max_year, PERIOD_COLUMN], errors="coerce").dropna()
    max_period = int(periods.max()) if not periods.empty else 0
    return LatestPeriod(year=max_year, period=max_period)


def is_valid_ltm_params(year: int, period: int, months_back: int) -> bool:
    return year > 0 and 1 <= period <= MONTHS_PER_YEAR and months_back > 0


def calculate_ltm_range(year: int, period: int, months_back: int = 12) -> List[LTMRange]:
    if not is_valid_ltm_params(year, period, months_back):
        return []

    ranges: List[LTMRange] = []
    current_year, current_period, remaining = year, period, months_back
    while remaining > 0:
        start = max(1, current_period - remaining + 1)
        ranges.insert(0, LTMRange(year=current_year, start_period=start, end_period=current_period))
        remaining -= current_period - start + 1
        current_year -= 1
        current_period = MONTHS_PER_YEAR
    return ranges


def get_total_months(ranges: Iterable[LTMRange]) -> int:
    return sum(r.months for r in ranges)


def get_required_years(ranges: Iterable[LTMRange]) -> List[int]:
    return sorted({r.year for r in ranges})


def get_missing_years(required_years: Iterable[int], available_years: Iterable[int]) -> List[int]:
    available = set(available_years)
    return [year for year in required_years if year not in available]


def is_valid_range(ltm_range: LTMRange) -> bool:
    return (
        ltm_range.year > 0
        and 1 <= ltm_range.start_period <= MONTHS_PER_YEAR
        and 1 <= ltm_range.end_period <= MONTHS_PER_YEAR
        and ltm_range.start_period <= ltm_range.end_period
    )


def are_valid_ranges(ranges: Sequence[LTMRange]) -> bool:
    return bool(ranges) and all(is_valid_range(r) for r in ranges)


def filter_movements_for_ltm(
    movements: Optional[pd.DataFrame], ranges: Sequence[LTMRange]
) -> pd.DataFrame:
    """Rows falling inside any of the ranges; an empty frame when there are none."""
    if movements is None:
        return pd.DataFrame()
    if not ranges:
        return movements.iloc[0:0]

    years = pd.to_numeric(movements[YEAR_COLUMN], errors="coerce")
    periods = pd.to_numeric(movements[PERIOD_COLUMN], errors="coerce")
    mask = pd.Series(False, index=movements.index)
    for r in ranges:
        mask |= (years == r.year) & (periods >= r.start_period) & (periods <= r.end_period)
    return movements.loc[mask]


def generate_ltm_label(ranges: Sequence[LTMRange]) -> str:
    if not ranges:
        return "LTM (No Data)"
    first, last = ranges[0], ranges[-1]
    return f"LTM ({first.year} P{first.start_period} - {last.year} P{last.end_period})"


def generate_short_label(ranges: Sequence[LTMRange]) -> str:
    if not ranges:
        return "LTM"
    last = ranges[-1]
    return f"LTM {last.year} P{last.end_period}"


def check_data_availability(
    ranges: Sequence[LTMRange],
    available_years: Iterable[int],
    expected_months: int = 12,
) -> DataAvailability:
    if not ranges:
        return DataAvailability(
            complete=False,
            actual_months=0,
            expected_months=expected_months,
            message="No LTM data available",
        )

    total = get_total_months(ranges)
    missing = get_missing_years(get_required_years(ranges), available_years)
    if missing:
        return DataAvailability(
            complete=False,
            actual_months=total,
            expected_months=expected_months,
            message=f"Missing data for year(s): {', '.join(str(y) for y in missing)}",
        )

    complete = total >= expected_months
    if complete:
        message = "Complete LTM data available"
    else:
        message = f"Only {total} month{'' if total == 1 else 's'} available (need {expected_months})"
    return DataAvailability(
        complete=complete,
        actual_months=total,
        expected_months=expected_months,
        message=message,
    )


def calculate_ltm_info(
    movements: Optional[pd.DataFrame],
    available_years: Iterable[int],
    months_back: int = 12,
) -> LTMInfo:
    """Trailing window ending at the latest period in ``movements``.

    ``filtered_data`` holds only the rows inside the window; ``availability``
    explains any gap so callers can show a warning.
    """
    latest = get_latest_available_period(movements)
    if latest is None:
        return LTMInfo(
            ranges=(),
            label="LTM (No Data)",
            filtered_data=filter_movements_for_ltm(movements, []),
            has_complete_data=False,
            latest=LatestPeriod(year=0, period=0),
            availability=DataAvailability(
                complete=False,
                actual_months=0,
                expected_months=months_back,
                message="No data available",
            ),
        )

    ranges = calculate_ltm_range(latest.year, latest.period, months_back)
    availability = check_data_availability(ranges, list(available_years), months_back)
    filtered = filter_movements_for_ltm(movements, ranges)
    label = generate_ltm_label(ranges)

    log = logger.info if availability.complete else logger.warning
    log(
        "ltm_window_calculated",
        extra={
            "ltm_label": label,
            "latest_year": latest.year,
            "latest_period": latest.period,
            "months_back": months_back,
            "actual_months": availability.actual_months,
            "complete": availability.complete,
            "rows": len(filtered),
        },
    )
    return LTMInfo(
        ranges=tuple(ranges),
        label=label,
        filtered_data=filtered,
        has_complete_data=availability.complete,
        latest=latest,
        availability=availability,
    )
