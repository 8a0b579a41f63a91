"""Per-country weekly ASMR series and their cross-country aggregate."""

import dataclasses
import datetime
import logging
import math
from typing import Tuple

import pandas

from asmr import iso_calendar
from asmr.country_names import country_name
from asmr.standardization import Observation

# Countries must have data from here on to join the aggregate.
REFERENCE_START = datetime.date(2001, 1, 1)

# Share of those countries whose data must reach the common end date.
COVERAGE_FRACTION = 0.8

logger = logging.getLogger("asmr.country_data")


@dataclasses.dataclass(frozen=True)
class SeriesPoint:
    """One weekly value, the unit every baseline computation works on."""

    date: datetime.date
    year: int
    week: int
    value: float


@dataclasses.dataclass(frozen=True)
class CountrySeries:
    country_code: str
    sex: str
    rows: Tuple[Observation, ...]

    @property
    def earliest_date(self):
        return self.rows[0].date if self.rows else None

    @property
    def latest_date(self):
        return self.rows[-1].date if self.rows else None

    def points(self):
        return tuple(
            SeriesPoint(date=r.date, year=r.year, week=r.week, value=r.asmr100k)
            for r in self.rows
        )

    def truncated(self, start, end):
        """Returns a copy holding only rows dated within [start, end]."""

        rows = tuple(r for r in self.rows if start <= r.date <= end)
        return dataclasses.replace(self, rows=rows)

    def debug_line(self):
        if not self.rows:
            return f"{self.country_code}/{self.sex} [empty]"
        return (
            f"{len(self.rows):5d}w {self.earliest_date} => {self.latest_date}"
            f" {self.country_code}/{self.sex}"
            f" ({country_name(self.country_code)})"
        )


@dataclasses.dataclass(frozen=True)
class AggregatePoint:
    date: datetime.date
    year: int
    week: int
    asmr_sum: float
    country_count: int

    @property
    def mean(self):
        return self.asmr_sum / self.country_count


def group_by_country(observations):
    """Returns {country code: CountrySeries}, keeping one sex per country:
    'b' (both sexes) when present, otherwise the first one seen."""

    by_key = {}
    for o in observations:
        by_key.setdefault((o.country_code, o.sex), []).append(o)

    by_country = {}
    for (code, sex), rows in by_key.items():
        existing = by_country.get(code)
        if existing is None or (sex == "b" and existing.sex != "b"):
            rows = tuple(sorted(rows, key=lambda r: r.date))
            by_country[code] = CountrySeries(code, sex, rows)

    return by_country


def find_optimal_end_date(
    series_by_country,
    reference_start=REFERENCE_START,
    coverage=COVERAGE_FRACTION,
):
    """Returns the latest end date reached by at least the coverage share of
    countries whose data starts on or before reference_start."""

    latest_dates = sorted(
        s.latest_date
        for s in series_by_country.values()
        if s.rows and s.earliest_date <= reference_start
    )
    if not latest_dates:
        return None

    target = math.floor(len(latest_dates) * coverage)
    for candidate in reversed(latest_dates):
        reaching = sum(1 for d in latest_dates if d >= candidate)
        if reaching >= target:
            logger.info(
                f"Optimal end date: {candidate}, "
                f"includes {reaching} of {len(latest_dates)} countries"
            )
            return candidate

    return latest_dates[-1]


def filter_countries(
    series_by_country,
    reference_start=REFERENCE_START,
    coverage=COVERAGE_FRACTION,
):
    """Returns (series spanning the common window, common end date),
    with each kept series truncated to that window."""

    end_date = find_optimal_end_date(
        series_by_country, reference_start, coverage
    )
    if end_date is None:
        return {}, None

    filtered = {}
    for code, series in series_by_country.items():
        if not series.rows:
            continue
        if (
            series.earliest_date <= reference_start
            and series.latest_date >= end_date
        ):
            kept = series.truncated(reference_start, end_date)
            if kept.rows:
                filtered[code] = kept

    return filtered, end_date


def aggregate_countries(series_by_country):
    """Returns a date-ordered tuple of AggregatePoint, summing ASMR over
    the countries observed on each date."""

    frame = pandas.DataFrame(
        [
            (r.date, r.asmr100k)
            for s in series_by_country.values()
            for r in s.rows
        ],
        columns=["date", "asmr100k"],
    )
    if frame.empty:
        return ()

    grouped = frame.groupby("date", sort=True).agg(
        asmr_sum=("asmr100k", "sum"),
        country_count=("asmr100k", "count"),
    )

    points = []
    for date, asmr_sum, count in zip(
        grouped.index, grouped.asmr_sum, grouped.country_count
    ):
        year, week = iso_calendar.date_to_iso_week(date)
        points.append(
            AggregatePoint(
                date=date,
                year=year,
                week=week,
                asmr_sum=float(asmr_sum),
                country_count=int(count),
            )
        )
    return tuple(points)


def aggregate_series(aggregate):
    """Returns the aggregate sums as SeriesPoints for baseline fitting."""

    return tuple(
        SeriesPoint(date=a.date, year=a.year, week=a.week, value=a.asmr_sum)
        for a in aggregate
    )


def aggregate_frame(aggregate):
    """Returns a DataFrame of the aggregate, indexed by date."""

    df = pandas.DataFrame(
        {
            "asmr_sum": [a.asmr_sum for a in aggregate],
            "country_count": [a.country_count for a in aggregate],
        },
        index=pandas.to_datetime([a.date for a in aggregate]),
    )
    df["mean"] = df.asmr_sum / df.country_count
    return df
