"""Excess mortality relative to a fitted baseline."""

import dataclasses
import datetime
import math
from typing import Optional
from typing import Tuple

import numpy
import pandas

from asmr.baseline_model import BaselineWindow
from asmr.baseline_selection import fit_seasonal_baseline
from asmr.country_names import country_name

# ASMR is an annual rate; each weekly point contributes 1/52 of it.
WEEKS_PER_YEAR = 52

GRANULARITIES = ("week", "month", "quarter", "6month", "year")


@dataclasses.dataclass(frozen=True)
class ExcessSeries:
    dates: Tuple[datetime.date, ...]
    values: Tuple[Optional[float], ...]

    def frame(self):
        """Returns a DataFrame with a 'value' column (NaN where missing)."""

        values = [numpy.nan if v is None else v for v in self.values]
        index = pandas.to_datetime(list(self.dates))
        return pandas.DataFrame({"value": values}, index=index, dtype=float)

    def debug_line(self):
        defined = [v for v in self.values if v is not None]
        if not defined:
            return f"{len(self.values):4d}w [no data]"
        return (
            f"{len(self.values):4d}w {self.dates[0]} => {self.dates[-1]}"
            f" last={defined[-1]:<+8.2f}"
        )


@dataclasses.dataclass(frozen=True)
class Contribution:
    country_code: str
    country_name: str
    excess: float


@dataclasses.dataclass(frozen=True)
class BaselineDifference:
    country_code: str
    country_name: str
    value_a: float
    value_b: float
    difference: float


def _defined(value):
    return value is not None and math.isfinite(value)


def baseline_values(points, baseline):
    """Returns the baseline projection for each point (None if missing)."""

    if baseline is None:
        return [None] * len(points)
    return [baseline.project(p.year, p.week) for p in points]


def pointwise_excess(points, values):
    """Returns observed - baseline per point, None where either is missing."""

    return ExcessSeries(
        dates=tuple(p.date for p in points),
        values=tuple(
            p.value - base if _defined(p.value) and _defined(base) else None
            for p, base in zip(points, values)
        ),
    )


def cumulative_excess(points, values, start):
    """Returns the running sum of weekly excess for points dated on or after
    start. The total is 0 at start; undefined points are recorded as None
    and do not change the total."""

    dates, excess = [], []
    total = 0.0
    for p, base in zip(points, values):
        if p.date < start:
            continue
        dates.append(p.date)
        if p.date == start:
            excess.append(total)
        elif _defined(p.value) and _defined(base):
            total += (p.value - base) / WEEKS_PER_YEAR
            excess.append(total)
        else:
            excess.append(None)

    return ExcessSeries(dates=tuple(dates), values=tuple(excess))


def period_start(date, granularity):
    """Returns the first day of the period containing date."""

    if granularity == "month":
        return date.replace(day=1)
    if granularity == "quarter":
        return datetime.date(date.year, (date.month - 1) // 3 * 3 + 1, 1)
    if granularity == "6month":
        return datetime.date(date.year, (date.month - 1) // 6 * 6 + 1, 1)
    if granularity == "year":
        return datetime.date(date.year, 1, 1)
    raise ValueError(f'Unknown granularity "{granularity}"')


def aggregate_by_granularity(series, granularity):
    """Returns the mean defined value per period, dated by period start."""

    if granularity not in GRANULARITIES:
        raise ValueError(f'Unknown granularity "{granularity}"')
    if granularity == "week":
        return series

    values = series.frame().value.dropna()
    if values.empty:
        return ExcessSeries(dates=(), values=())
    keys = [period_start(d, granularity) for d in values.index.date]
    means = values.groupby(keys).mean().sort_index()
    return ExcessSeries(
        dates=tuple(means.index), values=tuple(float(v) for v in means)
    )


def value_at(series, target):
    """Returns the latest defined value dated on or before target."""

    found = None
    for date, value in zip(series.dates, series.values):
        if date > target:
            break
        if _defined(value):
            found = value
    return found


def country_contributions(
    series_by_country,
    window=BaselineWindow.from_years(2001, 2019),
    period=BaselineWindow.from_years(2024, 2024),
):
    """Returns each country's cumulative excess over period against its own
    baseline for window, largest first."""

    out = []
    for code, series in series_by_country.items():
        points = series.points()
        baseline = fit_seasonal_baseline(points, window)
        if baseline is None:
            continue

        in_period = [p for p in points if period.contains(p.date)]
        if not in_period:
            continue

        total = 0.0
        for p, base in zip(in_period, baseline_values(in_period, baseline)):
            if _defined(p.value) and _defined(base):
                total += (p.value - base) / WEEKS_PER_YEAR
        out.append(Contribution(code, country_name(code), total))

    out.sort(key=lambda c: c.excess, reverse=True)
    return out


def baseline_sensitivity(
    series_by_country,
    window_a,
    window_b,
    start=datetime.date(2020, 1, 1),
    at=None,
    top=10,
):
    """Returns the countries whose cumulative excess at the date 'at'
    differs most between baselines fitted over window_a and window_b."""

    out = []
    for code, series in series_by_country.items():
        points = series.points()
        baseline_a = fit_seasonal_baseline(points, window_a)
        baseline_b = fit_seasonal_baseline(points, window_b)
        if baseline_a is None or baseline_b is None:
            continue

        target = at or series.latest_date
        values_a = baseline_values(points, baseline_a)
        values_b = baseline_values(points, baseline_b)
        value_a = value_at(cumulative_excess(points, values_a, start), target)
        value_b = value_at(cumulative_excess(points, values_b, start), target)
        if value_a is None or value_b is None:
            continue

        out.append(
            BaselineDifference(
                country_code=code,
                country_name=country_name(code),
                value_a=value_a,
                value_b=value_b,
                difference=abs(value_a - value_b),
            )
        )

    out.sort(key=lambda d: d.difference, reverse=True)
    return out[:top]
