"""Log-linear ("quasi-Poisson") trend baselines with seasonal correction.

The trend is an ordinary least squares fit of ln(ASMR) against the time
index year * 100 + week, which is monotonic but not linear in elapsed time
across year boundaries. That index reproduces the reference methodology the
baselines are compared with, so it must not be replaced with a day count.

Overdispersion is estimated from Pearson residuals but is only reported;
baseline selection looks at prediction error alone.
"""

import collections
import dataclasses
import datetime
import math

import numpy

from asmr import iso_calendar

PANDEMIC_START = datetime.date(2020, 1, 1)
PANDEMIC_END = datetime.date(2022, 12, 31)

MIN_FIT_POINTS = 3
SINGULAR_EPSILON = 1e-10


@dataclasses.dataclass(frozen=True, order=True)
class BaselineWindow:
    start: datetime.date
    end: datetime.date

    @classmethod
    def from_years(cls, start_year, end_year):
        """Returns the window from Jan 1 of start_year to Dec 31 of end_year."""

        return cls(
            start=datetime.date(start_year, 1, 1),
            end=datetime.date(end_year, 12, 31),
        )

    @property
    def label(self):
        return f"{self.start.year}-{self.end.year}"

    def contains(self, date):
        return self.start <= date <= self.end


@dataclasses.dataclass(frozen=True)
class BaselineModel:
    intercept: float
    slope: float
    first_date: datetime.date
    dispersion: float

    def debug_line(self):
        return (
            f"ln(asmr) = {self.intercept:.6g} + {self.slope:.6g} * t"
            f" from {self.first_date} (dispersion={self.dispersion:.3g})"
        )


@dataclasses.dataclass(frozen=True)
class Residual:
    date: datetime.date
    observed: float
    fitted: float
    residual: float
    pearson: float


def includes_pandemic_years(start, end):
    """Returns True if [start, end] overlaps the 2020-2022 pandemic years."""

    return end >= PANDEMIC_START and start <= PANDEMIC_END


def time_index(year, week):
    return year * 100 + week


def window_points(points, window):
    """Returns the points dated within window, in date order."""

    return sorted(
        (p for p in points if window.contains(p.date)), key=lambda p: p.date
    )


def _usable(p):
    return math.isfinite(p.value) and p.value > 0


def fit_baseline(points, window):
    """Returns the trend model fitted to points within window, or None if
    the window overlaps the pandemic, has too few points or is degenerate."""

    if includes_pandemic_years(window.start, window.end):
        return None

    in_window = window_points(points, window)
    if len(in_window) < MIN_FIT_POINTS:
        return None

    first_date = in_window[0].date
    usable = [p for p in in_window if _usable(p)]
    n = len(usable)
    if n < MIN_FIT_POINTS:
        return None

    x = numpy.array([time_index(p.year, p.week) for p in usable], dtype=float)
    observed = numpy.array([p.value for p in usable], dtype=float)
    y = numpy.log(observed)

    sum_x, sum_y = x.sum(), y.sum()
    det = n * (x * x).sum() - sum_x * sum_x
    if abs(det) < SINGULAR_EPSILON:
        return None

    slope = (n * (x * y).sum() - sum_x * sum_y) / det
    intercept = (sum_y - slope * sum_x) / n

    fitted = numpy.exp(intercept + slope * x)
    pearson = (observed - fitted) / numpy.sqrt(fitted)
    dispersion = (pearson * pearson).sum() / (n - 2)

    return BaselineModel(
        intercept=float(intercept),
        slope=float(slope),
        first_date=first_date,
        dispersion=float(dispersion),
    )


def project_baseline(model, year, week):
    """Returns the trend value for ISO (year, week), or None if unavailable."""

    if model is None:
        return None
    try:
        value = math.exp(model.intercept + model.slope * time_index(year, week))
    except OverflowError:
        return None
    return value if math.isfinite(value) and value > 0 else None


def fitted_residuals(model, points):
    """Returns a Residual for each usable point, for diagnostic plots."""

    out = []
    for p in points:
        fitted = project_baseline(model, p.year, p.week)
        if fitted is None or not _usable(p):
            continue
        residual = p.value - fitted
        out.append(
            Residual(
                date=p.date,
                observed=p.value,
                fitted=fitted,
                residual=residual,
                pearson=residual / math.sqrt(fitted),
            )
        )
    return out


def seasonal_week_means(points, window):
    """Returns {week key: mean value} over points within window.
    W53 is left out unless it was seen at least twice."""

    by_week = collections.defaultdict(list)
    for p in window_points(points, window):
        if _usable(p):
            by_week[iso_calendar.week_key(p.date)].append(p.value)

    return {
        key: float(numpy.mean(values))
        for key, values in sorted(by_week.items())
        if key != "W53" or len(values) >= 2
    }


def seasonal_deviations(points, window, model):
    """Returns {week key: mean of (seasonal mean - trend)} over the points
    within window: the seasonal shape the trend model does not capture."""

    week_means = seasonal_week_means(points, window)
    by_week = collections.defaultdict(list)
    for p in window_points(points, window):
        key = iso_calendar.week_key(p.date)
        seasonal = week_means.get(key)
        trend = project_baseline(model, p.year, p.week)
        if seasonal is not None and trend is not None:
            by_week[key].append(seasonal - trend)

    return {
        key: float(numpy.mean(devs)) for key, devs in sorted(by_week.items())
    }


def apply_seasonal_adjustment(model, week_deviations, year, week):
    """Returns trend + seasonal deviation for ISO (year, week), or None if
    the trend is unavailable. W53 borrows W52's deviation when missing."""

    trend = project_baseline(model, year, week)
    if trend is None:
        return None

    key = f"W{week:02d}"
    deviation = week_deviations.get(key)
    if deviation is None:
        deviation = week_deviations.get("W52", 0.0) if key == "W53" else 0.0
    return trend + deviation
