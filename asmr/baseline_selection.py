"""Grid search for the baseline window that best predicts recent data."""

import argparse
import dataclasses
import datetime
import functools
import logging
import math
import multiprocessing
from typing import Dict
from typing import List
from typing import Optional

from asmr.baseline_model import BaselineModel
from asmr.baseline_model import BaselineWindow
from asmr.baseline_model import apply_seasonal_adjustment
from asmr.baseline_model import fit_baseline
from asmr.baseline_model import includes_pandemic_years
from asmr.baseline_model import seasonal_deviations

FIRST_BASELINE_YEAR = 2001
LAST_BASELINE_YEAR = 2019
MIN_BASELINE_YEARS = 4

# Baselines shown alongside the selected one, with who uses them.
LITERATURE_BASELINES = {
    BaselineWindow.from_years(2001, 2019): ["Equilibrium-Selected Baseline"],
    BaselineWindow.from_years(2015, 2019): [
        "Our World in Data",
        "The Economist",
    ],
    BaselineWindow.from_years(2010, 2019): [
        "Institute and Faculty of Actuaries",
        "M. Pizzato",
    ],
    BaselineWindow.from_years(2016, 2019): ["Eurostat"],
}

STANDARD_WINDOWS = [BaselineWindow.from_years(2001, 2019)] + [
    BaselineWindow.from_years(y, 2019) for y in range(2010, 2017)
]

# Reusable command line arguments for baseline selection.
argument_parser = argparse.ArgumentParser(add_help=False)
arg_group = argument_parser.add_argument_group("baseline selection")
arg_group.add_argument(
    "--first_baseline_year", type=int, default=FIRST_BASELINE_YEAR
)
arg_group.add_argument(
    "--last_baseline_year", type=int, default=LAST_BASELINE_YEAR
)
arg_group.add_argument(
    "--min_baseline_years", type=int, default=MIN_BASELINE_YEARS
)
arg_group.add_argument("--workers", type=int, default=0)

logger = logging.getLogger("asmr.baseline_selection")


@dataclasses.dataclass(frozen=True)
class SeasonalBaseline:
    """A trend model plus its seasonal deviations, fitted over one window.
    week_deviations must not be modified once built."""

    window: BaselineWindow
    model: BaselineModel
    week_deviations: Dict[str, float]
    rmse: Optional[float] = None

    def project(self, year, week):
        return apply_seasonal_adjustment(
            self.model, self.week_deviations, year, week
        )

    def debug_line(self):
        rmse = "" if self.rmse is None else f" rmse={self.rmse:.2f}"
        return f"{self.window.label}{rmse} {self.model.debug_line()}"


@dataclasses.dataclass(frozen=True)
class PeriodMetrics:
    rmse: Optional[float]
    relative_rmse: Optional[float]


@dataclasses.dataclass(frozen=True)
class RmseRow:
    window: BaselineWindow
    labels: List[str]
    pre_pandemic_rmse: Optional[float]
    periods: Dict[str, PeriodMetrics]


def fit_seasonal_baseline(points, window):
    """Returns a SeasonalBaseline for window, or None if no model fits."""

    model = fit_baseline(points, window)
    if model is None:
        return None
    deviations = seasonal_deviations(points, window, model)
    return SeasonalBaseline(
        window=window, model=model, week_deviations=deviations
    )


def fit_baselines(points, windows):
    """Returns {window: SeasonalBaseline} for each window that fits."""

    out = {}
    for window in windows:
        baseline = fit_seasonal_baseline(points, window)
        if baseline is not None:
            out[window] = baseline
    return out


def candidate_windows(
    first_year=FIRST_BASELINE_YEAR,
    last_year=LAST_BASELINE_YEAR,
    min_years=MIN_BASELINE_YEARS,
    before=None,
):
    """Returns whole-year windows of at least min_years, ordered by start
    then end, skipping pandemic windows and any ending on/after before."""

    windows = []
    for start_year in range(first_year, last_year - min_years + 2):
        for end_year in range(start_year + min_years - 1, last_year + 1):
            window = BaselineWindow.from_years(start_year, end_year)
            if includes_pandemic_years(window.start, window.end):
                continue
            if before is not None and window.end >= before:
                continue
            windows.append(window)
    return windows


def calculate_rmse(observed, predicted):
    """Returns the RMSE over pairs where both values are finite,
    or infinity if there are none."""

    if len(observed) != len(predicted):
        return math.inf

    squares = [
        (o - p) ** 2
        for o, p in zip(observed, predicted)
        if o is not None and p is not None and math.isfinite(o + p)
    ]
    return math.sqrt(sum(squares) / len(squares)) if squares else math.inf


def evaluation_period(points):
    """Returns the window from Jan 1 of the latest point's year to the
    latest point, or None for an empty series."""

    if not points:
        return None
    last = max(p.date for p in points)
    return BaselineWindow(start=datetime.date(last.year, 1, 1), end=last)


def select_best(scored):
    """Returns the SeasonalBaseline with the lowest finite rmse; the
    earliest one wins ties. Returns None if none has a finite rmse."""

    def better(best, candidate):
        best_rmse = math.inf if best is None else best.rmse
        return candidate if candidate.rmse < best_rmse else best

    return functools.reduce(better, (s for s in scored if s is not None), None)


def _score_window(points, evaluation_points, window):
    baseline = fit_seasonal_baseline(points, window)
    if baseline is None:
        return None

    predicted = [baseline.project(p.year, p.week) for p in evaluation_points]
    rmse = calculate_rmse([p.value for p in evaluation_points], predicted)
    logger.debug(f"Baseline {window.label}: RMSE = {rmse:.2f}")
    return dataclasses.replace(baseline, rmse=rmse)


def find_optimal_baseline(
    points,
    evaluation=None,
    first_year=FIRST_BASELINE_YEAR,
    last_year=LAST_BASELINE_YEAR,
    min_years=MIN_BASELINE_YEARS,
    workers=0,
):
    """Returns the baseline whose projection best matches the evaluation
    period (default: the latest year of data), or None if nothing fits."""

    points = tuple(sorted(points, key=lambda p: p.date))
    evaluation = evaluation or evaluation_period(points)
    if evaluation is None:
        logger.warning("No data for baseline selection")
        return None

    evaluation_points = tuple(p for p in points if evaluation.contains(p.date))
    if not evaluation_points:
        logger.warning(
            f"No data for RMSE evaluation "
            f"(from {evaluation.start} to {evaluation.end})"
        )
        return None

    windows = candidate_windows(
        first_year, last_year, min_years, before=evaluation.start
    )
    score = functools.partial(_score_window, points, evaluation_points)
    if workers and workers > 1:
        # Fit candidate windows using multiple cores.
        chunk_size = max(1, len(windows) // (4 * workers))
        with multiprocessing.Pool(processes=workers) as pool:
            scored = pool.map(score, windows, chunksize=chunk_size)
    else:
        scored = [score(w) for w in windows]

    best = select_best(scored)
    if best is not None:
        logger.info(
            f"Best baseline: {best.window.label}, RMSE = {best.rmse:.2f} "
            f"({len(windows)} windows tried)"
        )
    return best


def period_metrics(points, baseline, period):
    """Returns PeriodMetrics for baseline predictions over period."""

    in_period = [p for p in points if period.contains(p.date)]
    pairs = [
        (p.value, v)
        for p in in_period
        for v in (baseline.project(p.year, p.week),)
        if v is not None and math.isfinite(p.value + v)
    ]
    if not pairs:
        return PeriodMetrics(rmse=None, relative_rmse=None)

    observed = [o for o, _ in pairs]
    rmse = calculate_rmse(observed, [v for _, v in pairs])
    mean_observed = sum(observed) / len(observed)
    relative = rmse / mean_observed * 100 if mean_observed > 0 else None
    return PeriodMetrics(rmse=rmse, relative_rmse=relative)


def half_year_periods(first_year, last_year):
    """Returns {name: window} for each half year, like '2022 (Jan-Jun)'."""

    periods = {}
    for year in range(first_year, last_year + 1):
        periods[f"{year} (Jan-Jun)"] = BaselineWindow(
            datetime.date(year, 1, 1), datetime.date(year, 6, 30)
        )
        periods[f"{year} (Jul-Dec)"] = BaselineWindow(
            datetime.date(year, 7, 1), datetime.date(year, 12, 31)
        )
    return periods


def rmse_table(points, baselines, periods):
    """Returns an RmseRow per baseline, comparing in-window ("pre-pandemic")
    error with the error over each named period."""

    rows = []
    for window, baseline in sorted(baselines.items()):
        rows.append(
            RmseRow(
                window=window,
                labels=LITERATURE_BASELINES.get(window, []),
                pre_pandemic_rmse=period_metrics(points, baseline, window).rmse,
                periods={
                    name: period_metrics(points, baseline, period)
                    for name, period in periods.items()
                },
            )
        )
    return rows


if __name__ == "__main__":
    from asmr import cache_policy
    from asmr import country_data
    from asmr import fetch_hmd_stmf
    from asmr import logging_policy

    parser = argparse.ArgumentParser(
        parents=[
            cache_policy.argument_parser,
            fetch_hmd_stmf.argument_parser,
            logging_policy.argument_parser,
            argument_parser,
        ]
    )
    parser.add_argument("--country")
    args = parser.parse_args()
    logging_policy.apply_args(args)
    session = cache_policy.new_session(args)

    observations = fetch_hmd_stmf.get_observations(session, args.stmf_source)
    by_country = country_data.group_by_country(observations)
    if args.country:
        points = by_country[args.country].points()
    else:
        filtered, _ = country_data.filter_countries(by_country)
        points = country_data.aggregate_series(
            country_data.aggregate_countries(filtered)
        )

    best = find_optimal_baseline(
        points,
        first_year=args.first_baseline_year,
        last_year=args.last_baseline_year,
        min_years=args.min_baseline_years,
        workers=args.workers,
    )
    print(best.debug_line() if best else "No baseline available")
