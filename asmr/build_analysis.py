"""Functions that assemble baselines and excess mortality from STMF rows."""

import argparse
import dataclasses
import datetime
import logging
import re
from dataclasses import field
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple

from asmr import baseline_selection
from asmr import country_data
from asmr import excess
from asmr import fetch_hmd_stmf
from asmr.baseline_model import BaselineWindow
from asmr.baseline_selection import RmseRow
from asmr.baseline_selection import SeasonalBaseline
from asmr.country_data import AggregatePoint
from asmr.country_data import CountrySeries
from asmr.country_names import country_name
from asmr.excess import BaselineDifference
from asmr.excess import Contribution
from asmr.excess import ExcessSeries
from asmr.logging_policy import collecting_warnings

# Reusable command line arguments for the analysis.
argument_parser = argparse.ArgumentParser(add_help=False)
arg_group = argument_parser.add_argument_group("analysis")
arg_group.add_argument(
    "--reference_start",
    type=datetime.date.fromisoformat,
    default=country_data.REFERENCE_START,
)
arg_group.add_argument(
    "--coverage", type=float, default=country_data.COVERAGE_FRACTION
)
arg_group.add_argument(
    "--excess_start",
    type=datetime.date.fromisoformat,
    default=datetime.date(2020, 1, 1),
)
arg_group.add_argument("--contribution_year", type=int)
arg_group.add_argument("--first_rmse_year", type=int, default=2022)

KNOWN_WARNINGS_REGEX = re.compile(
    r"Skipped \d+ STMF rows with (bad Year/Week|wrong column count)"
)

SENSITIVITY_WINDOWS = (
    BaselineWindow.from_years(2015, 2019),
    BaselineWindow.from_years(2010, 2019),
)


@dataclasses.dataclass(eq=False)
class Analysis:
    by_country: Dict[str, CountrySeries]
    filtered: Dict[str, CountrySeries] = field(default_factory=dict)
    end_date: Optional[datetime.date] = None
    aggregate: Tuple[AggregatePoint, ...] = ()
    baselines: Dict[BaselineWindow, SeasonalBaseline] = field(
        default_factory=dict
    )
    optimal: Optional[SeasonalBaseline] = None
    cumulative: Dict[str, ExcessSeries] = field(default_factory=dict)
    rmse_rows: List[RmseRow] = field(default_factory=list)
    contributions: List[Contribution] = field(default_factory=list)
    sensitivity: List[BaselineDifference] = field(default_factory=list)

    def debug_block(self):
        """Returns a text report of the analysis."""

        lines = [
            f"{len(self.by_country)} countries loaded, "
            f"{len(self.filtered)} aggregated through {self.end_date}"
        ]
        names = sorted(country_name(c) for c in self.filtered)
        if names:
            lines.append(f"  {', '.join(names)}")

        lines.append("")
        lines.append("=== BASELINES ===")
        for baseline in self.baselines.values():
            labels = baseline_selection.LITERATURE_BASELINES.get(
                baseline.window, []
            )
            line = baseline.debug_line()
            lines.append(line + (f" [{', '.join(labels)}]" if labels else ""))
        if self.optimal:
            lines.append(f"RMSE-minimized: {self.optimal.debug_line()}")
        else:
            lines.append("RMSE-minimized: no baseline available")

        lines.append("")
        lines.append("=== CUMULATIVE EXCESS ===")
        for label, series in self.cumulative.items():
            lines.append(f"{series.debug_line()} {label}")

        if self.rmse_rows:
            lines.append("")
            lines.append("=== RMSE BY PERIOD ===")
            for row in self.rmse_rows:
                pre = row.pre_pandemic_rmse
                cells = [f"pre={pre:.2f}" if pre is not None else "pre=-"]
                for name, metrics in row.periods.items():
                    rmse = metrics.rmse
                    value = "-" if rmse is None else f"{rmse:.2f}"
                    cells.append(f"{name}={value}")
                lines.append(f"{row.window.label} {' '.join(cells)}")

        if self.contributions:
            lines.append("")
            lines.append("=== COUNTRY CONTRIBUTIONS ===")
            for c in self.contributions:
                lines.append(
                    f"{c.excess:+9.2f} {c.country_code} ({c.country_name})"
                )

        if self.sensitivity:
            lines.append("")
            labels = " vs ".join(w.label for w in SENSITIVITY_WINDOWS)
            lines.append(f"=== BASELINE SENSITIVITY ({labels}) ===")
            for d in self.sensitivity:
                lines.append(
                    f"{d.difference:9.2f} {d.country_code} ({d.country_name})"
                    f" {d.value_a:+.2f} / {d.value_b:+.2f}"
                )

        return "\n".join(lines)


def get_analysis(session, args):
    """Returns an Analysis of the STMF data named by args.
    Warnings are captured and printed, then raise a ValueError exception."""

    with collecting_warnings(allow_regex=KNOWN_WARNINGS_REGEX) as warnings:
        observations = fetch_hmd_stmf.get_observations(
            session, args.stmf_source
        )
        analysis = compute_analysis(observations, args)
        if warnings:
            raise ValueError(f"{len(warnings)} warnings found in analysis")
    return analysis


def compute_analysis(observations, args):
    """Runs grouping, aggregation, baseline fitting and excess calculation."""

    logging.info("Grouping by country...")
    by_country = country_data.group_by_country(observations)
    analysis = Analysis(by_country=by_country)
    if not by_country:
        return analysis

    logging.info(f"Filtering {len(by_country)} countries...")
    analysis.filtered, analysis.end_date = country_data.filter_countries(
        by_country, args.reference_start, args.coverage
    )
    if not analysis.filtered:
        logging.warning(f"No countries with data from {args.reference_start}")
        return analysis

    analysis.aggregate = country_data.aggregate_countries(analysis.filtered)
    points = country_data.aggregate_series(analysis.aggregate)

    logging.info("Fitting baselines...")
    analysis.baselines = baseline_selection.fit_baselines(
        points, baseline_selection.STANDARD_WINDOWS
    )
    analysis.optimal = baseline_selection.find_optimal_baseline(
        points,
        first_year=args.first_baseline_year,
        last_year=args.last_baseline_year,
        min_years=args.min_baseline_years,
        workers=args.workers,
    )

    logging.info("Computing excess mortality...")
    labelled = [(b.window.label, b) for b in analysis.baselines.values()]
    if analysis.optimal:
        label = f"{analysis.optimal.window.label} (RMSE-minimized)"
        labelled.append((label, analysis.optimal))
    for label, baseline in labelled:
        values = excess.baseline_values(points, baseline)
        analysis.cumulative[label] = excess.cumulative_excess(
            points, values, args.excess_start
        )

    last_year = analysis.end_date.year
    if args.first_rmse_year <= last_year:
        periods = baseline_selection.half_year_periods(
            args.first_rmse_year, last_year
        )
        analysis.rmse_rows = baseline_selection.rmse_table(
            points, analysis.baselines, periods
        )

    contribution_year = args.contribution_year or last_year - 1
    analysis.contributions = excess.country_contributions(
        analysis.filtered,
        window=BaselineWindow.from_years(args.reference_start.year, 2019),
        period=BaselineWindow.from_years(contribution_year, contribution_year),
    )
    analysis.sensitivity = excess.baseline_sensitivity(
        by_country,
        *SENSITIVITY_WINDOWS,
        start=args.excess_start,
        at=analysis.end_date,
    )
    return analysis


if __name__ == "__main__":
    from asmr import cache_policy
    from asmr import logging_policy

    parser = argparse.ArgumentParser(
        parents=[
            cache_policy.argument_parser,
            fetch_hmd_stmf.argument_parser,
            logging_policy.argument_parser,
            baseline_selection.argument_parser,
            argument_parser,
        ]
    )
    args = parser.parse_args()
    logging_policy.apply_args(args)
    session = cache_policy.new_session(args)

    analysis = get_analysis(session, args)
    print(analysis.debug_block())
