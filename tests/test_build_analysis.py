import argparse
import math

import pytest

from asmr import baseline_selection
from asmr import build_analysis
from asmr import country_data
from asmr import fetch_hmd_stmf
from asmr import iso_calendar
from asmr.baseline_model import PANDEMIC_START
from asmr.baseline_model import BaselineWindow
from asmr.standardization import AgeBandRates
from asmr.standardization import make_observation


def _args(*argv):
    parser = argparse.ArgumentParser(
        parents=[
            fetch_hmd_stmf.argument_parser,
            baseline_selection.argument_parser,
            build_analysis.argument_parser,
        ]
    )
    return parser.parse_args(list(argv))


def _asmr(scale, year, week):
    seasonal = 1 + 0.15 * math.cos(2 * math.pi * (week - 1) / 52)
    trend = 1 - 0.005 * (year - 2000)
    pandemic = 1.1 if 2020 <= year <= 2022 else 1.0
    return scale * seasonal * trend * pandemic


def _observations():
    observations = []
    for code, scale in [("SWE", 1000), ("NOR", 900), ("DNK", 1100)]:
        for year in range(2000, 2025):
            for week in range(1, iso_calendar.weeks_in_iso_year(year) + 1):
                rate = _asmr(scale, year, week) / 100000
                rates = AgeBandRates(rate, rate, rate, rate, rate)
                observations.append(
                    make_observation(code, "b", year, week, rates)
                )
    return observations


@pytest.fixture(scope="module")
def analysis():
    return build_analysis.compute_analysis(_observations(), _args())


def test_countries_are_filtered_and_aggregated(analysis):
    assert sorted(analysis.filtered) == ["DNK", "NOR", "SWE"]
    assert analysis.end_date == iso_calendar.week_to_date(2024, 52)
    assert all(a.country_count == 3 for a in analysis.aggregate)
    assert analysis.aggregate[0].date >= country_data.REFERENCE_START


def test_baselines_and_selection(analysis):
    assert list(analysis.baselines) == baseline_selection.STANDARD_WINDOWS
    assert analysis.optimal is not None
    assert analysis.optimal.window.end < PANDEMIC_START
    assert analysis.optimal.rmse < 100

    labels = list(analysis.cumulative)
    assert "2001-2019" in labels
    assert f"{analysis.optimal.window.label} (RMSE-minimized)" in labels

    # Every country sits 10% above trend during 2020-2022.
    for series in analysis.cumulative.values():
        assert series.values[0] is not None
        assert series.values[-1] > 0


def test_rmse_table_covers_recent_half_years(analysis):
    assert len(analysis.rmse_rows) == len(baseline_selection.STANDARD_WINDOWS)
    row = analysis.rmse_rows[0]
    assert row.window == BaselineWindow.from_years(2001, 2019)
    assert list(row.periods)[0] == "2022 (Jan-Jun)"
    assert list(row.periods)[-1] == "2024 (Jul-Dec)"


def test_country_breakdowns(analysis):
    assert {c.country_code for c in analysis.contributions} == {
        "DNK",
        "NOR",
        "SWE",
    }
    assert len(analysis.sensitivity) == 3


def test_debug_block_reports_each_section(analysis):
    text = analysis.debug_block()
    assert "3 countries loaded, 3 aggregated through 2024-12-23" in text
    assert "=== BASELINES ===" in text
    assert "[Equilibrium-Selected Baseline]" in text
    assert "RMSE-minimized: " in text
    assert "=== RMSE BY PERIOD ===" in text
    assert "(Sweden)" in text


def test_analysis_without_observations():
    analysis = build_analysis.compute_analysis([], _args())
    assert analysis.optimal is None
    assert "RMSE-minimized: no baseline available" in analysis.debug_block()


CSV_HEADER = "CountryCode,Year,Week,Sex,R0_14,R15_64,R65_74,R75_84,R85p\n"


def test_get_analysis_allows_skipped_rows(tmp_path):
    path = tmp_path / "stmf.csv"
    path.write_text(
        CSV_HEADER
        + "SWE,2019,1,b,0,0.001,0,0,0\n"
        + "SWE,?,2,b,0,0.001,0,0,0\n"
        + "SWE,2019,3,b,0,0.001\n"
    )
    analysis = build_analysis.get_analysis(
        None, _args("--stmf_source", str(path))
    )
    assert list(analysis.by_country) == ["SWE"]
    assert analysis.filtered == {}


def test_get_analysis_fails_on_unexpected_warnings(tmp_path):
    path = tmp_path / "stmf.csv"
    path.write_text(CSV_HEADER + "SWE,2019,53,b,0,0.001,0,0,0\n")
    with pytest.raises(ValueError, match="1 warnings found"):
        build_analysis.get_analysis(None, _args("--stmf_source", str(path)))
