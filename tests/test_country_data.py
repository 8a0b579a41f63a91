import datetime

import pytest

from asmr import country_data
from asmr.standardization import AgeBandRates
from asmr.standardization import make_observation


def _obs(code, sex, year, week, asmr=1000.0):
    # Equal band rates make ASMR equal to 100000 * rate.
    rate = asmr / 100000
    rates = AgeBandRates(rate, rate, rate, rate, rate)
    return make_observation(code, sex, year, week, rates)


def _series(code, first_year, last_year, last_week=52, asmr=1000.0):
    rows = [
        _obs(code, "b", year, week, asmr)
        for year in range(first_year, last_year + 1)
        for week in range(1, 53)
        if year < last_year or week <= last_week
    ]
    return country_data.group_by_country(rows)[code]


def test_group_prefers_both_sexes():
    rows = [
        _obs("SWE", "m", 2019, 1),
        _obs("SWE", "f", 2019, 1),
        _obs("SWE", "b", 2019, 2),
        _obs("SWE", "b", 2019, 1),
    ]
    by_country = country_data.group_by_country(rows)
    assert by_country["SWE"].sex == "b"
    assert [r.week for r in by_country["SWE"].rows] == [1, 2]


def test_group_falls_back_to_first_seen_sex():
    rows = [
        _obs("ISL", "f", 2019, 1),
        _obs("ISL", "m", 2019, 1),
        _obs("ISL", "m", 2019, 2),
    ]
    assert country_data.group_by_country(rows)["ISL"].sex == "f"


def test_optimal_end_date_needs_eighty_percent_coverage():
    start = country_data.REFERENCE_START
    by_country = {
        "A": _series("A", 2000, 2024, 10),
        "B": _series("B", 2000, 2024, 20),
        "C": _series("C", 2000, 2024, 30),
        "D": _series("D", 2000, 2024, 40),
        "E": _series("E", 2000, 2024, 50),
        "LATE": _series("LATE", 2005, 2024, 52),
    }
    end_date = country_data.find_optimal_end_date(by_country, start)
    # Four of the five countries starting by 2001 reach week 20.
    assert end_date == by_country["B"].latest_date


def test_optimal_end_date_without_qualifying_countries():
    by_country = {"LATE": _series("LATE", 2005, 2024)}
    assert country_data.find_optimal_end_date(by_country) is None
    assert country_data.filter_countries(by_country) == ({}, None)


def test_filter_truncates_to_common_window():
    by_country = {
        "A": _series("A", 2000, 2024, 10),
        "B": _series("B", 2000, 2024, 20),
        "C": _series("C", 2000, 2024, 30),
        "D": _series("D", 2000, 2024, 40),
        "E": _series("E", 2000, 2024, 50),
        "LATE": _series("LATE", 2005, 2024, 52),
    }
    filtered, end_date = country_data.filter_countries(by_country)
    assert sorted(filtered) == ["B", "C", "D", "E"]
    for series in filtered.values():
        assert series.earliest_date >= datetime.date(2001, 1, 1)
        assert series.latest_date == end_date


def test_aggregate_sums_and_counts_per_date():
    by_country = {
        "A": country_data.group_by_country(
            [_obs("A", "b", 2019, 1, 100.0), _obs("A", "b", 2019, 2, 110.0)]
        )["A"],
        "B": country_data.group_by_country([_obs("B", "b", 2019, 2, 50.0)])[
            "B"
        ],
    }
    aggregate = country_data.aggregate_countries(by_country)
    assert [a.date for a in aggregate] == [
        datetime.date(2018, 12, 31),
        datetime.date(2019, 1, 7),
    ]
    assert [(a.year, a.week) for a in aggregate] == [(2019, 1), (2019, 2)]
    assert [a.asmr_sum for a in aggregate] == pytest.approx([100.0, 160.0])
    assert [a.country_count for a in aggregate] == [1, 2]
    assert aggregate[1].mean == pytest.approx(80.0)

    points = country_data.aggregate_series(aggregate)
    assert [p.value for p in points] == pytest.approx([100.0, 160.0])

    df = country_data.aggregate_frame(aggregate)
    assert list(df.country_count) == [1, 2]
    assert df["mean"].iloc[1] == pytest.approx(80.0)


def test_aggregate_of_nothing_is_empty():
    assert country_data.aggregate_countries({}) == ()
