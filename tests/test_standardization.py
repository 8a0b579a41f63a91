import datetime
import math

import pytest

from asmr.standardization import ESP2013_WEIGHTS
from asmr.standardization import AgeBandRates
from asmr.standardization import compute_asmr100k
from asmr.standardization import make_observation


def test_esp2013_weights_sum_to_one():
    assert sum(ESP2013_WEIGHTS.values()) == pytest.approx(1.0, abs=1e-9)


def test_asmr_golden_value():
    rates = AgeBandRates(
        r0_14=0.0001, r15_64=0.0008, r65_74=0.02, r75_84=0.06, r85p=0.15
    )
    # 100000 * (1.56e-5 + 5.232e-4 + 1.6e-3 + 3.96e-3 + 6.6e-3)
    assert compute_asmr100k(rates) == pytest.approx(1269.88, rel=1e-9)


def test_missing_and_non_numeric_rates_count_as_zero():
    rates = AgeBandRates(r0_14=None, r15_64="n/a", r65_74=math.nan, r85p=0.1)
    assert compute_asmr100k(rates) == pytest.approx(100000 * 0.1 * 0.044)


def test_make_observation_derives_date_and_asmr():
    obs = make_observation("USA", "b", 2020, 53, AgeBandRates(r85p=0.1))
    assert obs.date == datetime.date(2020, 12, 28)
    assert obs.asmr100k == pytest.approx(440.0)
    assert (obs.year, obs.week) == (2020, 53)


def test_make_observation_drops_non_positive_asmr():
    assert make_observation("USA", "b", 2020, 1, AgeBandRates()) is None
    negative = AgeBandRates(r15_64=-0.01)
    assert make_observation("USA", "b", 2020, 1, negative) is None
    infinite = AgeBandRates(r15_64=math.inf)
    assert make_observation("USA", "b", 2020, 1, infinite) is None


def test_make_observation_rejects_impossible_rows():
    rates = AgeBandRates(r85p=0.1)
    with pytest.raises(ValueError):
        make_observation("USA", "x", 2020, 1, rates)
    with pytest.raises(ValueError):
        make_observation("USA", "b", 2019, 53, rates)
    with pytest.raises(ValueError):
        make_observation("USA", "b", 2019, 0, rates)
    with pytest.raises(ValueError):
        make_observation("", "b", 2019, 1, rates)
