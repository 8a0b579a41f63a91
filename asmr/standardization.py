"""Age standardization of weekly mortality rates to one comparable ASMR."""

import dataclasses
import datetime
import math
from typing import Optional

from asmr import iso_calendar

# European Standard Population 2013, collapsed to the five STMF age bands.
ESP2013_WEIGHTS = {
    "r0_14": 0.156,
    "r15_64": 0.654,
    "r65_74": 0.080,
    "r75_84": 0.066,
    "r85p": 0.044,
}

SEXES = ("b", "m", "f")


@dataclasses.dataclass(frozen=True)
class AgeBandRates:
    r0_14: Optional[float] = None
    r15_64: Optional[float] = None
    r65_74: Optional[float] = None
    r75_84: Optional[float] = None
    r85p: Optional[float] = None


@dataclasses.dataclass(frozen=True)
class Observation:
    country_code: str
    sex: str
    year: int
    week: int
    rates: AgeBandRates
    date: datetime.date
    asmr100k: float

    def debug_line(self):
        return (
            f"{self.country_code}/{self.sex} {self.year}-W{self.week:02d}"
            f" {self.date} asmr={self.asmr100k:.1f}"
        )


def _rate(value):
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(rate) else rate


def compute_asmr100k(rates):
    """Returns the annualized age-standardized mortality rate per 100K.
    Missing or non-numeric band rates count as zero."""

    return 100000 * sum(
        _rate(getattr(rates, band)) * weight
        for band, weight in ESP2013_WEIGHTS.items()
    )


def make_observation(country_code, sex, year, week, rates):
    """Returns an Observation for one STMF row, or None if its ASMR is not
    a finite positive number. Raises ValueError for impossible rows."""

    if not country_code:
        raise ValueError(f"Missing country code ({year}-W{week})")
    if sex not in SEXES:
        raise ValueError(f'Bad sex "{sex}": {country_code} {year}-W{week}')
    if not iso_calendar.is_valid_week(year, week):
        raise ValueError(f"Bad ISO week: {country_code} {year}-W{week}")

    asmr = compute_asmr100k(rates)
    if not (math.isfinite(asmr) and asmr > 0):
        return None

    return Observation(
        country_code=country_code,
        sex=sex,
        year=year,
        week=week,
        rates=rates,
        date=iso_calendar.week_to_date(year, week),
        asmr100k=asmr,
    )
