import datetime

from asmr import iso_calendar


def test_week_round_trip_1990_to_2030():
    for year in range(1990, 2031):
        for week in range(1, iso_calendar.weeks_in_iso_year(year) + 1):
            date = iso_calendar.week_to_date(year, week)
            assert date.isoweekday() == 1
            assert iso_calendar.date_to_iso_week(date) == (year, week)


def test_week_one_starts_on_monday_near_new_year():
    assert iso_calendar.week_to_date(2020, 1) == datetime.date(2019, 12, 30)
    assert iso_calendar.week_to_date(2021, 1) == datetime.date(2021, 1, 4)
    assert iso_calendar.week_to_date(2015, 1) == datetime.date(2014, 12, 29)
    assert iso_calendar.week_to_date(2024, 1) == datetime.date(2024, 1, 1)


def test_long_iso_years_have_week_53():
    assert iso_calendar.weeks_in_iso_year(2015) == 53
    assert iso_calendar.weeks_in_iso_year(2020) == 53
    assert iso_calendar.weeks_in_iso_year(2019) == 52
    assert iso_calendar.weeks_in_iso_year(2021) == 52
    assert iso_calendar.is_valid_week(2020, 53)
    assert not iso_calendar.is_valid_week(2019, 53)
    assert not iso_calendar.is_valid_week(2019, 0)


def test_iso_year_differs_from_calendar_year_at_boundaries():
    new_years_day = datetime.date(2021, 1, 1)
    assert iso_calendar.date_to_iso_week(new_years_day) == (2020, 53)
    new_years_eve = datetime.date(2019, 12, 31)
    assert iso_calendar.date_to_iso_week(new_years_eve) == (2020, 1)


def test_week_key_is_zero_padded():
    assert iso_calendar.week_key(datetime.date(2021, 2, 17)) == "W07"
    assert iso_calendar.week_key(datetime.date(2020, 12, 31)) == "W53"
    assert iso_calendar.week_key(iso_calendar.week_to_date(2018, 52)) == "W52"
