"""ISO-8601 week arithmetic used as the time axis of every weekly series."""

import datetime


def week_to_date(year, week):
    """Returns the Monday starting ISO week (year, week)."""

    jan4 = datetime.date(year, 1, 4)  # ISO week 1 always contains Jan 4th.
    monday_of_week1 = jan4 - datetime.timedelta(days=jan4.isoweekday() - 1)
    return monday_of_week1 + datetime.timedelta(weeks=week - 1)


def date_to_iso_week(date):
    """Returns the (ISO year, ISO week) pair containing date."""

    iso = date.isocalendar()
    return iso[0], iso[1]


def week_key(date):
    """Returns a key like 'W07' for the ISO week containing date."""

    return f"W{date.isocalendar()[1]:02d}"


def weeks_in_iso_year(year):
    # Dec 28th is always in the last ISO week of its year.
    return datetime.date(year, 12, 28).isocalendar()[1]


def is_valid_week(year, week):
    return 1 <= week <= weeks_in_iso_year(year)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser()
    parser.add_argument("year", type=int)
    args = parser.parse_args()

    for week in range(1, weeks_in_iso_year(args.year) + 1):
        date = week_to_date(args.year, week)
        print(f"{args.year}-W{week:02d} {date} {week_key(date)}")
