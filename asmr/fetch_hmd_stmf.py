"""Module to load weekly death rates from the Human Mortality Database
Short-Term Mortality Fluctuations (STMF) series."""

import argparse
import functools
import io
import logging
import pathlib
import warnings

import pandas
import requests

from asmr import cache_policy
from asmr.standardization import AgeBandRates
from asmr.standardization import make_observation

STMF_URL = (
    "https://www.mortality.org/File/GetDocument/Public/STMF/Outputs/stmf.csv"
)

# Tried in order; the first readable source wins.
DEFAULT_SOURCES = ["data/HMD.csv", "../data/HMD.csv", STMF_URL]

IGNORED_COLUMNS = ["Split", "SplitSex", "Forecast"]
RATE_COLUMNS = ["R0_14", "R15_64", "R65_74", "R75_84", "R85p"]
REQUIRED_COLUMNS = ["CountryCode", "Sex", "Year", "Week"] + RATE_COLUMNS

# Reusable command line arguments for the data source.
argument_parser = argparse.ArgumentParser(add_help=False)
arg_group = argument_parser.add_argument_group("STMF data")
arg_group.add_argument(
    "--stmf_source",
    action="append",
    help="CSV path or URL (repeatable; default: local copies, then HMD)",
)

logger = logging.getLogger("asmr.fetch_hmd_stmf")


def _text(value):
    return "" if pandas.isna(value) else str(value).strip()


def _rows_matching_header(text):
    """Returns text without comments or rows whose field count differs
    from the header's, and the number of such rows dropped."""

    lines = [
        line
        for line in text.splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    ]
    if not lines:
        return "", 0

    commas = lines[0].count(",")
    kept = [lines[0]] + [r for r in lines[1:] if r.count(",") == commas]
    return "\n".join(kept) + "\n", len(lines) - len(kept)


def read_stmf_csv(text):
    """Returns a list of Observation parsed from STMF CSV text."""

    text, dropped = _rows_matching_header(text)
    if dropped:
        warnings.warn(f"Skipped {dropped} STMF rows with wrong column count")

    df = pandas.read_csv(
        io.StringIO(text),
        dtype=str,
        keep_default_na=False,
        na_values=[""],
        skipinitialspace=True,
    )
    df.columns = df.columns.str.strip()
    df.drop(columns=[c for c in IGNORED_COLUMNS if c in df], inplace=True)

    missing = [c for c in REQUIRED_COLUMNS if c not in df]
    if missing:
        raise ValueError(f"Missing STMF columns: {', '.join(missing)}")

    year = pandas.to_numeric(df.Year, errors="coerce")
    week = pandas.to_numeric(df.Week, errors="coerce")
    bad = year.isna() | week.isna()
    if bad.any():
        warnings.warn(f"Skipped {bad.sum()} STMF rows with bad Year/Week")

    df = df[~bad].assign(
        Year=year[~bad].astype(int), Week=week[~bad].astype(int)
    )
    rates = df[RATE_COLUMNS].apply(pandas.to_numeric, errors="coerce")

    observations = []
    for row, band_rates in zip(
        df.itertuples(index=False), rates.itertuples(index=False)
    ):
        try:
            obs = make_observation(
                country_code=_text(row.CountryCode),
                sex=_text(row.Sex),
                year=row.Year,
                week=row.Week,
                rates=AgeBandRates(
                    *(None if pandas.isna(r) else float(r) for r in band_rates)
                ),
            )
        except ValueError as e:
            warnings.warn(f"Bad STMF row: {e}")
            continue
        if obs is not None:
            observations.append(obs)

    logging.info(
        f"Processed {len(observations)} valid rows from {len(df)} total rows"
    )
    return observations


def _is_url(source):
    return source.startswith(("http://", "https://"))


def _read_source(session, source):
    if _is_url(source):
        response = session.get(source)
        response.raise_for_status()
        return response.text
    return pathlib.Path(source).read_text()


def _load_source(session, source):
    logging.info(f"Loading STMF data from {source}...")
    return read_stmf_csv(_read_source(session, source))


def get_observations(session, sources=None):
    """Returns Observations from the first readable source. Parsed
    downloads are cached alongside the HTTP cache."""

    session = session or requests.Session()
    sources = sources or DEFAULT_SOURCES
    for source in sources:
        load = functools.partial(_load_source, session, source)
        try:
            if _is_url(source):
                key = f"{source}:observations"
                return cache_policy.cached_pickle(session, key, load)
            return load()
        except (OSError, requests.RequestException) as e:
            logger.info(f"Cannot load {source}: {e}")

    raise FileNotFoundError(f"Unable to load STMF data from: {sources}")


if __name__ == "__main__":
    from asmr import country_data
    from asmr import logging_policy

    parser = argparse.ArgumentParser(
        parents=[
            cache_policy.argument_parser,
            logging_policy.argument_parser,
            argument_parser,
        ]
    )
    args = parser.parse_args()
    logging_policy.apply_args(args)
    session = cache_policy.new_session(args)

    observations = get_observations(session, args.stmf_source)
    by_country = country_data.group_by_country(observations)
    print(f"=== {len(by_country)} COUNTRIES ===")
    for series in by_country.values():
        print(series.debug_line())
