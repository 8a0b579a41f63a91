"""HTTP caching for data downloads, plus a cache for parsed results."""

import argparse
import contextlib
import datetime
import email.utils
import logging
import pathlib
import pickle

import cachecontrol
import cachecontrol.caches.file_cache
import cachecontrol.heuristics
import pandas
import requests

# Reusable command line arguments for data fetching.
argument_parser = argparse.ArgumentParser(add_help=False)
argument_group = argument_parser.add_argument_group("data caching")
argument_group.add_argument("--debug_http", action="store_true")
argument_group.add_argument(
    "--cache_time", type=pandas.Timedelta, default=pandas.Timedelta(days=1)
)
argument_group.add_argument(
    "--cache_dir",
    type=pathlib.Path,
    default=pathlib.Path.home() / "asmr_cache",
)

logger = logging.getLogger("asmr.cache_policy")


class _FixedLifetime(cachecontrol.heuristics.BaseHeuristic):
    """Keeps every response for a fixed time, whatever the server says.
    STMF files are republished weekly without useful cache headers."""

    def __init__(self, lifetime):
        self.lifetime = lifetime

    def update_headers(self, response):
        vary = response.headers.get("vary")
        expires = datetime.datetime.now() + self.lifetime
        return {
            "vary": "" if vary in (None, "*") else vary,
            "expires": email.utils.formatdate(
                expires.timestamp(), usegmt=True
            ),
            "cache-control": "public",
        }

    def warning(self, response):
        return f"110 - Automatically cached for {self.lifetime}."


def new_session(args):
    """Returns a new Session with caching per supplied command line args."""

    if args.debug_http:
        for name in ("urllib3", "cachecontrol", logger.name):
            logging.getLogger(name).setLevel(logging.DEBUG)

    session = requests.Session()
    if not args.cache_time:
        return session

    logger.debug(f"Caching downloads for {args.cache_time} in {args.cache_dir}")
    args.cache_dir.mkdir(parents=True, exist_ok=True)
    adapter = cachecontrol.CacheControlAdapter(
        cache=cachecontrol.caches.file_cache.FileCache(args.cache_dir),
        heuristic=_FixedLifetime(args.cache_time),
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def cached_path(session, key):
    """Returns a cache file path for derived data keyed by a URL-like key,
    purging it if stale, or None if session does not cache to files."""

    adapter = session.get_adapter(key) if session is not None else None
    if not isinstance(adapter, cachecontrol.CacheControlAdapter):
        return None

    cache, heuristic = adapter.cache, adapter.heuristic
    if not isinstance(
        cache, cachecontrol.caches.file_cache.FileCache
    ) or not isinstance(heuristic, _FixedLifetime):
        return None

    path = pathlib.Path(
        cachecontrol.caches.file_cache.url_to_file_path(key, cache)
    )
    if not path.exists():
        logger.debug(f"No cached data: {key}")
        return path

    modified = datetime.datetime.fromtimestamp(path.stat().st_mtime)
    age = datetime.datetime.now() - modified
    if age > heuristic.lifetime:
        logger.debug(f"Purge cached data ({age} old): {key}\n  {path}")
        path.unlink()
    return path


def cached_pickle(session, key, build):
    """Returns build(), reusing the pickled result stored under key while
    the session's cache considers it fresh."""

    path = cached_path(session, key)
    if path is not None and path.exists():
        logger.debug(f"Loading cached result: {key}")
        with path.open(mode="rb") as file:
            return pickle.load(file)

    value = build()
    if path is not None:
        with temp_to_rename(path) as file:
            pickle.dump(value, file)
    return value


@contextlib.contextmanager
def temp_to_rename(path, mode="wb"):
    """Yields a temporary file that replaces path on success."""

    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f"tmp.{path.name}")
    try:
        with temp_path.open(mode=mode) as file:
            yield file
        temp_path.replace(path)
    finally:
        temp_path.unlink(missing_ok=True)
