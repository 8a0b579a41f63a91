import pytest

from asmr import cache_policy

KEY = "https://example.org/stmf.csv:observations"


def _session(tmp_path, *argv):
    args = cache_policy.argument_parser.parse_args(
        ["--cache_dir", str(tmp_path), *argv]
    )
    return cache_policy.new_session(args)


def test_cached_pickle_reuses_fresh_results(tmp_path):
    session = _session(tmp_path)
    calls = []

    def build():
        calls.append(1)
        return ["parsed", len(calls)]

    assert cache_policy.cached_pickle(session, KEY, build) == ["parsed", 1]
    assert cache_policy.cached_pickle(session, KEY, build) == ["parsed", 1]
    assert len(calls) == 1
    assert cache_policy.cached_path(session, KEY).exists()


def test_stale_results_are_rebuilt(tmp_path):
    session = _session(tmp_path, "--cache_time", "1us")
    cache_policy.cached_pickle(session, KEY, lambda: "old")
    assert cache_policy.cached_pickle(session, KEY, lambda: "new") == "new"


def test_uncached_sessions_just_build():
    assert cache_policy.cached_path(None, KEY) is None
    assert cache_policy.cached_pickle(None, KEY, lambda: 42) == 42


def test_temp_file_is_discarded_on_error(tmp_path):
    target = tmp_path / "sub" / "result.pickle"
    with pytest.raises(RuntimeError):
        with cache_policy.temp_to_rename(target) as file:
            file.write(b"partial")
            raise RuntimeError("interrupted")
    assert not target.exists()
    assert list(target.parent.iterdir()) == []
