import json
import threading
import time

import pytest
import requests

from pressroom.config import CachePolicy
from pressroom.errors import FetchError
from pressroom.remote import (
    ERROR_DECODE,
    ERROR_HTTP,
    ERROR_REMOTE,
    ERROR_TIMEOUT,
    RemoteDataCache,
    cache_key,
)
from pressroom.report import BuildOutcome, BuildReport


class _Response:
    def __init__(self, content=b"{}", status_code=200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class _Session:
    """Stands in for requests.Session, counting calls per URL."""

    def __init__(self, responses=None, error=None, delay=0.0):
        self.responses = responses or {}
        self.error = error
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, timeout=None, headers=None):
        with self._lock:
            self.calls.append(url)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.responses.get(url, _Response(b"", 404))


def make_cache(tmp_path, session, max_age=-1, ignore=(), clock=time.time):
    report = BuildReport()
    cache = RemoteDataCache(
        CachePolicy("getjson", tmp_path / "getjson", max_age),
        report,
        ignore_errors=frozenset(ignore),
        timeout=5,
        session=session,
        clock=clock,
    )
    return cache, report


URL = "https://api.example.org/data.json"


def test_get_json_fetches_and_caches(tmp_path):
    session = _Session({URL: _Response(b'{"answer": 42}')})
    cache, report = make_cache(tmp_path, session)
    assert cache.get_json(URL) == {"answer": 42}
    key = cache_key(URL)
    assert (tmp_path / "getjson" / f"{key}.bin").read_bytes() == b'{"answer": 42}'
    meta = json.loads((tmp_path / "getjson" / f"{key}.json").read_text())
    assert meta["url"] == URL

    # A second build reuses the cached entry without a request
    other_session = _Session()
    cache2, _ = make_cache(tmp_path, other_session)
    assert cache2.get_json(URL) == {"answer": 42}
    assert other_session.calls == []
    assert report.outcome is BuildOutcome.SUCCESS


def test_expired_entry_is_refetched(tmp_path):
    now = [1000.0]
    session = _Session({URL: _Response(b"[1]")})
    cache, _ = make_cache(tmp_path, session, max_age=60, clock=lambda: now[0])
    assert cache.get_json(URL) == [1]

    now[0] += 30
    cache, _ = make_cache(tmp_path, session, max_age=60, clock=lambda: now[0])
    cache.get_json(URL)
    assert len(session.calls) == 1

    now[0] += 60
    cache, _ = make_cache(tmp_path, session, max_age=60, clock=lambda: now[0])
    cache.get_json(URL)
    assert len(session.calls) == 2


def test_max_age_zero_disables_cache(tmp_path):
    session = _Session({URL: _Response(b"[]")})
    cache, _ = make_cache(tmp_path, session, max_age=0)
    cache.get_json(URL)
    assert not (tmp_path / "getjson").exists()


def test_single_flight_per_url(tmp_path):
    session = _Session({URL: _Response(b'{"a": 1}')}, delay=0.05)
    cache, _ = make_cache(tmp_path, session)
    results = []

    def worker():
        results.append(cache.get_json(URL))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert results == [{"a": 1}] * 8
    assert session.calls == [URL]


def test_http_error_raises(tmp_path):
    session = _Session({URL: _Response(b"nope", 500)})
    cache, report = make_cache(tmp_path, session)
    with pytest.raises(FetchError) as excinfo:
        cache.get_json(URL)
    assert excinfo.value.status == 500
    assert excinfo.value.error_ids == (ERROR_REMOTE, ERROR_HTTP)
    # Failures are remembered for the rest of the build
    with pytest.raises(FetchError):
        cache.get_json(URL)
    assert session.calls == [URL]
    assert report.warnings == []


def test_suppressed_failure_becomes_warning(tmp_path):
    session = _Session(error=requests.Timeout("slow"))
    cache, report = make_cache(tmp_path, session, ignore=[ERROR_REMOTE])
    assert cache.get_json(URL) is None
    assert cache.get_json(URL) is None
    assert report.outcome is BuildOutcome.SUCCESS_WITH_WARNINGS
    [warning] = report.warnings
    assert warning.source == URL
    assert ERROR_TIMEOUT in warning.error.error_ids


def test_connection_error(tmp_path):
    session = _Session(error=requests.ConnectionError("refused"))
    cache, _ = make_cache(tmp_path, session)
    with pytest.raises(FetchError, match="refused"):
        cache.fetch(URL)


def test_invalid_json(tmp_path):
    session = _Session({URL: _Response(b"<html>")})
    cache, report = make_cache(tmp_path, session, ignore=[ERROR_DECODE])
    assert cache.get_json(URL) is None
    assert "invalid JSON" in report.warnings[0].message
    assert cache.read_entry(URL) is None

    strict, _ = make_cache(tmp_path, _Session({URL: _Response(b"<html>")}))
    with pytest.raises(FetchError) as excinfo:
        strict.get_json(URL)
    assert ERROR_DECODE in excinfo.value.error_ids


def test_invalidate_and_clear(tmp_path):
    session = _Session({URL: _Response(b"[]")})
    cache, _ = make_cache(tmp_path, session)
    cache.get_json(URL)
    assert cache.read_entry(URL) is not None
    cache.invalidate(URL)
    assert cache.read_entry(URL) is None
    cache.invalidate(URL)
    cache.clear()
    assert not cache.directory.exists()


def test_get_text(tmp_path):
    session = _Session({URL: _Response("héllo".encode("utf-8"))})
    cache, _ = make_cache(tmp_path, session)
    assert cache.get_text(URL) == "héllo"
