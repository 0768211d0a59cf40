"""Remote data cache for Pressroom.

Templates can pull JSON from remote URLs during rendering (``get_json``).
Responses are cached on disk in the ``getjson`` cache directory and reused
across builds until they expire (``caches.getjson.maxAge``) or are
invalidated.

Fetching is single-flight per URL: concurrent callers asking for the same URL
wait for one request, while distinct URLs are fetched in parallel. A failure
is remembered for the rest of the build, so a URL is requested at most once
per build.

Failures are tagged with error identifiers. If one of them is listed in
``ignoreErrors`` the failure is downgraded to a warning and an empty result is
returned; otherwise FetchError is raised to the caller.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import tempfile
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import requests

from .errors import FetchError

if TYPE_CHECKING:
    from .config import CachePolicy
    from .report import BuildReport

logger = logging.getLogger(__name__)

ERROR_REMOTE = "error-remote-getjson"
ERROR_TIMEOUT = "error-remote-timeout"
ERROR_CONNECTION = "error-remote-connection"
ERROR_HTTP = "error-remote-http"
ERROR_DECODE = "error-remote-decode"

USER_AGENT = "pressroom"


@dataclass(frozen=True)
class CacheEntry:
    """A cached response.

    Attributes:
        url: Source URL.
        fetched_at: Unix timestamp of the fetch.
        payload: Response body.
        path: File holding the payload.
    """

    url: str
    fetched_at: float
    payload: bytes
    path: Path


def cache_key(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


class RemoteDataCache:
    """Fetches remote resources and caches them on disk.

    Attributes:
        policy: Cache directory and expiry.
        ignore_errors: Error identifiers downgraded to warnings.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        policy: CachePolicy,
        report: BuildReport,
        ignore_errors: frozenset[str] = frozenset(),
        timeout: float = 30.0,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.policy = policy
        self.report = report
        self.ignore_errors = ignore_errors
        self.timeout = timeout
        self._session = session
        self._clock = clock
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._failures: dict[str, FetchError] = {}

    @property
    def directory(self) -> Path:
        return self.policy.directory

    @property
    def enabled(self) -> bool:
        return self.policy.max_age != 0

    def _lock_for(self, url: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(url)
            if lock is None:
                lock = self._locks[url] = threading.Lock()
            return lock

    def _paths(self, url: str) -> tuple[Path, Path]:
        key = cache_key(url)
        return self.directory / f"{key}.json", self.directory / f"{key}.bin"

    def _is_fresh(self, entry: CacheEntry) -> bool:
        if self.policy.max_age < 0:
            return True
        return self._clock() - entry.fetched_at < self.policy.max_age

    def read_entry(self, url: str) -> CacheEntry | None:
        """Return the cached entry for a URL, fresh or not."""
        meta_path, payload_path = self._paths(url)
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
            payload = payload_path.read_bytes()
        except (OSError, ValueError):
            return None
        if meta.get("url") != url:
            return None
        return CacheEntry(url, float(meta.get("fetched_at", 0)), payload, payload_path)

    def _write_atomic(self, path: Path, data: bytes) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _write_entry(self, url: str, payload: bytes) -> CacheEntry:
        self.directory.mkdir(parents=True, exist_ok=True)
        meta_path, payload_path = self._paths(url)
        fetched_at = self._clock()
        self._write_atomic(payload_path, payload)
        meta = {"url": url, "fetched_at": fetched_at, "size": len(payload)}
        self._write_atomic(meta_path, json.dumps(meta, sort_keys=True).encode("utf-8"))
        return CacheEntry(url, fetched_at, payload, payload_path)

    def _download(self, url: str) -> bytes:
        session = self._session or requests
        try:
            resp = session.get(url, timeout=self.timeout, headers={"User-Agent": USER_AGENT})
            resp.raise_for_status()
        except requests.Timeout as exc:
            raise FetchError(
                url, (ERROR_REMOTE, ERROR_TIMEOUT), f"timed out after {self.timeout:g}s"
            ) from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise FetchError(
                url, (ERROR_REMOTE, ERROR_HTTP), f"HTTP error {status}", status=status
            ) from exc
        except requests.RequestException as exc:
            raise FetchError(url, (ERROR_REMOTE, ERROR_CONNECTION), str(exc)) from exc
        return resp.content

    def _handle_failure(self, error: FetchError) -> bytes:
        if error.is_suppressed(self.ignore_errors):
            logger.warning("Ignoring remote data error: %s", error)
            self.report.warn(error.url, f"ignored remote data error: {error.message}", error)
            return b""
        raise error

    def fetch(self, url: str) -> bytes:
        """Return the content of a URL, from cache when fresh.

        Returns:
            Response body, or ``b""`` when the failure is suppressed.

        Raises:
            FetchError: If the fetch fails and its error is not suppressed.
        """
        with self._lock_for(url):
            failure = self._failures.get(url)
            if failure is not None:
                if failure.is_suppressed(self.ignore_errors):
                    return b""
                raise failure
            if self.enabled:
                entry = self.read_entry(url)
                if entry is not None and self._is_fresh(entry):
                    logger.debug("Cache hit for %s", url)
                    return entry.payload
            logger.debug("Fetching %s", url)
            try:
                payload = self._download(url)
            except FetchError as exc:
                self._failures[url] = exc
                return self._handle_failure(exc)
            if self.enabled:
                self._write_entry(url, payload)
            return payload

    def get_json(self, url: str) -> Any:
        """Fetch a URL and decode it as JSON.

        Returns:
            The decoded value, or None when the failure is suppressed.

        Raises:
            FetchError: If the fetch or decoding fails and is not suppressed.
        """
        payload = self.fetch(url)
        if not payload:
            return None
        try:
            return json.loads(payload)
        except ValueError as exc:
            error = FetchError(url, (ERROR_REMOTE, ERROR_DECODE), f"invalid JSON: {exc}")
            error.__cause__ = exc
            with self._lock_for(url):
                self._failures[url] = error
            self.invalidate(url)
            self._handle_failure(error)
            return None

    def get_text(self, url: str) -> str:
        """Fetch a URL and decode it as UTF-8 text."""
        return self.fetch(url).decode("utf-8", errors="replace")

    def invalidate(self, url: str) -> None:
        """Drop the cached entry for a URL."""
        for path in self._paths(url):
            path.unlink(missing_ok=True)

    def clear(self) -> None:
        """Remove the whole cache directory."""
        if self.directory.exists():
            shutil.rmtree(self.directory)
