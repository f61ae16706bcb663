"""HTTP response caching for package and index downloads."""

from __future__ import annotations

import base64
import os
import posixpath
import tempfile
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import quote, quote_plus, unquote, urlsplit

import requests

from .apkindex import APKINDEX_FILENAME, INDEX_FILENAME

ETAG_HINT_HEADER = "I-Cant-Believe-Its-Not-If-None-Match"
_CHUNK_SIZE = 64 * 1024


def _go_clean(path: str) -> str:
    """Lexically clean a slash-separated path; the empty path becomes '.'."""
    if not path:
        return "."
    cleaned = posixpath.normpath(path)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _go_join(*parts: str) -> str:
    present = [part for part in parts if part]
    if not present:
        return ""
    return _go_clean("/".join(present))


def _go_base(path: str) -> str:
    if not path:
        return "."
    path = path.rstrip("/")
    if not path:
        return "/"
    return path.rsplit("/", 1)[-1]


def _go_dir(path: str) -> str:
    return _go_clean(path[: path.rfind("/") + 1])


def _url_string(scheme: str, netloc: str, path: str) -> str:
    out = ""
    if scheme:
        out += scheme + ":"
    if scheme or netloc:
        if netloc or path:
            out += "//"
        out += netloc
    if path and netloc and not path.startswith("/"):
        out += "/"
    return out + quote(path, safe="$&+,/:;=@")


class _SingleFlight:
    """Coalesces concurrent calls that share a key into one execution."""

    class _Call:
        def __init__(self) -> None:
            self.done = threading.Event()
            self.result: Any = None
            self.error: Optional[BaseException] = None

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: Dict[str, "_SingleFlight._Call"] = {}

    def do(self, key: str, fn: Callable[[], Any]) -> Any:
        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if leader:
                call = self._Call()
                self._calls[key] = call
        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.result
        try:
            call.result = fn()
            return call.result
        except BaseException as exc:
            call.error = exc
            raise
        finally:
            with self._lock:
                del self._calls[key]
            call.done.set()


class Cache:
    """State shared between transports: remembered HEAD responses and request coalescing.

    With ``etag`` true, HEAD responses are kept for the life of the object, which
    suits short-lived processes that build many images at once. With it false,
    concurrent requests for the same resource are still coalesced.
    """

    def __init__(self, etag: bool = True) -> None:
        self._etags: Optional[Dict[str, "CachedResponse"]] = {} if etag else None
        self._lock = threading.Lock()
        self.head_flight = _SingleFlight()
        self.get_flight = _SingleFlight()

    def load(self, cache_file: str) -> Optional["CachedResponse"]:
        """Return the remembered HEAD response for a cache file, if any."""
        if self._etags is None:
            return None
        with self._lock:
            return self._etags.get(cache_file)

    def store(self, cache_file: str, response: "CachedResponse") -> None:
        """Remember a HEAD response for a cache file when etag caching is on."""
        if self._etags is None:
            return
        with self._lock:
            self._etags[cache_file] = response


@dataclass
class CachedResponse:
    """A response served from disk or taken from the network."""

    status_code: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    path: Optional[str] = None
    data: bytes = b""
    content_length: int = -1

    def read(self) -> bytes:
        """Return the whole body."""
        if self.path is not None:
            with open(self.path, "rb") as handle:
                return handle.read()
        return self.data


def _from_wrapped(response: Any) -> CachedResponse:
    content = response.content or b""
    return CachedResponse(
        status_code=response.status_code,
        headers=dict(response.headers or {}),
        data=content,
        content_length=len(content),
    )


def _pop_header(headers: Dict[str, str], name: str) -> str:
    value = ""
    for key in [key for key in headers if key.lower() == name.lower()]:
        value = value or headers.pop(key)
    return value


class CacheTransport:
    """Fetches URLs through an on-disk cache rooted at ``root``."""

    def __init__(
        self,
        root: str,
        wrapped: Any = None,
        cache: Optional[Cache] = None,
        offline: bool = False,
        etag_required: bool = False,
    ) -> None:
        self.root = root
        self.wrapped = wrapped if wrapped is not None else requests.Session()
        self.cache = cache if cache is not None else Cache(etag=False)
        self.offline = offline
        self.etag_required = etag_required

    def fetch(self, url: str, method: str = "GET", headers: Optional[Mapping[str, str]] = None) -> CachedResponse:
        """Answer a request from the cache, fetching and storing it as needed."""
        method = method.upper()
        headers = dict(headers or {})
        try:
            cache_file = cache_path_from_url(self.root, url)
        except ValueError as exc:
            raise ValueError(f"invalid cache path based on URL: {exc}") from exc

        if not self.etag_required:
            if os.path.exists(cache_file):
                return CachedResponse(status_code=200, path=cache_file)
            if self.offline:
                raise FileNotFoundError(f"failed to read {cache_file!r} in offline cache")
            # Packages fetched here are cached later by whoever installs them.
            return self._forward(method, url, headers)

        if self.offline:
            return self.fetch_offline(cache_file)
        return self._fetch_and_cache(url, method, headers, cache_file)

    def fetch_offline(self, cache_file: str) -> CachedResponse:
        """Serve the most recently modified cached entry for a cache file."""
        cache_dir = cache_dir_from_file(cache_file)
        try:
            entries = sorted(os.scandir(cache_dir), key=lambda entry: entry.name)
        except OSError as exc:
            raise FileNotFoundError(f"listing {cache_dir!r} for offline cache: {exc}") from exc
        if not entries:
            raise FileNotFoundError(f"no offline cached entries for {cache_dir}")

        newest = entries[0]
        newest_stat = newest.stat()
        for entry in entries[1:]:
            entry_stat = entry.stat()
            if entry_stat.st_mtime_ns > newest_stat.st_mtime_ns:
                newest, newest_stat = entry, entry_stat

        return CachedResponse(
            status_code=200,
            path=os.path.join(cache_dir, newest.name),
            content_length=newest_stat.st_size,
        )

    def _forward(self, method: str, url: str, headers: Dict[str, str]) -> CachedResponse:
        return _from_wrapped(self.wrapped.request(method, url, headers=headers))

    def _fetch_and_cache(
        self, url: str, method: str, headers: Dict[str, str], cache_file: str
    ) -> CachedResponse:
        # The hint carries an already-parsed etag so a redundant HEAD can be
        # skipped; it is not a real HTTP header and is never sent.
        initial_etag = _pop_header(headers, ETAG_HINT_HEADER)
        if not initial_etag:
            response = self._head(url, headers, cache_file)
            if method == "HEAD":
                return response
            etag = etag_from_headers(response.headers)
            if etag is None:
                return self._forward(method, url, headers)
            initial_etag = etag

        etag_file = self._get(url, method, headers, cache_file, initial_etag)
        try:
            size = os.path.getsize(etag_file)
        except OSError as exc:
            raise OSError(f"stat({etag_file!r}): {exc}") from exc
        return CachedResponse(status_code=200, path=etag_file, content_length=size)

    def _head(self, url: str, headers: Dict[str, str], cache_file: str) -> CachedResponse:
        cached = self.cache.load(cache_file)
        if cached is not None:
            return cached

        def work() -> CachedResponse:
            response = self.wrapped.request("HEAD", url, headers=dict(headers))
            try:
                result = _from_wrapped(response)
            finally:
                close = getattr(response, "close", None)
                if close is not None:
                    close()
            self.cache.store(cache_file, result)
            return result

        return self.cache.head_flight.do(cache_file, work)

    def _get(
        self, url: str, method: str, headers: Dict[str, str], cache_file: str, initial_etag: str
    ) -> str:
        def placer(response: Any) -> str:
            final_etag = etag_from_headers(response.headers or {})
            if final_etag is None:
                raise RuntimeError(
                    f"GET response did not contain an etag, but HEAD returned {initial_etag!r}"
                )
            return cache_file_from_etag(cache_file, final_etag)

        def work() -> str:
            etag_file = cache_file_from_etag(cache_file, initial_etag)
            if os.path.exists(etag_file):
                return etag_file
            return self._retrieve_and_save(url, method, headers, placer)

        return self.cache.get_flight.do(cache_file, work)

    def _retrieve_and_save(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        placer: Callable[[Any], str],
    ) -> str:
        response = self.wrapped.request(method, url, headers=headers, stream=True)
        try:
            if response.status_code != 200:
                raise RuntimeError(f"unexpected status code {response.status_code}")
            target = placer(response)
            directory = os.path.dirname(target)
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as exc:
                raise OSError(f"unable to create cache directory: {exc}") from exc

            fd, tmp_name = tempfile.mkstemp(suffix=".tmp", dir=directory)
            try:
                with os.fdopen(fd, "wb") as out:
                    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                        if chunk:
                            out.write(chunk)
                # Renaming a fully written file populates the cache atomically.
                os.replace(tmp_name, target)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
            return target
        finally:
            close = getattr(response, "close", None)
            if close is not None:
                close()


def cache_path_from_url(root: str, url: str) -> str:
    """Return where a URL is cached under ``root``.

    The last two path levels are kept as directories (for example
    ``x86_64/baz.apk``); everything before them, host included, becomes one
    URL-escaped directory.
    """
    parts = urlsplit(url)
    path = unquote(parts.path)
    filename = _go_base(path)
    arch_dir = _go_dir(path)
    directory = _go_base(arch_dir)
    repo_dir = _go_dir(arch_dir)

    repo_key = quote_plus(_url_string(parts.scheme, parts.netloc, repo_dir), safe="")
    cache_file = _go_clean(_go_join(root, repo_key, directory, filename))
    clean_root = _go_clean(root)
    if not cache_file.startswith(clean_root):
        raise ValueError(f"cache file {cache_file} is not within root {clean_root}")
    return cache_file


def cache_dir_from_file(cache_file: str) -> str:
    """Return the directory holding the cached variants of a cache file."""
    if cache_file.endswith(INDEX_FILENAME):
        return _go_join(_go_dir(cache_file), APKINDEX_FILENAME)
    return _go_dir(cache_file)


def cache_file_from_etag(cache_file: str, etag: str) -> str:
    """Return the content-addressed path for a cache file at a given etag."""
    cache_dir = _go_dir(cache_file)
    ext = ".etag"
    if cache_file.endswith(INDEX_FILENAME):
        cache_dir = _go_join(cache_dir, APKINDEX_FILENAME)
        ext = ".tar.gz"

    abs_path = os.path.abspath(_go_join(cache_dir, etag + ext))
    if not abs_path.startswith(cache_dir):
        raise ValueError(f"unsafe etag value: {etag!r}")
    return abs_path


def etag_from_headers(headers: Mapping[str, Any]) -> Optional[str]:
    """Return the response etag as a filename-safe base32 string, or None."""
    value: Any = None
    for key, candidate in headers.items():
        if key.lower() == "etag":
            value = candidate
            break
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if not value:
        return None
    etag = str(value).strip('"')
    # base32 rather than base64 so names survive case-insensitive filesystems
    encoded = base64.b32encode(etag.encode("utf-8")).decode("ascii")
    return encoded or None