import threading
from typing import Dict, List, Optional
from wsgiref.util import setup_testing_defaults

import pytest

from emergency_cache.exceptions import CacheStoreError
from emergency_cache.storage import CacheStore


class MemoryStore(CacheStore):
    def __init__(self, data: Optional[Dict[str, bytes]] = None, fail_get: bool = False, fail_put: bool = False) -> None:
        self.data: Dict[str, bytes] = dict(data or {})
        self.fail_get = fail_get
        self.fail_put = fail_put
        self.gets: List[str] = []
        self.puts: List[str] = []
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            self.gets.append(key)
        if self.fail_get:
            raise CacheStoreError(f"Error getting cache item for key {key}: boom", key=key)
        return self.data.get(key)

    def put(self, key, payload):
        with self._lock:
            self.puts.append(key)
        if self.fail_put:
            raise CacheStoreError(f"Error setting cache item for key {key}: boom", key=key)
        with self._lock:
            self.data[key] = payload


class FakeUpstream:
    def __init__(self, status="200 OK", headers=None, body=b"ok"):
        self.status = status
        self.headers = list(headers or [("Content-Type", "text/plain")])
        self.body = body
        self.calls = 0

    def __call__(self, environ, start_response):
        self.calls += 1
        start_response(self.status, list(self.headers))
        return [self.body]


def call_app(app, path="/", query="", host="a.com", method="GET", headers=None):
    environ = {}
    setup_testing_defaults(environ)
    environ.update(REQUEST_METHOD=method, PATH_INFO=path, QUERY_STRING=query, HTTP_HOST=host)
    for name, value in (headers or {}).items():
        environ["HTTP_" + name.upper().replace("-", "_")] = value

    captured = {}
    chunks = []

    def start_response(status, response_headers, exc_info=None):
        captured["status"] = status
        captured["headers"] = list(response_headers)
        return chunks.append

    result = app(environ, start_response)
    try:
        for chunk in result:
            chunks.append(chunk)
    finally:
        close = getattr(result, "close", None)
        if close is not None:
            close()
    return captured["status"], captured["headers"], b"".join(chunks)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def make_store():
    return MemoryStore


@pytest.fixture
def make_upstream():
    return FakeUpstream


@pytest.fixture
def wsgi_call():
    return call_app
