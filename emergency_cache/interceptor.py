from __future__ import annotations

import time
from http import HTTPStatus
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional
from wsgiref.util import is_hop_by_hop

from .cache import CachedResponse, HeaderMap
from .config import EmergencyCacheConfig
from .decision_engine import CacheDecision, DecisionEngine, request_key_parts
from .exceptions import CachePayloadError, CacheStoreError
from .log_utils import LOG_PREFIX, append_jsonl, logger
from .persister import BackgroundPersister
from .storage import CacheStore, create_store

WSGIApp = Callable[[Dict[str, Any], Callable[..., Any]], Iterable[bytes]]


def _status_line(status: int) -> str:
    try:
        return f"{status} {HTTPStatus(status).phrase}"
    except ValueError:
        return f"{status} Unknown"


class ResponseCapturer:
    """Passes a response through to the client while keeping a copy.

    ``start_response`` and every body chunk are forwarded as soon as they are
    produced. ``on_complete`` runs once the body has been fully iterated and
    closed.
    """

    def __init__(
        self,
        start_response: Callable[..., Any],
        on_complete: Optional[Callable[["ResponseCapturer"], None]] = None,
    ) -> None:
        self._start_response = start_response
        self._on_complete = on_complete
        self._chunks: List[bytes] = []
        self.status: Optional[int] = None
        self.headers = HeaderMap()

    @property
    def body(self) -> bytes:
        return b"".join(self._chunks)

    def start_response(self, status: str, headers: List[Any], exc_info: Any = None) -> Callable[[bytes], Any]:
        write = self._start_response(status, headers, exc_info)
        self.status = int(status.split(" ", 1)[0])
        self.headers = HeaderMap(headers)

        def capturing_write(data: bytes) -> Any:
            self._chunks.append(bytes(data))
            return write(data)

        return capturing_write

    def wrap(self, app_iter: Iterable[bytes]) -> "_CapturingIterable":
        return _CapturingIterable(app_iter, self)

    def _record_chunk(self, chunk: bytes) -> None:
        self._chunks.append(bytes(chunk))

    def _complete(self) -> None:
        if self._on_complete is not None:
            callback, self._on_complete = self._on_complete, None
            callback(self)


class _CapturingIterable:
    def __init__(self, app_iter: Iterable[bytes], capturer: ResponseCapturer) -> None:
        self._app_iter = app_iter
        self._capturer = capturer
        self._exhausted = False

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self._app_iter:
            self._capturer._record_chunk(chunk)
            yield chunk
        self._exhausted = True

    def close(self) -> None:
        try:
            close = getattr(self._app_iter, "close", None)
            if close is not None:
                close()
        finally:
            if self._exhausted:
                self._capturer._complete()


class EmergencyCacheMiddleware:
    def __init__(
        self,
        app: WSGIApp,
        config: EmergencyCacheConfig,
        store: Optional[CacheStore] = None,
        persister: Optional[BackgroundPersister] = None,
    ) -> None:
        self.app = app
        self.config = config
        self.store = store if store is not None else create_store(config.path, timeout=config.store_timeout)
        self.engine = DecisionEngine(config)
        if persister is None and not config.emergency_mode:
            persister = BackgroundPersister(
                self.store,
                workers=config.write_workers,
                max_pending=config.write_queue_size,
                dedupe=config.dedupe_writes,
            )
        self.persister = persister

    def __call__(self, environ: Dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        if self.engine.is_bypass(environ):
            self._record(environ, CacheDecision.BYPASS, "")
            return self.app(environ, start_response)

        key = self.engine.cache_key(environ, True)

        if self.config.emergency_mode:
            return self._serve_emergency(environ, start_response, key)

        if self.config.debug:
            logger.debug("%s emergency mode disabled", LOG_PREFIX)

        capturer = ResponseCapturer(
            start_response,
            on_complete=lambda captured: self._store_response(environ, key, captured),
        )
        return capturer.wrap(self.app(environ, capturer.start_response))

    def close(self, drain: bool = True, timeout: Optional[float] = None) -> None:
        if self.persister is not None:
            self.persister.shutdown(drain=drain, timeout=timeout)

    def __enter__(self) -> "EmergencyCacheMiddleware":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _serve_emergency(self, environ: Dict[str, Any], start_response: Callable[..., Any], key: str) -> Iterable[bytes]:
        if self.config.debug:
            logger.debug("%s get %s", LOG_PREFIX, key)
        cached = self._lookup(key)
        if cached is not None:
            self._record(environ, CacheDecision.EMERGENCY_LOOKUP, key, cached.status)
            return self._replay(cached, start_response)

        stripped_key = self.engine.cache_key(environ, False)
        if stripped_key != key:
            if self.config.debug:
                logger.debug("%s get (no query) %s", LOG_PREFIX, stripped_key)
            cached = self._lookup(stripped_key)
            if cached is not None:
                self._record(environ, CacheDecision.EMERGENCY_LOOKUP_NO_QUERY, stripped_key, cached.status)
                return self._replay(cached, start_response)

        self._record(environ, CacheDecision.EMERGENCY_MISS_FORWARD, key)
        return self.app(environ, start_response)

    def _lookup(self, key: str) -> Optional[CachedResponse]:
        try:
            raw = self.store.get(key)
        except CacheStoreError as err:
            logger.warning("%s %s", LOG_PREFIX, err)
            return None
        except Exception:
            logger.exception("%s unexpected error reading %s", LOG_PREFIX, key)
            return None
        try:
            return self.engine.replayable(raw)
        except Exception:
            logger.exception("%s unexpected error decoding %s", LOG_PREFIX, key)
            return None

    def _replay(self, cached: CachedResponse, start_response: Callable[..., Any]) -> Iterable[bytes]:
        if self.config.debug:
            logger.debug("%s hit", LOG_PREFIX)
        headers = [(name, value) for name, value in cached.headers.items() if not is_hop_by_hop(name)]
        start_response(_status_line(cached.status), headers)
        return [cached.body]

    def _store_response(self, environ: Dict[str, Any], key: str, captured: ResponseCapturer) -> None:
        _, path, _ = request_key_parts(environ)
        if not self.engine.cacheable(path, captured.status, captured.headers):
            if self.config.debug:
                logger.debug("%s response not cacheable", LOG_PREFIX)
            self._record(environ, CacheDecision.NORMAL_FORWARD, key, captured.status)
            return

        cached = CachedResponse(
            status=captured.status or 0,
            headers=captured.headers,
            body=captured.body,
            created_at=int(time.time()),
        )
        try:
            payload = cached.to_bytes()
        except CachePayloadError as err:
            logger.error("%s Error serializing cache item: %s", LOG_PREFIX, err)
            self._record(environ, CacheDecision.NORMAL_FORWARD, key, captured.status)
            return

        if self.persister is not None:
            self.persister.submit(key, payload)
        if self.config.debug:
            logger.debug("%s set %s", LOG_PREFIX, key)
        self._record(environ, CacheDecision.NORMAL_FORWARD_AND_STORE, key, captured.status)

    def _record(self, environ: Dict[str, Any], decision: CacheDecision, key: str, status: Optional[int] = None) -> None:
        log_path = self.config.decision_log_path
        if not log_path:
            return
        append_jsonl(
            log_path,
            {
                "timestamp": int(time.time()),
                "decision": decision.value,
                "key": key,
                "method": environ.get("REQUEST_METHOD", ""),
                "status": status,
            },
        )
