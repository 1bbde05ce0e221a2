from __future__ import annotations

import queue
import threading
from typing import Dict, List, Optional, Set

from .exceptions import CacheStoreError
from .log_utils import LOG_PREFIX, logger
from .storage.base import CacheStore

_STOP = object()


class BackgroundPersister:
    """Writes cache entries off the request path.

    A fixed pool of daemon threads drains a bounded queue. ``submit`` never
    blocks: when the queue is full the write is dropped. Each write is tried
    once and failures are only logged.

    With ``dedupe`` a key takes at most one queue slot and one worker at a
    time. Submits for a key that is already queued or being written replace
    its pending payload, so the newest payload is the one that ends up stored.
    """

    def __init__(
        self,
        store: CacheStore,
        workers: int = 2,
        max_pending: int = 256,
        dedupe: bool = True,
    ) -> None:
        self.store = store
        self.dedupe = dedupe
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=max(1, max_pending))
        self._lock = threading.Lock()
        self._active: Set[str] = set()
        self._latest: Dict[str, bytes] = {}
        self._pending = 0
        self._closed = False
        self._discard = False
        self._threads: List[threading.Thread] = []
        for index in range(max(1, workers)):
            thread = threading.Thread(
                target=self._run,
                daemon=True,
                name=f"emergency-cache-writer-{index}",
            )
            thread.start()
            self._threads.append(thread)

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, key: str, payload: bytes) -> bool:
        with self._lock:
            if self._closed:
                logger.warning("%s persister closed, dropping write for %s", LOG_PREFIX, key)
                return False
            if self.dedupe and key in self._active:
                logger.debug("%s write already pending for %s, keeping newest payload", LOG_PREFIX, key)
                self._latest[key] = payload
                return True
            try:
                self._queue.put_nowait(key if self.dedupe else (key, payload))
            except queue.Full:
                logger.warning("%s write queue full, dropping write for %s", LOG_PREFIX, key)
                return False
            self._pending += 1
            if self.dedupe:
                self._active.add(key)
                self._latest[key] = payload
        return True

    def shutdown(self, drain: bool = True, timeout: Optional[float] = None) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._discard = not drain
        if not drain:
            self._drop_queued()
        for _ in self._threads:
            # queued behind any pending writes
            self._queue.put(_STOP)
        for thread in self._threads:
            thread.join(timeout)

    def _drop_queued(self) -> None:
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if item is not _STOP:
                key = item if isinstance(item, str) else item[0]  # type: ignore[index]
                self._forget(key)
                logger.debug("%s discarding queued write for %s", LOG_PREFIX, key)
            self._queue.task_done()

    def _forget(self, key: str) -> None:
        with self._lock:
            self._release(key)

    def _release(self, key: str) -> None:
        self._pending -= 1
        self._active.discard(key)
        self._latest.pop(key, None)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                if isinstance(item, str):
                    self._write_latest(item)
                    continue
                key, payload = item  # type: ignore[misc]
                if not self._discard:
                    self._write(key, payload)
                self._forget(key)
            finally:
                self._queue.task_done()

    def _write_latest(self, key: str) -> None:
        # payloads submitted during a write are picked up by the next pass
        while True:
            with self._lock:
                payload = None if self._discard else self._latest.pop(key, None)
                if payload is None:
                    self._release(key)
                    return
            self._write(key, payload)

    def _write(self, key: str, payload: bytes) -> None:
        try:
            self.store.put(key, payload)
            logger.debug("%s stored %s (%d bytes)", LOG_PREFIX, key, len(payload))
        except CacheStoreError as err:
            logger.error("%s %s", LOG_PREFIX, err)
        except Exception:
            logger.exception("%s unexpected error storing %s", LOG_PREFIX, key)
