from __future__ import annotations

import threading
from typing import Optional

import requests

from ..exceptions import CacheStoreError
from .base import CacheStore, encode_key


class HttpCacheStore(CacheStore):
    def __init__(self, path: str, timeout: float = 5.0) -> None:
        self.base_url = path.rstrip("/") + "/"
        self.timeout = timeout
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def url_for(self, key: str) -> str:
        return self.base_url + encode_key(key)

    def get(self, key: str) -> Optional[bytes]:
        try:
            res = self.session.get(self.url_for(key), timeout=self.timeout)
        except requests.RequestException as err:
            raise CacheStoreError(f"Error getting cache item for key {key}: {err}", key=key) from err
        if res.status_code != 200:
            return None
        return res.content

    def put(self, key: str, payload: bytes) -> None:
        try:
            res = self.session.put(self.url_for(key), data=payload, timeout=self.timeout)
        except requests.RequestException as err:
            raise CacheStoreError(f"Error setting cache item for key {key}: {err}", key=key) from err
        if not 200 <= res.status_code < 300:
            raise CacheStoreError(
                f"Error setting cache item for key {key}: store answered {res.status_code}",
                key=key,
            )

    def describe(self) -> str:
        return f"http ({self.base_url})"
