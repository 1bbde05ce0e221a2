from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from typing import Optional


def encode_key(key: str) -> str:
    return base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii")


class CacheStore(ABC):
    """Blob store addressed by cache key.

    ``get`` returns None when nothing is stored under the key. Both operations
    raise :class:`~emergency_cache.exceptions.CacheStoreError` on transport
    failures. Implementations must be safe for concurrent use.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    @abstractmethod
    def put(self, key: str, payload: bytes) -> None:
        raise NotImplementedError

    def describe(self) -> str:
        return self.__class__.__name__
