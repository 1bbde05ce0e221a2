"""Cache store backends."""

from .base import CacheStore, encode_key
from .file_store import FileCacheStore
from .http_store import HttpCacheStore


def create_store(path: str, timeout: float = 5.0) -> CacheStore:
    if path.startswith(("http://", "https://")):
        return HttpCacheStore(path, timeout=timeout)
    return FileCacheStore(path)


__all__ = ["CacheStore", "FileCacheStore", "HttpCacheStore", "create_store", "encode_key"]
