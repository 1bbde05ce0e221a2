from __future__ import annotations

from typing import Optional


class EmergencyCacheError(Exception):
    """Base class for errors raised inside the caching layer."""


class CacheStoreError(EmergencyCacheError):
    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.key = key


class CachePayloadError(EmergencyCacheError):
    pass


class ConfigError(EmergencyCacheError):
    pass
