"""HTTP response cache middleware with a stale-serving emergency mode."""

from .cache import CachedResponse, HeaderMap
from .config import EmergencyCacheConfig, create_config, load_config
from .decision_engine import CacheDecision, DecisionEngine, derive_key, is_cacheable
from .exceptions import CachePayloadError, CacheStoreError, ConfigError, EmergencyCacheError
from .interceptor import EmergencyCacheMiddleware, ResponseCapturer
from .persister import BackgroundPersister
from .storage import CacheStore, FileCacheStore, HttpCacheStore, create_store, encode_key
from .upstream import ProxyUpstream

__version__ = "1.0.0"

__all__ = [
    "BackgroundPersister",
    "CacheDecision",
    "CachePayloadError",
    "CacheStore",
    "CacheStoreError",
    "CachedResponse",
    "ConfigError",
    "DecisionEngine",
    "EmergencyCacheConfig",
    "EmergencyCacheError",
    "EmergencyCacheMiddleware",
    "FileCacheStore",
    "HeaderMap",
    "HttpCacheStore",
    "ProxyUpstream",
    "ResponseCapturer",
    "create_config",
    "create_store",
    "derive_key",
    "encode_key",
    "is_cacheable",
    "load_config",
]
