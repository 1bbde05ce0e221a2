from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .cache import CachedResponse
from .config import EmergencyCacheConfig
from .exceptions import CachePayloadError
from .log_utils import LOG_PREFIX, logger

BYPASS_VALUE = "no-cache"
CACHEABLE_VALUE = "true"
BUILD_PATH_PREFIX = "/build/"


class CacheDecision(str, Enum):
    BYPASS = "bypass"
    EMERGENCY_LOOKUP = "emergency_lookup"
    EMERGENCY_LOOKUP_NO_QUERY = "emergency_lookup_no_query"
    EMERGENCY_MISS_FORWARD = "emergency_miss_forward"
    NORMAL_FORWARD = "normal_forward"
    NORMAL_FORWARD_AND_STORE = "normal_forward_and_store"


def derive_key(host: str, path: str, raw_query: str, include_query: bool) -> str:
    key = host + path
    if raw_query and include_query:
        key += "?" + raw_query
    return key


def is_cacheable(request_path: str, response_status: Optional[int], response_header_value: str) -> bool:
    if response_status != 200:
        return False
    return response_header_value == CACHEABLE_VALUE or request_path.startswith(BUILD_PATH_PREFIX)


def header_environ_key(header_name: str) -> str:
    return "HTTP_" + header_name.upper().replace("-", "_")


def _wsgi_str(value: str) -> str:
    # WSGI carries path bytes as latin-1 text
    try:
        return value.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return value


def request_key_parts(environ: Dict[str, Any]) -> Tuple[str, str, str]:
    host = environ.get("HTTP_HOST")
    if not host:
        host = environ.get("SERVER_NAME", "")
        port = str(environ.get("SERVER_PORT", ""))
        scheme = environ.get("wsgi.url_scheme", "http")
        if port and (scheme, port) not in {("http", "80"), ("https", "443")}:
            host = f"{host}:{port}"
    path = _wsgi_str(environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", ""))
    query = environ.get("QUERY_STRING", "")
    return host, path, query


class DecisionEngine:
    def __init__(self, config: EmergencyCacheConfig) -> None:
        self.config = config
        self._bypass_key = header_environ_key(config.bypass_header)

    def is_bypass(self, environ: Dict[str, Any]) -> bool:
        return environ.get(self._bypass_key) == BYPASS_VALUE

    def cache_key(self, environ: Dict[str, Any], include_query: bool) -> str:
        host, path, query = request_key_parts(environ)
        key = derive_key(host, path, query, include_query)
        if self.config.debug:
            logger.debug("%s key: %s", LOG_PREFIX, key)
        return key

    def cacheable(self, request_path: str, status: Optional[int], headers: Any) -> bool:
        if self.config.debug:
            logger.debug("%s cacheable?", LOG_PREFIX)
        marker = headers.get(self.config.cacheable_header, "") if headers is not None else ""
        return is_cacheable(request_path, status, marker)

    def replayable(self, raw: Optional[bytes]) -> Optional[CachedResponse]:
        if not raw:
            return None
        try:
            cached = CachedResponse.from_bytes(raw)
        except CachePayloadError as err:
            logger.warning("%s unreadable cache entry: %s", LOG_PREFIX, err)
            return None
        if cached.status != 200:
            return None
        return cached
