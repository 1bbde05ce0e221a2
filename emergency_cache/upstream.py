from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Iterable, List, Tuple
from wsgiref.util import is_hop_by_hop

import requests

from .log_utils import LOG_PREFIX, logger

# requests already decoded the body, so these no longer describe it
_DROPPED_RESPONSE_HEADERS = {"content-encoding", "content-length", "transfer-encoding"}


def _request_headers(environ: Dict[str, Any]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for name, value in environ.items():
        if name.startswith("HTTP_"):
            header = name[5:].replace("_", "-").title()
            if not is_hop_by_hop(header):
                headers[header] = value
    if environ.get("CONTENT_TYPE"):
        headers["Content-Type"] = environ["CONTENT_TYPE"]
    if environ.get("CONTENT_LENGTH"):
        headers["Content-Length"] = environ["CONTENT_LENGTH"]
    return headers


def _request_body(environ: Dict[str, Any]) -> bytes:
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    if length <= 0:
        return b""
    return environ["wsgi.input"].read(length)


class ProxyUpstream:
    """WSGI application that relays each request to an origin server."""

    def __init__(self, base_url: str, timeout: float = 30.0, preserve_host: bool = True) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.preserve_host = preserve_host
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        # one session per server thread
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def target_url(self, environ: Dict[str, Any]) -> str:
        path = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
        url = self.base_url + (path or "/")
        query = environ.get("QUERY_STRING", "")
        if query:
            url += "?" + query
        return url

    def __call__(self, environ: Dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        headers = _request_headers(environ)
        if not self.preserve_host:
            headers.pop("Host", None)
        url = self.target_url(environ)
        try:
            res = self.session.request(
                environ.get("REQUEST_METHOD", "GET"),
                url,
                headers=headers,
                data=_request_body(environ) or None,
                timeout=self.timeout,
                allow_redirects=False,
            )
        except requests.RequestException as err:
            logger.error("%s upstream request to %s failed: %s", LOG_PREFIX, url, err)
            body = b"Bad Gateway"
            start_response(
                "502 Bad Gateway",
                [("Content-Type", "text/plain"), ("Content-Length", str(len(body)))],
            )
            return [body]

        body = res.content
        # urllib3 keeps repeated headers (e.g. Set-Cookie) as separate items
        raw_headers = getattr(res.raw, "headers", None) or res.headers
        response_headers: List[Tuple[str, str]] = [
            (name, value)
            for name, value in raw_headers.items()
            if not is_hop_by_hop(name) and name.lower() not in _DROPPED_RESPONSE_HEADERS
        ]
        response_headers.append(("Content-Length", str(len(body))))
        reason = res.reason or "Unknown"
        start_response(f"{res.status_code} {reason}", response_headers)
        return [body]
