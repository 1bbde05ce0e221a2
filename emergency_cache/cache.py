from __future__ import annotations

import base64
import binascii
import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from .exceptions import CachePayloadError


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name}")


class HeaderMap:
    """Ordered header multimap.

    Names keep the spelling they were first added with and the order they were
    first seen in; values keep insertion order per name. Lookups ignore case.
    """

    def __init__(self, items: Optional[Iterable[Tuple[str, str]]] = None) -> None:
        self._names: Dict[str, str] = {}
        self._values: Dict[str, List[str]] = {}
        for name, value in items or ():
            self.add(name, value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HeaderMap":
        headers = cls()
        for name, values in data.items():
            if isinstance(values, str):
                values = [values]
            for value in values:
                headers.add(str(name), str(value))
        return headers

    def add(self, name: str, value: str) -> None:
        folded = name.lower()
        if folded not in self._names:
            self._names[folded] = name
            self._values[folded] = []
        self._values[folded].append(value)

    def get(self, name: str, default: str = "") -> str:
        values = self._values.get(name.lower())
        if not values:
            return default
        return values[0]

    def get_all(self, name: str) -> List[str]:
        return list(self._values.get(name.lower(), []))

    def items(self) -> List[Tuple[str, str]]:
        """Flatten to (name, value) pairs, e.g. for a WSGI header list."""
        pairs: List[Tuple[str, str]] = []
        for folded, name in self._names.items():
            for value in self._values[folded]:
                pairs.append((name, value))
        return pairs

    def to_dict(self) -> Dict[str, List[str]]:
        return {name: list(self._values[folded]) for folded, name in self._names.items()}

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._names

    def __iter__(self) -> Iterator[str]:
        return iter(self._names.values())

    def __len__(self) -> int:
        return len(self._names)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HeaderMap):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"HeaderMap({self.to_dict()!r})"


@dataclass
class CachedResponse:
    status: int
    headers: HeaderMap = field(default_factory=HeaderMap)
    body: bytes = b""
    created_at: int = field(default_factory=lambda: int(time.time()))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "Status": self.status,
            "Headers": self.headers.to_dict(),
            "Body": base64.b64encode(self.body).decode("ascii"),
            "Created": self.created_at,
        }

    def to_bytes(self) -> bytes:
        try:
            return json.dumps(self.to_payload()).encode("utf-8")
        except (TypeError, ValueError) as err:
            raise CachePayloadError(f"Cannot serialize cached response: {err}") from err

    @classmethod
    def from_bytes(cls, raw: bytes) -> "CachedResponse":
        try:
            data = json.loads(raw.decode("utf-8"), parse_constant=_reject_constant)
        except (UnicodeDecodeError, ValueError, RecursionError) as err:
            raise CachePayloadError(f"Cached payload is not valid JSON: {err}") from err
        if not isinstance(data, dict):
            raise CachePayloadError("Cached payload must be a JSON object")

        status = data.get("Status")
        if not isinstance(status, int) or isinstance(status, bool):
            raise CachePayloadError("Cached payload has no integer Status")

        headers = data.get("Headers") or {}
        if not isinstance(headers, dict):
            raise CachePayloadError("Cached payload Headers must be a mapping")

        body = data.get("Body") or ""
        try:
            body_bytes = base64.b64decode(body, validate=True) if body else b""
        except (binascii.Error, TypeError, ValueError) as err:
            raise CachePayloadError(f"Cached payload Body is not base64: {err}") from err

        created = data.get("Created") or 0
        try:
            created_at = int(created)
        except (TypeError, ValueError, OverflowError):
            created_at = 0

        try:
            header_map = HeaderMap.from_dict(headers)
        except TypeError as err:
            raise CachePayloadError(f"Cached payload Headers are malformed: {err}") from err

        return cls(
            status=status,
            headers=header_map,
            body=body_bytes,
            created_at=created_at,
        )
