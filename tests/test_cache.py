import base64
import json

import pytest

from emergency_cache.cache import CachedResponse, HeaderMap
from emergency_cache.exceptions import CachePayloadError


def test_round_trip_keeps_all_fields():
    original = CachedResponse(
        status=200,
        headers=HeaderMap.from_dict({"Content-Type": ["text/html"]}),
        body=b"<html>",
        created_at=1000,
    )

    restored = CachedResponse.from_bytes(original.to_bytes())

    assert restored == original
    assert restored.headers.to_dict() == {"Content-Type": ["text/html"]}
    assert restored.body == b"<html>"
    assert restored.created_at == 1000


def test_multi_valued_headers_keep_value_order():
    headers = HeaderMap([("Set-Cookie", "a=1"), ("Content-Type", "text/plain"), ("set-cookie", "b=2")])
    restored = CachedResponse.from_bytes(CachedResponse(status=200, headers=headers, body=b"").to_bytes())

    assert restored.headers.get_all("Set-Cookie") == ["a=1", "b=2"]
    assert restored.headers.items() == [
        ("Set-Cookie", "a=1"),
        ("Set-Cookie", "b=2"),
        ("Content-Type", "text/plain"),
    ]


def test_binary_body_survives():
    body = bytes(range(256))
    restored = CachedResponse.from_bytes(CachedResponse(status=200, body=body, created_at=1).to_bytes())
    assert restored.body == body


def test_payload_layout():
    payload = json.loads(CachedResponse(status=200, body=b"<html>", created_at=1000).to_bytes())
    assert payload == {"Status": 200, "Headers": {}, "Body": "PGh0bWw+", "Created": 1000}


def test_reads_payload_written_elsewhere():
    raw = json.dumps(
        {
            "Status": 200,
            "Headers": {"Content-Type": ["text/html"], "Vary": ["Accept", "Cookie"]},
            "Body": base64.b64encode(b"hello").decode(),
            "Created": 1700000000,
        }
    ).encode()

    cached = CachedResponse.from_bytes(raw)

    assert cached.status == 200
    assert cached.headers.get_all("vary") == ["Accept", "Cookie"]
    assert cached.body == b"hello"
    assert cached.created_at == 1700000000


def test_empty_body_is_null_tolerant():
    cached = CachedResponse.from_bytes(b'{"Status": 200, "Headers": null, "Body": null, "Created": 5}')
    assert cached.body == b""
    assert len(cached.headers) == 0


def test_out_of_range_created_falls_back_to_zero():
    cached = CachedResponse.from_bytes(b'{"Status": 200, "Body": "aGk=", "Created": 1e400}')
    assert cached.status == 200
    assert cached.body == b"hi"
    assert cached.created_at == 0


@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b"[1, 2]",
        b'{"Headers": {}}',
        b'{"Status": "200"}',
        b'{"Status": 200, "Headers": ["a"]}',
        b'{"Status": 200, "Body": "***"}',
        b'{"Status": 200, "Headers": {"X": 5}}',
        b"\xff\xfe",
        b'{"Status": 200, "Headers": {}, "Body": "", "Created": Infinity}',
        b'{"Status": NaN}',
        b"[" * 100000 + b"]" * 100000,
    ],
)
def test_malformed_payloads_raise(raw):
    with pytest.raises(CachePayloadError):
        CachedResponse.from_bytes(raw)


def test_header_map_lookup_ignores_case():
    headers = HeaderMap([("X-Emergency-Cacheable", "true")])
    assert headers.get("x-emergency-cacheable") == "true"
    assert "X-EMERGENCY-CACHEABLE" in headers
    assert headers.get("missing") == ""
    assert headers.get("missing", "fallback") == "fallback"
    assert list(headers) == ["X-Emergency-Cacheable"]
